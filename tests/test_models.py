"""Tests for the configuration model and service records."""

import pytest
import yaml

from servicing.errors import SerializationFailure
from servicing.models import (
    Configuration,
    Orchestrators,
    Service,
    ServiceStatus,
    UserProvidedConfig,
)


def test_default_configuration():
    """Test the default document matches the orchestrator template."""
    config = Configuration()

    assert config.service.readiness_probe == "/health"
    assert config.service.replicas == 2
    assert config.resources.ports == 8080
    assert config.resources.cloud == "aws"
    assert config.resources.cpus == "4+"
    assert config.resources.memory == "10+"
    assert config.resources.disk_size == 100
    assert config.resources.accelerators is None
    assert config.workdir == "."
    assert "poetry install" in config.setup
    assert config.run == "poetry run python service.py\n"


def test_merge_changes_only_present_fields():
    """Test merging a sparse override leaves every other field at its default."""
    default = Configuration()
    merged = default.merge(UserProvidedConfig(port=9000, accelerators="A100:1"))

    assert merged.resources.ports == 9000
    assert merged.resources.accelerators == "A100:1"

    expected = default.model_dump()
    expected["resources"]["ports"] = 9000
    expected["resources"]["accelerators"] = "A100:1"
    assert merged.model_dump() == expected


def test_merge_every_field():
    """Test every override field lands on the right document field."""
    override = UserProvidedConfig(
        port=1234,
        replicas=5,
        cloud="gcp",
        workdir="/srv/app",
        disk_size=256,
        cpu="8+",
        memory="32+",
        accelerators="L4:1",
        setup="pip install -r requirements.txt\n",
        run="python app.py\n",
        readiness_probe="/ready",
    )
    merged = Configuration().merge(override)

    assert merged.resources.ports == 1234
    assert merged.service.replicas == 5
    assert merged.resources.cloud == "gcp"
    assert merged.workdir == "/srv/app"
    assert merged.resources.disk_size == 256
    assert merged.resources.cpus == "8+"
    assert merged.resources.memory == "32+"
    assert merged.resources.accelerators == "L4:1"
    assert merged.setup == "pip install -r requirements.txt\n"
    assert merged.run == "python app.py\n"
    assert merged.service.readiness_probe == "/ready"


@pytest.mark.parametrize(
    "override",
    [
        UserProvidedConfig(),
        UserProvidedConfig(port=9000),
        UserProvidedConfig(replicas=0, cloud="azure"),
        UserProvidedConfig(accelerators="A10G:4", run="serve\n"),
    ],
)
def test_merge_is_idempotent(override):
    """Test merging the same override twice equals merging it once."""
    once = Configuration().merge(override)
    twice = once.merge(override)

    assert twice == once


def test_merge_does_not_mutate_receiver():
    """Test merge is pure."""
    default = Configuration()
    default.merge(UserProvidedConfig(port=9000, replicas=7))

    assert default == Configuration()


def test_merge_none_returns_copy():
    default = Configuration()
    merged = default.merge(None)

    assert merged == default
    assert merged is not default


def test_yaml_omits_unset_accelerators():
    """Test the accelerator key is absent (not null) when unset."""
    rendered = Configuration().to_yaml()
    document = yaml.safe_load(rendered)

    assert "accelerators" not in document["resources"]
    assert "null" not in rendered
    assert document["resources"]["ports"] == 8080
    assert document["service"] == {"readiness_probe": "/health", "replicas": 2}


def test_yaml_includes_set_accelerators():
    rendered = Configuration().merge(UserProvidedConfig(accelerators="A100:8")).to_yaml()

    assert yaml.safe_load(rendered)["resources"]["accelerators"] == "A100:8"


def test_yaml_round_trip():
    """Test a rendered document parses back to the same configuration."""
    config = Configuration.test_config().merge(UserProvidedConfig(cloud="gcp"))

    assert Configuration.from_yaml(config.to_yaml()) == config


def test_from_yaml_rejects_garbage():
    with pytest.raises(SerializationFailure):
        Configuration.from_yaml("service: [unterminated")

    with pytest.raises(SerializationFailure):
        Configuration.from_yaml("service:\n  replicas: lots\n")


def test_user_config_validates_port():
    with pytest.raises(ValueError):
        UserProvidedConfig(port=70000)


def test_service_defaults():
    service = Service()

    assert service.backend_kind == Orchestrators.SKYPILOT
    assert service.readiness_probe_path == "/"
    assert service.endpoint is None
    assert service.is_up is False
    assert service.status == ServiceStatus.REGISTERED


def test_service_up_requires_endpoint():
    """Test a record cannot claim to be up without an endpoint."""
    with pytest.raises(ValueError):
        Service(is_up=True)


def test_service_status_transitions():
    service = Service()
    service.provisioning = 1
    assert service.status == ServiceStatus.PROVISIONING
    assert service.is_active

    service.provisioning = None
    service.endpoint = "10.0.0.5:30000"
    assert service.status == ServiceStatus.STARTING

    service.is_up = True
    assert service.status == ServiceStatus.READY

    service.endpoint = None
    service.is_up = False
    assert service.status == ServiceStatus.REGISTERED
    assert not service.is_active


def test_provisioning_flag_is_not_serialized():
    service = Service(provisioning=1, removing=True)

    assert "provisioning" not in service.model_dump()
    assert "removing" not in service.model_dump()


def test_readiness_url():
    service = Service(endpoint="10.0.0.5:30000", readiness_probe_path="/health")

    assert service.readiness_url() == "http://10.0.0.5:30000/health"
    assert Service().readiness_url() is None
