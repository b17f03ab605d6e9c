"""Binary persistence of the service cache.

The cache map is encoded with MessagePack. The same bytes can be carried
as a base64 string when the state has to live inside another system's
state store.
"""

import base64
import binascii
from typing import Dict, Mapping

import msgpack
from pydantic import ValidationError

from .errors import SerializationFailure
from .models import Service


def encode_services(services: Mapping[str, Service]) -> bytes:
    """Encode a name -> Service map to MessagePack bytes."""
    payload = {name: service.model_dump(mode="json") for name, service in services.items()}
    try:
        return msgpack.packb(payload, use_bin_type=True)
    except (TypeError, ValueError) as e:
        raise SerializationFailure(f"Failed to encode service cache: {e}") from e


def decode_services(data: bytes) -> Dict[str, Service]:
    """Decode bytes produced by ``encode_services``."""
    try:
        payload = msgpack.unpackb(data, raw=False)
    except (msgpack.ExtraData, msgpack.FormatError, msgpack.StackError, ValueError) as e:
        raise SerializationFailure(f"Failed to decode service cache: {e}") from e

    if not isinstance(payload, dict):
        raise SerializationFailure("Persisted service cache is not a mapping")

    try:
        return {str(name): Service.model_validate(record) for name, record in payload.items()}
    except ValidationError as e:
        raise SerializationFailure(f"Invalid service record in persisted cache: {e}") from e


def encode_services_b64(services: Mapping[str, Service]) -> str:
    return base64.b64encode(encode_services(services)).decode("ascii")


def decode_services_b64(data: str) -> Dict[str, Service]:
    try:
        raw = base64.b64decode(data.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise SerializationFailure(f"Invalid base64 service cache: {e}") from e
    return decode_services(raw)
