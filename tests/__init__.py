"""
Servicing Test Suite

Unit tests for the models, cache, persistence and readiness polling, plus
backend and dispatcher tests that fake the SkyPilot tool.
"""
