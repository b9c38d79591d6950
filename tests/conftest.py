"""
FILE: tests/conftest.py
Shared fixtures for proposal lifecycle tests.
"""

from pathlib import Path

import pytest

from src.api.routers.proposals import reset_proposal_service_for_tests


def _has_marker(item: pytest.Item, name: str) -> bool:
    return item.get_closest_marker(name) is not None


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if (
            _has_marker(item, "unit")
            or _has_marker(item, "integration")
            or _has_marker(item, "e2e")
        ):
            continue

        path = Path(str(item.fspath)).as_posix().lower()
        if "/tests/integration/" in path or "_integration.py" in path:
            item.add_marker(pytest.mark.integration)
            continue
        if "/tests/e2e/" in path:
            item.add_marker(pytest.mark.e2e)
            continue
        item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def in_memory_gateway_harness(monkeypatch: pytest.MonkeyPatch):
    """Route the API through in-memory gateways and a fresh service per test."""

    monkeypatch.setenv("LEDGER_GATEWAY_BACKEND", "IN_MEMORY")
    monkeypatch.setenv("CRYPTO_GATEWAY_BACKEND", "IN_MEMORY")
    monkeypatch.setenv("APP_GATEWAY_PROFILE", "LOCAL")
    reset_proposal_service_for_tests()
    yield
    reset_proposal_service_for_tests()
