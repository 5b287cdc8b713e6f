"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers:
    - component/  : Component tests (services against in-memory repository, mocked bus)
    - unit/       : Unit tests (pure functions, no I/O)
    - contracts/  : Test data factories shared by the layers
"""
import os
import sys
from typing import Any, Dict, List

import pytest

# Set testing environment BEFORE any service imports
os.environ.setdefault("ENV", "testing")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("NATS_ENABLED", "false")

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from tests.contracts.governance import FrozenClock, GovernanceTestDataFactory


# =============================================================================
# Test Data
# =============================================================================

@pytest.fixture
def factory() -> GovernanceTestDataFactory:
    """Governance test data factory"""
    return GovernanceTestDataFactory()


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen clock starting at the contract's base time"""
    return FrozenClock()


# =============================================================================
# Assertion Helpers
# =============================================================================

class AssertionHelpers:
    """Common assertion helpers"""

    @staticmethod
    def assert_http_success(response, expected_status: int = 200):
        assert response.status_code == expected_status, (
            f"Expected {expected_status}, got {response.status_code}: {response.text}"
        )

    @staticmethod
    def assert_has_fields(data: Dict, fields: List[str]):
        missing = [f for f in fields if f not in data]
        assert not missing, f"Missing fields: {missing}"

    @staticmethod
    def assert_error_reason(response, status_code: int, reason: str):
        assert response.status_code == status_code, (
            f"Expected {status_code}, got {response.status_code}: {response.text}"
        )
        detail: Any = response.json()["detail"]
        assert detail["error"] == reason, f"Expected reason {reason}, got {detail}"


@pytest.fixture
def assertions() -> AssertionHelpers:
    """Assertion helpers fixture"""
    return AssertionHelpers()


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "component: Component tests")
    config.addinivalue_line("markers", "unit: Unit tests")
