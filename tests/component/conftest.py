"""
Component Test Layer Configuration

Structure:
    tests/component/
    ├── governance/  Service, handler, repository and HTTP tests
    └── mocks/       Mock implementations

Usage:
    pytest tests/component -v
    pytest tests/component/governance -v
"""
import os
import sys

import pytest

# Set testing environment BEFORE any imports
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"
os.environ["NATS_ENABLED"] = "false"

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from tests.component.mocks import MockEventBus, MockPostgresClient


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )


# =============================================================================
# Database Mocks
# =============================================================================

@pytest.fixture
def mock_db() -> MockPostgresClient:
    """Mock PostgreSQL client"""
    return MockPostgresClient()


# =============================================================================
# Event Bus Mocks
# =============================================================================

@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Mock NATS event bus"""
    return MockEventBus()
