"""
Unit Test Layer Configuration

Structure:
    tests/unit/
    └── governance/   Pure business logic, models and configuration

Usage:
    pytest tests/unit -v
    pytest tests/unit -m unit -v
"""
import os
import sys

import pytest

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
