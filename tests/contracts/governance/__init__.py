"""
Governance Service Contracts

This module provides the test data contracts for governance_service testing.
"""

from .data_contract import GovernanceTestDataFactory, FrozenClock

__all__ = [
    "GovernanceTestDataFactory",
    "FrozenClock",
]
