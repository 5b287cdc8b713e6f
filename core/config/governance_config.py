#!/usr/bin/env python3
"""Governance tunables: proposal thresholds, voting windows, campaign shape"""
import os
from dataclasses import dataclass

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class GovernanceSettings:
    """Governance rules shared by proposal, voting and campaign flows"""

    # Manual proposals
    min_proposal_points: int = 100
    default_duration_hours: int = 72
    min_options: int = 2
    max_options: int = 4

    # Auto-created fund-release proposals
    fund_release_window_hours: int = 72

    # Campaign setup
    max_milestones: int = 5
    max_milestone_description: int = 100

    @classmethod
    def from_env(cls) -> 'GovernanceSettings':
        """Load governance settings from environment"""
        return cls(
            min_proposal_points=_int(os.getenv("GOVERNANCE_MIN_PROPOSAL_POINTS", "100"), 100),
            default_duration_hours=_int(os.getenv("GOVERNANCE_DEFAULT_DURATION_HOURS", "72"), 72),
            min_options=_int(os.getenv("GOVERNANCE_MIN_OPTIONS", "2"), 2),
            max_options=_int(os.getenv("GOVERNANCE_MAX_OPTIONS", "4"), 4),
            fund_release_window_hours=_int(os.getenv("GOVERNANCE_FUND_RELEASE_WINDOW_HOURS", "72"), 72),
            max_milestones=_int(os.getenv("GOVERNANCE_MAX_MILESTONES", "5"), 5),
            max_milestone_description=_int(os.getenv("GOVERNANCE_MAX_MILESTONE_DESCRIPTION", "100"), 100),
        )
