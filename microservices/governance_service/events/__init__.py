"""
Governance Service Event Package

Event-driven architecture for governance service:
- Publishing: proposal, vote and milestone events
- Subscription: donation.confirmed feeds the threshold monitor
"""

from .models import (
    GovernanceEventType,
    GovernanceSubscribedEventType,
    GovernanceStreamConfig,
    ProposalCreatedEventData,
    VoteCastEventData,
    ProposalExecutedEventData,
    MilestoneApprovedEventData,
    DonationConfirmedEventData,
)

from .publishers import (
    publish_proposal_created,
    publish_vote_cast,
    publish_proposal_executed,
    publish_milestone_approved,
)

from .handlers import get_event_handlers

__all__ = [
    # Event types
    "GovernanceEventType",
    "GovernanceSubscribedEventType",
    "GovernanceStreamConfig",
    # Event models
    "ProposalCreatedEventData",
    "VoteCastEventData",
    "ProposalExecutedEventData",
    "MilestoneApprovedEventData",
    "DonationConfirmedEventData",
    # Publishers
    "publish_proposal_created",
    "publish_vote_cast",
    "publish_proposal_executed",
    "publish_milestone_approved",
    # Handlers
    "get_event_handlers",
]
