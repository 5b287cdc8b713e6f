"""
Governance Service Event Models

Event data models for proposal, vote and milestone events.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

# =============================================================================
# Event Type Definitions (Service-Specific)
# =============================================================================

class GovernanceEventType(str, Enum):
    """
    Events published by governance_service.

    Streams: governance-stream (governance.>), campaign-stream (campaign.>)
    """
    PROPOSAL_CREATED = "governance.proposal.created"
    VOTE_CAST = "governance.vote.cast"
    PROPOSAL_EXECUTED = "governance.proposal.executed"
    MILESTONE_APPROVED = "campaign.milestone.approved"


class GovernanceSubscribedEventType(str, Enum):
    """Events that governance_service subscribes to from other services."""
    DONATION_CONFIRMED = "donation.confirmed"


class GovernanceStreamConfig:
    """Stream configuration for governance_service"""
    STREAM_NAME = "governance-stream"
    SUBJECTS = ["governance.>"]
    MAX_MESSAGES = 100000
    CONSUMER_PREFIX = "governance"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Event Data Models
# ============================================================================


class ProposalCreatedEventData(BaseModel):
    """
    Event: governance.proposal.created
    Triggered for manual proposals and auto-created fund-release proposals
    """

    proposal_id: str
    creator_address: str
    title: str
    proposal_type: str
    options: List[str]
    closes_at: datetime
    campaign_id: Optional[str] = None
    milestone_index: Optional[int] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class VoteCastEventData(BaseModel):
    """
    Event: governance.vote.cast
    """

    vote_id: str
    proposal_id: str
    voter_address: str
    vote_option: int
    vote_weight: int
    timestamp: datetime = Field(default_factory=_utcnow)


class ProposalExecutedEventData(BaseModel):
    """
    Event: governance.proposal.executed
    Carries the immutable outcome stored with the proposal
    """

    proposal_id: str
    proposal_type: str
    approved: bool
    yes_weight: int
    no_weight: int
    total_voters: int
    winning_option: Optional[int] = None
    milestone_action: Optional[str] = None
    campaign_id: Optional[str] = None
    milestone_index: Optional[int] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class MilestoneApprovedEventData(BaseModel):
    """
    Event: campaign.milestone.approved
    Signals the campaign authority that an on-chain release may proceed
    """

    campaign_id: str
    pool_id: Optional[str] = None
    milestone_index: int
    percentage: Optional[int] = None
    release_amount: Optional[Decimal] = None
    recipient: Optional[str] = None
    proposal_id: str
    timestamp: datetime = Field(default_factory=_utcnow)


class DonationConfirmedEventData(BaseModel):
    """
    Event: donation.confirmed (consumed)
    """

    pool_id: str
    donor_address: str
    amount: Decimal
    transaction_signature: Optional[str] = None
