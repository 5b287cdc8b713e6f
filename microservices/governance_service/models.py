"""
Governance Service Data Models

Campaigns with percentage milestones, governance proposals, weighted votes,
live tallies and immutable execution outcomes.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field


# ====================
# Enumerations
# ====================

class MilestoneStatus(str, Enum):
    """Milestone lifecycle"""
    PENDING = "pending"
    PROPOSING = "proposing"
    APPROVED = "approved"
    RELEASED = "released"
    REJECTED = "rejected"


class ProposalStatus(str, Enum):
    """Proposal lifecycle"""
    ACTIVE = "active"
    EXECUTED = "executed"


class ProposalType(str, Enum):
    """Proposal kinds"""
    GENERAL = "general"
    FUND_RELEASE = "fund_release"


class MilestoneAction(str, Enum):
    """Milestone side effect applied by a fund-release execution"""
    APPROVED = "approved"
    REJECTED = "rejected"


# ====================
# Lifecycle transitions
# ====================

MILESTONE_TRANSITIONS: Dict[MilestoneStatus, Set[MilestoneStatus]] = {
    MilestoneStatus.PENDING: {MilestoneStatus.PROPOSING},
    MilestoneStatus.PROPOSING: {
        MilestoneStatus.APPROVED,
        MilestoneStatus.PENDING,
        MilestoneStatus.REJECTED,
    },
    MilestoneStatus.APPROVED: {MilestoneStatus.RELEASED},
    MilestoneStatus.RELEASED: set(),
    MilestoneStatus.REJECTED: set(),
}

PROPOSAL_TRANSITIONS: Dict[ProposalStatus, Set[ProposalStatus]] = {
    ProposalStatus.ACTIVE: {ProposalStatus.EXECUTED},
    ProposalStatus.EXECUTED: set(),
}


def can_transition_milestone(current: MilestoneStatus, target: MilestoneStatus) -> bool:
    return target in MILESTONE_TRANSITIONS.get(current, set())


def can_transition_proposal(current: ProposalStatus, target: ProposalStatus) -> bool:
    return target in PROPOSAL_TRANSITIONS.get(current, set())


FUND_RELEASE_OPTIONS = ["Yes, release funds", "No, hold funds"]


# ====================
# Core Data Models
# ====================

class Campaign(BaseModel):
    """Fundraising campaign tied to one charity pool"""
    campaign_id: str = Field(..., min_length=1)
    pool_id: str = Field(..., min_length=1, description="Charity pool identifier (unique)")
    recipient: str = Field(..., min_length=1, description="Recipient wallet address")
    target_amount: Decimal = Field(..., gt=0)
    total_raised: Decimal = Field(default=Decimal("0"), ge=0)
    deadline: datetime
    is_active: bool = True
    created_at: Optional[datetime] = None

    def progress_percentage(self) -> Decimal:
        """Raised total as a percentage of target, one decimal place"""
        return (self.total_raised / self.target_amount * 100).quantize(Decimal("0.1"))


class Milestone(BaseModel):
    """Ordered percentage-of-target checkpoint gating fund release"""
    milestone_id: str = Field(..., min_length=1)
    campaign_id: str = Field(..., min_length=1)
    index: int = Field(..., ge=0)
    description: str
    percentage: int = Field(..., ge=0, le=100)
    status: MilestoneStatus = MilestoneStatus.PENDING
    governance_proposal_id: Optional[str] = None
    created_at: Optional[datetime] = None


class ExecutionOutcome(BaseModel):
    """Immutable record written when a proposal is executed"""
    approved: bool
    yes_weight: int = 0
    no_weight: int = 0
    total_voters: int = 0
    milestone_action: Optional[MilestoneAction] = None
    winning_option: Optional[int] = None


class Proposal(BaseModel):
    """Time-boxed multi-option governance vote"""
    proposal_id: str = Field(..., min_length=1)
    creator_address: str = Field(..., min_length=1)
    title: str
    description: str
    options: List[str]
    status: ProposalStatus = ProposalStatus.ACTIVE
    total_votes: int = Field(default=0, ge=0)
    created_at: datetime
    closes_at: datetime
    proposal_type: ProposalType = ProposalType.GENERAL
    campaign_id: Optional[str] = None
    milestone_index: Optional[int] = None
    executed_at: Optional[datetime] = None
    outcome: Optional[ExecutionOutcome] = None

    def is_open(self, now: datetime) -> bool:
        return self.status == ProposalStatus.ACTIVE and now < self.closes_at


class Vote(BaseModel):
    """One weighted ballot; unique per (proposal_id, voter_address)"""
    vote_id: str = Field(..., min_length=1)
    proposal_id: str = Field(..., min_length=1)
    voter_address: str = Field(..., min_length=1)
    vote_option: int = Field(..., ge=0)
    vote_weight: int = Field(..., ge=0, description="Reward points snapshot at cast time")
    created_at: datetime


class OptionResult(BaseModel):
    option: str
    index: int
    vote_count: int = 0
    total_weight: int = 0
    percentage: float = 0.0


class ProposalResults(BaseModel):
    proposal_id: str
    results: List[OptionResult]
    total_voters: int = 0
    total_weight: int = 0


class VoteReceipt(BaseModel):
    vote_id: str
    proposal_id: str
    voter_address: str
    option_index: int
    weight: int


class ProposalRecipient(BaseModel):
    campaign_id: str
    pool_id: str
    address: str


class ProposalSummary(Proposal):
    """Proposal enriched with live results and the campaign recipient"""
    results: Optional[List[OptionResult]] = None
    total_voters: Optional[int] = None
    total_weight: Optional[int] = None
    recipient: Optional[ProposalRecipient] = None


class CampaignDetail(Campaign):
    milestones: List[Milestone] = Field(default_factory=list)
    progress: Decimal = Decimal("0")


# ====================
# Request Models
# ====================

class MilestoneSpec(BaseModel):
    description: str = Field(..., min_length=1)
    percentage: int = Field(..., ge=0, le=100)


class CampaignCreateRequest(BaseModel):
    pool_id: str = Field(..., min_length=1)
    recipient: str = Field(..., min_length=1)
    target_amount: Decimal = Field(..., gt=0)
    deadline: datetime
    is_active: bool = True
    milestones: List[MilestoneSpec]


class ProposalCreateRequest(BaseModel):
    creator_address: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    options: List[str]
    duration_hours: Optional[int] = Field(default=None, gt=0)
    proposal_type: ProposalType = ProposalType.GENERAL
    campaign_id: Optional[str] = None
    milestone_index: Optional[int] = Field(default=None, ge=0)


class VoteRequest(BaseModel):
    voter_address: str
    option_index: int


class DonationConfirmedRequest(BaseModel):
    pool_id: str = Field(..., min_length=1)
    donor_address: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    transaction_signature: Optional[str] = None


class DonationAck(BaseModel):
    accepted: bool = True
    proposals_created: List[str] = Field(default_factory=list)


class ProposalListResponse(BaseModel):
    proposals: List[ProposalSummary]
    count: int


class VoteListResponse(BaseModel):
    proposal_id: str
    votes: List[Vote]
    count: int


class HealthResponse(BaseModel):
    status: str
    service: str
    port: int
    version: str
    dependencies: Dict[str, str] = Field(default_factory=dict)


__all__ = [
    "MilestoneStatus",
    "ProposalStatus",
    "ProposalType",
    "MilestoneAction",
    "MILESTONE_TRANSITIONS",
    "PROPOSAL_TRANSITIONS",
    "can_transition_milestone",
    "can_transition_proposal",
    "FUND_RELEASE_OPTIONS",
    "Campaign",
    "Milestone",
    "ExecutionOutcome",
    "Proposal",
    "Vote",
    "OptionResult",
    "ProposalResults",
    "VoteReceipt",
    "ProposalRecipient",
    "ProposalSummary",
    "CampaignDetail",
    "MilestoneSpec",
    "CampaignCreateRequest",
    "ProposalCreateRequest",
    "VoteRequest",
    "DonationConfirmedRequest",
    "DonationAck",
    "ProposalListResponse",
    "VoteListResponse",
    "HealthResponse",
]
