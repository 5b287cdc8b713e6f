"""
Governance Service Protocols

Defines interfaces for dependency injection and testing.
Following the protocol-based architecture pattern.

Every status write in the repository is conditional on the expected source
state and reports whether the caller won, so concurrent callers never need
in-process locks.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional, Protocol, Tuple, runtime_checkable

from .models import (
    Campaign,
    ExecutionOutcome,
    Milestone,
    MilestoneStatus,
    Proposal,
    ProposalStatus,
    Vote,
)


# ====================
# Repository Protocol
# ====================


@runtime_checkable
class GovernanceRepositoryProtocol(Protocol):
    """Repository interface for campaigns, milestones, proposals and votes"""

    async def initialize(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def health_check(self) -> bool:
        ...

    # ---- users (read-only) ----

    async def get_reward_points(self, address: str) -> Optional[int]:
        """
        Get the reward-point balance of a registered user.

        Returns:
            Point balance, or None if the address is not registered
        """
        ...

    # ---- campaigns ----

    async def create_campaign(self, campaign: Campaign, milestones: List[Milestone]) -> Optional[Campaign]:
        """
        Insert a campaign and its milestones in one transaction.

        Returns:
            Created campaign, or None if the pool_id is already taken
        """
        ...

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        ...

    async def get_campaign_by_pool(self, pool_id: str) -> Optional[Campaign]:
        ...

    async def list_campaigns(self, active_only: bool = False) -> List[Campaign]:
        ...

    async def increment_total_raised(self, campaign_id: str, amount: Decimal) -> Optional[Decimal]:
        """
        Atomically add `amount` to the campaign's total_raised.

        Returns:
            The new total, or None if the campaign does not exist
        """
        ...

    async def record_donation(
        self,
        campaign_id: str,
        transaction_signature: str,
        donor_address: str,
        amount: Decimal,
    ) -> Optional[Decimal]:
        """
        Record a donation once per transaction signature and add its amount
        to total_raised atomically.

        Returns:
            The new total, or None if the signature was already processed
            (or the campaign does not exist)
        """
        ...

    # ---- milestones ----

    async def list_milestones(self, campaign_id: str) -> List[Milestone]:
        """Milestones of a campaign in ascending index order"""
        ...

    async def get_milestone(self, campaign_id: str, index: int) -> Optional[Milestone]:
        ...

    async def transition_milestone(
        self,
        campaign_id: str,
        index: int,
        from_status: MilestoneStatus,
        to_status: MilestoneStatus,
        governance_proposal_id: Optional[str] = None,
    ) -> bool:
        """
        Conditionally move a milestone from `from_status` to `to_status`.

        Args:
            governance_proposal_id: Stamped onto the milestone when given

        Returns:
            True if this caller performed the transition
        """
        ...

    # ---- proposals ----

    async def create_proposal(self, proposal: Proposal) -> Proposal:
        """
        Insert a proposal. Fund-release proposals also link the milestone
        (governance_proposal_id) in the same transaction.
        """
        ...

    async def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        ...

    async def list_proposals(self, status: Optional[ProposalStatus] = None) -> List[Proposal]:
        """Proposals newest first, optionally filtered by status"""
        ...

    async def mark_proposal_executed(
        self,
        proposal_id: str,
        outcome: ExecutionOutcome,
        executed_at: datetime,
        expected_total_votes: Optional[int] = None,
        milestone_transition: Optional[Tuple[MilestoneStatus, MilestoneStatus]] = None,
    ) -> Optional[Proposal]:
        """
        Flip active → executed storing the outcome, and move the proposal's
        milestone from/to `milestone_transition`, in one transaction.

        Args:
            expected_total_votes: Only flip while total_votes still equals this
            milestone_transition: (from_status, to_status) for fund-release
                proposals; if the milestone is not in from_status the proposal
                still executes with outcome.milestone_action = None

        Returns:
            The executed proposal, or None if it was not active (lost race)
            or its vote count changed
        """
        ...

    # ---- votes ----

    async def get_vote(self, proposal_id: str, voter_address: str) -> Optional[Vote]:
        ...

    async def insert_vote(self, vote: Vote) -> Optional[Vote]:
        """
        Insert a vote and increment the proposal's total_votes in one
        transaction.

        Returns:
            The stored vote, or None if (proposal_id, voter_address) exists
            or the proposal is no longer active and open at vote.created_at
        """
        ...

    async def list_votes(self, proposal_id: str) -> List[Vote]:
        ...


@runtime_checkable
class EventBusProtocol(Protocol):
    """Event bus interface for publishing events"""

    async def publish_event(self, event: Any) -> bool:
        ...


@runtime_checkable
class Clock(Protocol):
    """Source of the current time (timezone-aware UTC)"""

    def now(self) -> datetime:
        ...


# ====================
# Custom Exceptions (no I/O operations)
# ====================


class GovernanceServiceError(Exception):
    """Base exception for governance service errors"""

    reason = "governance_error"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason


class GovernanceValidationError(GovernanceServiceError):
    """Raised when input is rejected before any mutation"""
    reason = "validation_error"


class GovernanceNotFoundError(GovernanceServiceError):
    """Raised when a referenced entity does not exist"""
    reason = "not_found"


class ProposalNotFoundError(GovernanceNotFoundError):
    reason = "proposal_not_found"


class CampaignNotFoundError(GovernanceNotFoundError):
    reason = "campaign_not_found"


class MilestoneNotFoundError(GovernanceNotFoundError):
    reason = "milestone_not_found"


class VoterNotRegisteredError(GovernanceNotFoundError):
    reason = "voter_not_registered"


class StateConflictError(GovernanceServiceError):
    """Raised when the current state forbids the operation"""
    reason = "state_conflict"


class DuplicateVoteError(StateConflictError):
    reason = "duplicate_vote"


class ProposalNotActiveError(StateConflictError):
    reason = "proposal_not_active"


class ProposalExpiredError(StateConflictError):
    reason = "proposal_expired"


class VotingStillOpenError(StateConflictError):
    reason = "voting_still_open"


class AlreadyExecutedError(StateConflictError):
    reason = "already_executed"


class InsufficientPointsError(StateConflictError):
    """Raised when a proposal creator has too few reward points"""
    reason = "insufficient_points"

    def __init__(
        self,
        message: str,
        available: Optional[int] = None,
        required: Optional[int] = None,
    ):
        super().__init__(message)
        self.available = available
        self.required = required


class MilestoneNotPendingError(StateConflictError):
    reason = "milestone_not_pending"


class CampaignAlreadyExistsError(StateConflictError):
    reason = "campaign_already_exists"


__all__ = [
    "GovernanceRepositoryProtocol",
    "EventBusProtocol",
    "Clock",
    "GovernanceServiceError",
    "GovernanceValidationError",
    "GovernanceNotFoundError",
    "ProposalNotFoundError",
    "CampaignNotFoundError",
    "MilestoneNotFoundError",
    "VoterNotRegisteredError",
    "StateConflictError",
    "DuplicateVoteError",
    "ProposalNotActiveError",
    "ProposalExpiredError",
    "VotingStillOpenError",
    "AlreadyExecutedError",
    "InsufficientPointsError",
    "MilestoneNotPendingError",
    "CampaignAlreadyExistsError",
]
