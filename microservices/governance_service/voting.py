"""
Voting Service

Records one point-weighted vote per voter per proposal.
"""

import logging
import uuid

from .events.publishers import publish_vote_cast
from .models import ProposalStatus, Vote, VoteReceipt
from .protocols import (
    Clock,
    DuplicateVoteError,
    GovernanceRepositoryProtocol,
    GovernanceValidationError,
    ProposalExpiredError,
    ProposalNotActiveError,
    ProposalNotFoundError,
    VoterNotRegisteredError,
)

logger = logging.getLogger(__name__)


class VotingService:
    """Validates and records weighted votes"""

    def __init__(self, repository: GovernanceRepositoryProtocol, clock: Clock, event_bus=None):
        self.repository = repository
        self.clock = clock
        self.event_bus = event_bus

    async def cast_vote(self, proposal_id: str, voter_address: str, option_index: int) -> VoteReceipt:
        """
        Cast a vote weighted by the voter's current reward points.

        Checks run in a fixed order: input validation, proposal exists, voter
        registered, no prior vote, proposal active, window still open. The
        store's insert is the final guard: it is unique per (proposal_id,
        voter_address) and only lands while the proposal is still open.
        """
        voter_address = (voter_address or "").strip()
        if not voter_address:
            raise GovernanceValidationError("voter_address is required")
        if isinstance(option_index, bool) or not isinstance(option_index, int):
            raise GovernanceValidationError("option_index must be an integer")

        proposal = await self.repository.get_proposal(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(f"Proposal {proposal_id} not found")

        if option_index < 0 or option_index >= len(proposal.options):
            raise GovernanceValidationError(
                f"option_index {option_index} out of range for {len(proposal.options)} options"
            )

        points = await self.repository.get_reward_points(voter_address)
        if points is None:
            raise VoterNotRegisteredError(f"Voter {voter_address} is not registered")

        existing = await self.repository.get_vote(proposal_id, voter_address)
        if existing is not None:
            raise DuplicateVoteError(f"{voter_address} already voted on proposal {proposal_id}")

        if proposal.status != ProposalStatus.ACTIVE:
            raise ProposalNotActiveError(f"Proposal {proposal_id} is {proposal.status.value}")

        now = self.clock.now()
        if now >= proposal.closes_at:
            raise ProposalExpiredError(f"Voting on proposal {proposal_id} closed at {proposal.closes_at.isoformat()}")

        vote = Vote(
            vote_id=f"vote_{uuid.uuid4().hex[:16]}",
            proposal_id=proposal_id,
            voter_address=voter_address,
            vote_option=option_index,
            vote_weight=max(int(points), 0),
            created_at=now,
        )

        stored = await self.repository.insert_vote(vote)
        if stored is None:
            # Lost to a concurrent vote by the same voter, or the proposal closed meanwhile
            if await self.repository.get_vote(proposal_id, voter_address) is not None:
                raise DuplicateVoteError(f"{voter_address} already voted on proposal {proposal_id}")
            current = await self.repository.get_proposal(proposal_id)
            if current is None or current.status != ProposalStatus.ACTIVE:
                raise ProposalNotActiveError(f"Proposal {proposal_id} was executed before the vote landed")
            raise ProposalExpiredError(f"Voting on proposal {proposal_id} closed at {current.closes_at.isoformat()}")

        if stored.vote_weight == 0:
            logger.info(f"Zero-weight vote recorded on {proposal_id} by {voter_address}")
        else:
            logger.info(
                f"Vote recorded on {proposal_id} by {voter_address}: option {option_index}, weight {stored.vote_weight}"
            )

        if self.event_bus:
            await publish_vote_cast(self.event_bus, stored)

        return VoteReceipt(
            vote_id=stored.vote_id,
            proposal_id=proposal_id,
            voter_address=voter_address,
            option_index=option_index,
            weight=stored.vote_weight,
        )
