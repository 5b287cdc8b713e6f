"""
Governance Service Component Test Fixtures

Provides mocks for governance service component testing:
- MockGovernanceRepository: In-memory implementation of GovernanceRepositoryProtocol
- FrozenClock: Controllable time source
- MockEventBus: Mock event publishing (from tests/component/mocks)
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import pytest

from core.config import GovernanceSettings
from microservices.governance_service.governance_service import GovernanceService
from microservices.governance_service.models import (
    Campaign,
    ExecutionOutcome,
    Milestone,
    MilestoneStatus,
    Proposal,
    ProposalStatus,
    ProposalType,
    Vote,
)
from tests.contracts.governance import FrozenClock, GovernanceTestDataFactory


# =============================================================================
# Mock Repository Implementation
# =============================================================================


class MockGovernanceRepository:
    """
    Mock implementation of GovernanceRepositoryProtocol for testing.

    Keeps campaigns, milestones, proposals and votes in memory. Every
    conditional write yields to the event loop first and then checks and
    mutates without awaiting, mirroring a single conditional UPDATE.
    """

    def __init__(self):
        self.users: Dict[str, int] = {}
        self.campaigns: Dict[str, Campaign] = {}
        self.milestones: Dict[Tuple[str, int], Milestone] = {}
        self.proposals: Dict[str, Proposal] = {}
        self.votes: Dict[Tuple[str, str], Vote] = {}
        self.processed_donations: Dict[str, Decimal] = {}

        self.healthy = True
        self.fail_create_proposal = False
        self.fail_get_campaign_by_pool = False
        self.fail_execute_milestone_update = False

        # Track method calls for verification
        self.method_calls = []

    def reset(self):
        """Reset all stored data"""
        self.users.clear()
        self.campaigns.clear()
        self.milestones.clear()
        self.proposals.clear()
        self.votes.clear()
        self.processed_donations.clear()
        self.method_calls.clear()

    # ---- seeding helpers ----

    def add_user(self, address: str, points: int):
        self.users[address] = points

    def seed_campaign(
        self,
        target_amount: Decimal = Decimal("10"),
        percentages=(30, 30, 40),
        total_raised: Decimal = Decimal("0"),
        statuses=None,
        pool_id: Optional[str] = None,
    ) -> Tuple[Campaign, List[Milestone]]:
        campaign = GovernanceTestDataFactory.make_campaign(
            pool_id=pool_id, target_amount=target_amount, total_raised=total_raised
        )
        milestones = GovernanceTestDataFactory.make_milestones(
            campaign.campaign_id, percentages, statuses
        )
        self.campaigns[campaign.campaign_id] = campaign
        for milestone in milestones:
            self.milestones[(campaign.campaign_id, milestone.index)] = milestone
        return campaign, milestones

    def seed_proposal(self, proposal: Proposal) -> Proposal:
        self.proposals[proposal.proposal_id] = proposal
        return proposal

    def seed_vote(self, vote: Vote) -> Vote:
        self.votes[(vote.proposal_id, vote.voter_address)] = vote
        proposal = self.proposals.get(vote.proposal_id)
        if proposal:
            self.proposals[vote.proposal_id] = proposal.model_copy(
                update={"total_votes": proposal.total_votes + 1}
            )
        return vote

    def milestone_status(self, campaign_id: str, index: int) -> MilestoneStatus:
        return self.milestones[(campaign_id, index)].status

    def calls_to(self, name: str) -> List[tuple]:
        return [c for c in self.method_calls if c[0] == name]

    # ---- lifecycle ----

    async def initialize(self):
        self.method_calls.append(("initialize",))

    async def close(self):
        self.method_calls.append(("close",))

    async def health_check(self) -> bool:
        self.method_calls.append(("health_check",))
        return self.healthy

    # ---- users ----

    async def get_reward_points(self, address: str) -> Optional[int]:
        self.method_calls.append(("get_reward_points", address))
        await asyncio.sleep(0)
        return self.users.get(address)

    # ---- campaigns ----

    async def create_campaign(self, campaign: Campaign, milestones: List[Milestone]) -> Optional[Campaign]:
        self.method_calls.append(("create_campaign", campaign.campaign_id))
        await asyncio.sleep(0)
        if any(c.pool_id == campaign.pool_id for c in self.campaigns.values()):
            return None
        self.campaigns[campaign.campaign_id] = campaign
        for milestone in milestones:
            self.milestones[(campaign.campaign_id, milestone.index)] = milestone
        return campaign

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        self.method_calls.append(("get_campaign", campaign_id))
        return self.campaigns.get(campaign_id)

    async def get_campaign_by_pool(self, pool_id: str) -> Optional[Campaign]:
        self.method_calls.append(("get_campaign_by_pool", pool_id))
        if self.fail_get_campaign_by_pool:
            raise ConnectionError("database unavailable")
        await asyncio.sleep(0)
        return next((c for c in self.campaigns.values() if c.pool_id == pool_id), None)

    async def list_campaigns(self, active_only: bool = False) -> List[Campaign]:
        self.method_calls.append(("list_campaigns", active_only))
        campaigns = sorted(
            self.campaigns.values(), key=lambda c: c.created_at or datetime.min, reverse=True
        )
        if active_only:
            campaigns = [c for c in campaigns if c.is_active]
        return campaigns

    async def increment_total_raised(self, campaign_id: str, amount: Decimal) -> Optional[Decimal]:
        self.method_calls.append(("increment_total_raised", campaign_id, amount))
        await asyncio.sleep(0)
        campaign = self.campaigns.get(campaign_id)
        if campaign is None:
            return None
        new_total = campaign.total_raised + amount
        self.campaigns[campaign_id] = campaign.model_copy(update={"total_raised": new_total})
        return new_total

    async def record_donation(
        self, campaign_id: str, transaction_signature: str, donor_address: str, amount: Decimal
    ) -> Optional[Decimal]:
        self.method_calls.append(("record_donation", campaign_id, transaction_signature, amount))
        await asyncio.sleep(0)
        campaign = self.campaigns.get(campaign_id)
        if campaign is None or transaction_signature in self.processed_donations:
            return None
        self.processed_donations[transaction_signature] = amount
        new_total = campaign.total_raised + amount
        self.campaigns[campaign_id] = campaign.model_copy(update={"total_raised": new_total})
        return new_total

    # ---- milestones ----

    async def list_milestones(self, campaign_id: str) -> List[Milestone]:
        self.method_calls.append(("list_milestones", campaign_id))
        await asyncio.sleep(0)
        return sorted(
            (m for (cid, _), m in self.milestones.items() if cid == campaign_id),
            key=lambda m: m.index,
        )

    async def get_milestone(self, campaign_id: str, index: int) -> Optional[Milestone]:
        self.method_calls.append(("get_milestone", campaign_id, index))
        return self.milestones.get((campaign_id, index))

    async def transition_milestone(
        self,
        campaign_id: str,
        index: int,
        from_status: MilestoneStatus,
        to_status: MilestoneStatus,
        governance_proposal_id: Optional[str] = None,
    ) -> bool:
        self.method_calls.append(("transition_milestone", campaign_id, index, from_status, to_status))
        await asyncio.sleep(0)
        milestone = self.milestones.get((campaign_id, index))
        if milestone is None or milestone.status != from_status:
            return False
        update = {"status": to_status}
        if governance_proposal_id is not None:
            update["governance_proposal_id"] = governance_proposal_id
        self.milestones[(campaign_id, index)] = milestone.model_copy(update=update)
        return True

    # ---- proposals ----

    async def create_proposal(self, proposal: Proposal) -> Proposal:
        self.method_calls.append(("create_proposal", proposal.proposal_id))
        await asyncio.sleep(0)
        if self.fail_create_proposal:
            raise ConnectionError("database unavailable")

        if proposal.proposal_type == ProposalType.FUND_RELEASE:
            for existing in self.proposals.values():
                if (
                    existing.proposal_type == ProposalType.FUND_RELEASE
                    and existing.status == ProposalStatus.ACTIVE
                    and existing.campaign_id == proposal.campaign_id
                    and existing.milestone_index == proposal.milestone_index
                ):
                    raise ValueError("active fund_release proposal already exists for milestone")
            key = (proposal.campaign_id, proposal.milestone_index)
            milestone = self.milestones.get(key)
            if milestone is not None:
                self.milestones[key] = milestone.model_copy(
                    update={"governance_proposal_id": proposal.proposal_id}
                )

        self.proposals[proposal.proposal_id] = proposal
        return proposal

    async def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        self.method_calls.append(("get_proposal", proposal_id))
        await asyncio.sleep(0)
        return self.proposals.get(proposal_id)

    async def list_proposals(self, status: Optional[ProposalStatus] = None) -> List[Proposal]:
        self.method_calls.append(("list_proposals", status))
        proposals = sorted(self.proposals.values(), key=lambda p: p.created_at, reverse=True)
        if status is not None:
            proposals = [p for p in proposals if p.status == status]
        return proposals

    async def mark_proposal_executed(
        self,
        proposal_id: str,
        outcome: ExecutionOutcome,
        executed_at: datetime,
        expected_total_votes: Optional[int] = None,
        milestone_transition: Optional[Tuple[MilestoneStatus, MilestoneStatus]] = None,
    ) -> Optional[Proposal]:
        self.method_calls.append(("mark_proposal_executed", proposal_id, milestone_transition))
        await asyncio.sleep(0)
        proposal = self.proposals.get(proposal_id)
        if proposal is None or proposal.status != ProposalStatus.ACTIVE:
            return None
        if expected_total_votes is not None and proposal.total_votes != expected_total_votes:
            return None

        # Nothing below is written unless every step succeeds (one transaction)
        milestone_update = None
        if milestone_transition is not None:
            if self.fail_execute_milestone_update:
                raise ConnectionError("database unavailable")
            from_status, to_status = milestone_transition
            key = (proposal.campaign_id, proposal.milestone_index)
            milestone = self.milestones.get(key)
            if milestone is not None and milestone.status == from_status:
                milestone_update = (
                    key,
                    milestone.model_copy(update={"status": to_status, "governance_proposal_id": proposal_id}),
                )
            else:
                outcome = outcome.model_copy(update={"milestone_action": None})

        if milestone_update is not None:
            self.milestones[milestone_update[0]] = milestone_update[1]
        executed = proposal.model_copy(
            update={
                "status": ProposalStatus.EXECUTED,
                "outcome": outcome,
                "executed_at": executed_at,
            }
        )
        self.proposals[proposal_id] = executed
        return executed

    # ---- votes ----

    async def get_vote(self, proposal_id: str, voter_address: str) -> Optional[Vote]:
        self.method_calls.append(("get_vote", proposal_id, voter_address))
        await asyncio.sleep(0)
        return self.votes.get((proposal_id, voter_address))

    async def insert_vote(self, vote: Vote) -> Optional[Vote]:
        self.method_calls.append(("insert_vote", vote.proposal_id, vote.voter_address))
        await asyncio.sleep(0)
        key = (vote.proposal_id, vote.voter_address)
        if key in self.votes:
            return None
        proposal = self.proposals.get(vote.proposal_id)
        if proposal is None or not proposal.is_open(vote.created_at):
            return None
        return self.seed_vote(vote)

    async def list_votes(self, proposal_id: str) -> List[Vote]:
        self.method_calls.append(("list_votes", proposal_id))
        await asyncio.sleep(0)
        return sorted(
            (v for (pid, _), v in self.votes.items() if pid == proposal_id),
            key=lambda v: v.created_at,
        )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_repository() -> MockGovernanceRepository:
    """In-memory governance repository"""
    return MockGovernanceRepository()


@pytest.fixture
def settings() -> GovernanceSettings:
    """Default governance tunables"""
    return GovernanceSettings()


@pytest.fixture
def governance_service(mock_repository, mock_event_bus, clock, settings) -> GovernanceService:
    """GovernanceService wired to the in-memory repository and mocked bus"""
    return GovernanceService(
        repository=mock_repository,
        event_bus=mock_event_bus,
        clock=clock,
        settings=settings,
    )
