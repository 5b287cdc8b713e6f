"""
Governance Service - Business Logic Layer

Milestone-gated governance for charity campaigns:
- Campaign setup with ordered percentage milestones
- Threshold detection on confirmed donations (ThresholdMonitor)
- Auto-created fund-release proposals (ProposalFactory)
- Point-weighted voting (VotingService)
- Live tallies (TallyEngine)
- One-time execution with milestone side effects (ExecutionService)
"""

import logging
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Union

from core.config import GovernanceSettings

from .clock import SystemClock
from .events.publishers import publish_proposal_created
from .execution import ExecutionService, find_yes_no_options
from .models import (
    Campaign,
    CampaignCreateRequest,
    CampaignDetail,
    ExecutionOutcome,
    Milestone,
    MilestoneStatus,
    Proposal,
    ProposalRecipient,
    ProposalResults,
    ProposalStatus,
    ProposalSummary,
    ProposalType,
    Vote,
    VoteReceipt,
)
from .proposal_factory import ProposalFactory, new_proposal_id
from .protocols import (
    CampaignAlreadyExistsError,
    CampaignNotFoundError,
    Clock,
    EventBusProtocol,
    GovernanceRepositoryProtocol,
    GovernanceValidationError,
    InsufficientPointsError,
    MilestoneNotFoundError,
    MilestoneNotPendingError,
    ProposalNotFoundError,
)
from .tally import TallyEngine
from .threshold_monitor import ThresholdMonitor
from .voting import VotingService

logger = logging.getLogger(__name__)


class GovernanceService:
    """
    Governance Service - Core business logic

    Composes the governance components over one repository, clock and
    event bus, and adds campaign management and manual proposals.
    """

    def __init__(
        self,
        repository: GovernanceRepositoryProtocol,
        event_bus: Optional[EventBusProtocol] = None,
        clock: Optional[Clock] = None,
        settings: Optional[GovernanceSettings] = None,
    ):
        """
        Initialize governance service with dependencies.

        Args:
            repository: Governance repository for data access
            event_bus: Event bus for publishing events (optional)
            clock: Time source (defaults to the system clock)
            settings: Governance tunables (defaults to built-in values)
        """
        self.repository = repository
        self.event_bus = event_bus
        self.clock = clock or SystemClock()
        self.settings = settings or GovernanceSettings()

        self.tally_engine = TallyEngine(repository)
        self.proposal_factory = ProposalFactory(repository, self.clock, self.settings, event_bus)
        self.threshold_monitor = ThresholdMonitor(repository, self.proposal_factory)
        self.voting_service = VotingService(repository, self.clock, event_bus)
        self.execution_service = ExecutionService(repository, self.tally_engine, self.clock, event_bus)

    # ====================
    # Campaigns
    # ====================

    def _validate_campaign_request(self, request: CampaignCreateRequest):
        if not request.pool_id.strip():
            raise GovernanceValidationError("pool_id is required")
        if not request.recipient.strip():
            raise GovernanceValidationError("recipient is required")
        if request.target_amount <= 0:
            raise GovernanceValidationError("target_amount must be positive")

        count = len(request.milestones)
        if count < 1 or count > self.settings.max_milestones:
            raise GovernanceValidationError(
                f"A campaign needs between 1 and {self.settings.max_milestones} milestones, got {count}"
            )

        for i, item in enumerate(request.milestones):
            if not item.description.strip():
                raise GovernanceValidationError(f"Milestone {i} description is required")
            if len(item.description) > self.settings.max_milestone_description:
                raise GovernanceValidationError(
                    f"Milestone {i} description exceeds {self.settings.max_milestone_description} characters"
                )
            if item.percentage < 0 or item.percentage > 100:
                raise GovernanceValidationError(f"Milestone {i} percentage must be between 0 and 100")

        total = sum(item.percentage for item in request.milestones)
        if total != 100:
            raise GovernanceValidationError(f"Milestone percentages must sum to 100, got {total}")

    async def create_campaign(self, request: CampaignCreateRequest) -> CampaignDetail:
        """Create a campaign with its milestones, all pending"""
        self._validate_campaign_request(request)

        if await self.repository.get_campaign_by_pool(request.pool_id):
            raise CampaignAlreadyExistsError(f"A campaign for pool {request.pool_id} already exists")

        now = self.clock.now()
        campaign = Campaign(
            campaign_id=f"cmp_{uuid.uuid4().hex[:16]}",
            pool_id=request.pool_id,
            recipient=request.recipient,
            target_amount=request.target_amount,
            total_raised=Decimal("0"),
            deadline=request.deadline,
            is_active=request.is_active,
            created_at=now,
        )
        milestones = [
            Milestone(
                milestone_id=f"ms_{uuid.uuid4().hex[:16]}",
                campaign_id=campaign.campaign_id,
                index=i,
                description=item.description,
                percentage=item.percentage,
                status=MilestoneStatus.PENDING,
                created_at=now,
            )
            for i, item in enumerate(request.milestones)
        ]

        created = await self.repository.create_campaign(campaign, milestones)
        if created is None:
            raise CampaignAlreadyExistsError(f"A campaign for pool {request.pool_id} already exists")

        logger.info(f"Campaign {created.campaign_id} created for pool {created.pool_id} (target {created.target_amount})")
        return CampaignDetail(
            **created.model_dump(),
            milestones=milestones,
            progress=created.progress_percentage(),
        )

    async def get_campaign(self, campaign_id: str) -> CampaignDetail:
        campaign = await self.repository.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Campaign {campaign_id} not found")
        milestones = await self.repository.list_milestones(campaign_id)
        return CampaignDetail(
            **campaign.model_dump(),
            milestones=milestones,
            progress=campaign.progress_percentage(),
        )

    async def list_campaigns(self, active_only: bool = False) -> List[Campaign]:
        return await self.repository.list_campaigns(active_only=active_only)

    async def get_milestones(self, campaign_id: str) -> List[Milestone]:
        campaign = await self.repository.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Campaign {campaign_id} not found")
        return await self.repository.list_milestones(campaign_id)

    # ====================
    # Donations
    # ====================

    async def handle_donation_confirmed(
        self,
        pool_id: str,
        donor_address: str,
        amount: Union[Decimal, int, float, str],
        transaction_signature: Optional[str] = None,
    ) -> List[Proposal]:
        """Best-effort threshold check, idempotent per transaction signature; never raises"""
        return await self.threshold_monitor.on_donation_confirmed(
            pool_id, donor_address, amount, transaction_signature=transaction_signature
        )

    # ====================
    # Proposals
    # ====================

    async def create_proposal(
        self,
        creator_address: str,
        title: str,
        description: str,
        options: List[str],
        duration_hours: Optional[int] = None,
        proposal_type: Union[ProposalType, str] = ProposalType.GENERAL,
        campaign_id: Optional[str] = None,
        milestone_index: Optional[int] = None,
    ) -> Proposal:
        """
        Create a manual proposal.

        Raises:
            GovernanceValidationError: Bad fields, option count or duration, or
                fund-release options without both a yes and a no choice
            InsufficientPointsError: Creator below the minimum point balance
            CampaignNotFoundError / MilestoneNotFoundError: Bad fund-release target
            MilestoneNotPendingError: Fund-release target already claimed or decided
        """
        creator_address = (creator_address or "").strip()
        title = (title or "").strip()
        description = (description or "").strip()
        if not creator_address:
            raise GovernanceValidationError("creator_address is required")
        if not title or not description:
            raise GovernanceValidationError("title and description are required")

        options = [o.strip() for o in (options or [])]
        if len(options) < self.settings.min_options or len(options) > self.settings.max_options:
            raise GovernanceValidationError(
                f"Proposals need {self.settings.min_options}-{self.settings.max_options} options, got {len(options)}"
            )
        if any(not o for o in options):
            raise GovernanceValidationError("Options must not be empty")

        if duration_hours is None:
            duration_hours = self.settings.default_duration_hours
        if duration_hours <= 0:
            raise GovernanceValidationError("duration_hours must be positive")

        try:
            proposal_type = ProposalType(proposal_type)
        except ValueError:
            raise GovernanceValidationError(f"Unknown proposal_type {proposal_type!r}")

        if proposal_type == ProposalType.FUND_RELEASE and (campaign_id is None or milestone_index is None):
            raise GovernanceValidationError("fund_release proposals require campaign_id and milestone_index")
        if proposal_type == ProposalType.FUND_RELEASE:
            yes_index, no_index = find_yes_no_options(options)
            if yes_index is None or no_index is None:
                raise GovernanceValidationError("fund_release proposals need a yes option and a no option")

        points = await self.repository.get_reward_points(creator_address) or 0
        if points < self.settings.min_proposal_points:
            raise InsufficientPointsError(
                f"Creating a proposal requires {self.settings.min_proposal_points} points, "
                f"{creator_address} has {points}",
                available=points,
                required=self.settings.min_proposal_points,
            )

        now = self.clock.now()
        proposal = Proposal(
            proposal_id=new_proposal_id(),
            creator_address=creator_address,
            title=title,
            description=description,
            options=options,
            status=ProposalStatus.ACTIVE,
            total_votes=0,
            created_at=now,
            closes_at=now + timedelta(hours=duration_hours),
            proposal_type=proposal_type,
            campaign_id=campaign_id if proposal_type == ProposalType.FUND_RELEASE else None,
            milestone_index=milestone_index if proposal_type == ProposalType.FUND_RELEASE else None,
        )

        if proposal_type == ProposalType.FUND_RELEASE:
            campaign = await self.repository.get_campaign(campaign_id)
            if campaign is None:
                raise CampaignNotFoundError(f"Campaign {campaign_id} not found")
            milestone = await self.repository.get_milestone(campaign_id, milestone_index)
            if milestone is None:
                raise MilestoneNotFoundError(f"Milestone {milestone_index} of campaign {campaign_id} not found")

            stored = await self.proposal_factory.store_with_claim(proposal)
            if stored is None:
                raise MilestoneNotPendingError(
                    f"Milestone {milestone_index} of campaign {campaign_id} is not pending"
                )
            return stored

        stored = await self.repository.create_proposal(proposal)
        logger.info(f"Created proposal {stored.proposal_id} by {creator_address} ({len(options)} options)")

        if self.event_bus:
            await publish_proposal_created(self.event_bus, stored)

        return stored

    async def get_proposal(self, proposal_id: str) -> Proposal:
        proposal = await self.repository.get_proposal(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(f"Proposal {proposal_id} not found")
        return proposal

    async def list_proposals(
        self,
        status: Optional[Union[ProposalStatus, str]] = None,
        include_results: bool = True,
    ) -> List[ProposalSummary]:
        """Proposals newest first, enriched with live results and campaign recipients"""
        if status is not None:
            try:
                status = ProposalStatus(status)
            except ValueError:
                raise GovernanceValidationError(f"Unknown proposal status {status!r}")

        proposals = await self.repository.list_proposals(status=status)
        campaigns: Dict[str, Optional[Campaign]] = {}
        summaries = []

        for proposal in proposals:
            summary = ProposalSummary(**proposal.model_dump())

            if include_results:
                results = await self.tally_engine.get_results(proposal.proposal_id, proposal=proposal)
                summary.results = results.results
                summary.total_voters = results.total_voters
                summary.total_weight = results.total_weight

            if proposal.campaign_id:
                if proposal.campaign_id not in campaigns:
                    campaigns[proposal.campaign_id] = await self.repository.get_campaign(proposal.campaign_id)
                campaign = campaigns[proposal.campaign_id]
                if campaign is not None:
                    summary.recipient = ProposalRecipient(
                        campaign_id=campaign.campaign_id,
                        pool_id=campaign.pool_id,
                        address=campaign.recipient,
                    )

            summaries.append(summary)

        return summaries

    # ====================
    # Voting, tallies, execution
    # ====================

    async def cast_vote(self, proposal_id: str, voter_address: str, option_index: int) -> VoteReceipt:
        return await self.voting_service.cast_vote(proposal_id, voter_address, option_index)

    async def get_results(self, proposal_id: str) -> ProposalResults:
        return await self.tally_engine.get_results(proposal_id)

    async def list_votes(self, proposal_id: str) -> List[Vote]:
        await self.get_proposal(proposal_id)
        return await self.repository.list_votes(proposal_id)

    async def execute(self, proposal_id: str) -> ExecutionOutcome:
        return await self.execution_service.execute(proposal_id)

    async def health_check(self) -> bool:
        try:
            return await self.repository.health_check()
        except Exception as e:
            logger.warning(f"Repository health check failed: {e}")
            return False
