"""
Proposal Factory

Creates binary fund-release proposals for milestones whose threshold has
been crossed. The milestone is claimed (pending → proposing) before the
proposal is written, so concurrent donations crossing the same threshold
produce exactly one proposal.
"""

import logging
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from core.config import GovernanceSettings

from .events.publishers import publish_proposal_created
from .models import (
    FUND_RELEASE_OPTIONS,
    Campaign,
    Milestone,
    MilestoneStatus,
    Proposal,
    ProposalStatus,
    ProposalType,
)
from .protocols import Clock, GovernanceRepositoryProtocol

logger = logging.getLogger(__name__)


def new_proposal_id() -> str:
    return f"prop_{uuid.uuid4().hex[:16]}"


def format_amount(amount: Decimal) -> str:
    """Render a SOL amount with at most 4 decimals and no trailing zeros"""
    quantized = amount.quantize(Decimal("0.0001")).normalize()
    return format(quantized, "f")


def estimated_release_amount(campaign: Campaign, milestone: Milestone) -> Decimal:
    return Decimal(milestone.percentage) / 100 * campaign.target_amount


def build_fund_release_title(campaign: Campaign, milestone: Milestone) -> str:
    return (
        f"Release {milestone.percentage}% of funds for {campaign.pool_id}: "
        f"milestone {milestone.index + 1} reached"
    )


def build_fund_release_description(campaign: Campaign, milestone: Milestone) -> str:
    amount = format_amount(estimated_release_amount(campaign, milestone))
    raised = format_amount(campaign.total_raised)
    target = format_amount(campaign.target_amount)
    progress = campaign.progress_percentage()
    return (
        f'Milestone {milestone.index + 1} of campaign {campaign.pool_id} has been reached: '
        f'"{milestone.description}".\n\n'
        f"Vote to release {milestone.percentage}% of the campaign target "
        f"(about {amount} SOL) to {campaign.recipient}.\n\n"
        f"Campaign progress: {raised} / {target} SOL raised ({progress}%).\n\n"
        f"If approved, the campaign authority releases the funds on-chain. "
        f"If rejected, the milestone can be proposed again."
    )


class ProposalFactory:
    """Builds and stores fund-release proposals behind a milestone claim"""

    def __init__(
        self,
        repository: GovernanceRepositoryProtocol,
        clock: Clock,
        settings: Optional[GovernanceSettings] = None,
        event_bus=None,
    ):
        self.repository = repository
        self.clock = clock
        self.settings = settings or GovernanceSettings()
        self.event_bus = event_bus

    async def create_fund_release_proposal(
        self,
        campaign: Campaign,
        milestone: Milestone,
        creator_address: str,
    ) -> Optional[Proposal]:
        """
        Claim the milestone and create its auto-generated fund-release proposal.

        Returns:
            The proposal, or None if another caller already holds the claim
        """
        now = self.clock.now()
        proposal = Proposal(
            proposal_id=new_proposal_id(),
            creator_address=creator_address,
            title=build_fund_release_title(campaign, milestone),
            description=build_fund_release_description(campaign, milestone),
            options=list(FUND_RELEASE_OPTIONS),
            status=ProposalStatus.ACTIVE,
            total_votes=0,
            created_at=now,
            closes_at=now + timedelta(hours=self.settings.fund_release_window_hours),
            proposal_type=ProposalType.FUND_RELEASE,
            campaign_id=campaign.campaign_id,
            milestone_index=milestone.index,
        )
        return await self.store_with_claim(proposal)

    async def store_with_claim(self, proposal: Proposal) -> Optional[Proposal]:
        """
        Store a fund-release proposal behind the pending → proposing claim.

        Returns:
            The stored proposal, or None if the milestone was not pending

        Raises:
            Whatever the repository raised while creating the proposal; the
            claim is released first so the milestone can be retried
        """
        campaign_id = proposal.campaign_id
        index = proposal.milestone_index

        claimed = await self.repository.transition_milestone(
            campaign_id,
            index,
            MilestoneStatus.PENDING,
            MilestoneStatus.PROPOSING,
        )
        if not claimed:
            logger.info(
                f"Milestone {index} of campaign {campaign_id} already claimed, "
                f"skipping fund-release proposal"
            )
            return None

        try:
            stored = await self.repository.create_proposal(proposal)
        except Exception:
            released = await self.repository.transition_milestone(
                campaign_id,
                index,
                MilestoneStatus.PROPOSING,
                MilestoneStatus.PENDING,
            )
            logger.error(
                f"Fund-release proposal for milestone {index} of campaign "
                f"{campaign_id} failed (claim released={released})"
            )
            raise

        logger.info(
            f"Created fund-release proposal {stored.proposal_id} for milestone {index} "
            f"of campaign {campaign_id}"
        )

        if self.event_bus:
            await publish_proposal_created(self.event_bus, stored)

        return stored
