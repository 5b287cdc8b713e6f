"""
Governance Service Event Publishers

Publish proposal, vote and milestone events. Publishing is fire-and-forget:
failures are logged and never reach the caller.
"""

import logging
from decimal import Decimal
from typing import Optional

from core.nats_client import Event, ServiceSource

from ..models import Campaign, ExecutionOutcome, Milestone, Proposal, Vote
from .models import (
    GovernanceEventType,
    MilestoneApprovedEventData,
    ProposalCreatedEventData,
    ProposalExecutedEventData,
    VoteCastEventData,
)

logger = logging.getLogger(__name__)


async def publish_proposal_created(event_bus, proposal: Proposal):
    """
    Publish governance.proposal.created event

    Args:
        event_bus: NATS event bus instance
        proposal: The stored proposal
    """
    try:
        event_data = ProposalCreatedEventData(
            proposal_id=proposal.proposal_id,
            creator_address=proposal.creator_address,
            title=proposal.title,
            proposal_type=proposal.proposal_type.value,
            options=proposal.options,
            closes_at=proposal.closes_at,
            campaign_id=proposal.campaign_id,
            milestone_index=proposal.milestone_index,
        )

        event = Event(
            event_type=GovernanceEventType.PROPOSAL_CREATED.value,
            source=ServiceSource.GOVERNANCE_SERVICE,
            data=event_data.model_dump(mode='json'),
        )

        await event_bus.publish_event(event)
        logger.info(f"Published governance.proposal.created for {proposal.proposal_id}")

    except Exception as e:
        logger.error(f"Failed to publish governance.proposal.created for {proposal.proposal_id}: {e}")


async def publish_vote_cast(event_bus, vote: Vote):
    """Publish governance.vote.cast event"""
    try:
        event_data = VoteCastEventData(
            vote_id=vote.vote_id,
            proposal_id=vote.proposal_id,
            voter_address=vote.voter_address,
            vote_option=vote.vote_option,
            vote_weight=vote.vote_weight,
        )

        event = Event(
            event_type=GovernanceEventType.VOTE_CAST.value,
            source=ServiceSource.GOVERNANCE_SERVICE,
            data=event_data.model_dump(mode='json'),
        )

        await event_bus.publish_event(event)
        logger.info(f"Published governance.vote.cast for {vote.proposal_id} by {vote.voter_address}")

    except Exception as e:
        logger.error(f"Failed to publish governance.vote.cast for {vote.proposal_id}: {e}")


async def publish_proposal_executed(event_bus, proposal: Proposal, outcome: ExecutionOutcome):
    """Publish governance.proposal.executed event"""
    try:
        event_data = ProposalExecutedEventData(
            proposal_id=proposal.proposal_id,
            proposal_type=proposal.proposal_type.value,
            approved=outcome.approved,
            yes_weight=outcome.yes_weight,
            no_weight=outcome.no_weight,
            total_voters=outcome.total_voters,
            winning_option=outcome.winning_option,
            milestone_action=outcome.milestone_action.value if outcome.milestone_action else None,
            campaign_id=proposal.campaign_id,
            milestone_index=proposal.milestone_index,
        )

        event = Event(
            event_type=GovernanceEventType.PROPOSAL_EXECUTED.value,
            source=ServiceSource.GOVERNANCE_SERVICE,
            data=event_data.model_dump(mode='json'),
        )

        await event_bus.publish_event(event)
        logger.info(f"Published governance.proposal.executed for {proposal.proposal_id} (approved={outcome.approved})")

    except Exception as e:
        logger.error(f"Failed to publish governance.proposal.executed for {proposal.proposal_id}: {e}")


async def publish_milestone_approved(
    event_bus,
    proposal: Proposal,
    campaign: Optional[Campaign] = None,
    milestone: Optional[Milestone] = None,
):
    """Publish campaign.milestone.approved event"""
    try:
        release_amount = None
        if campaign is not None and milestone is not None:
            release_amount = Decimal(milestone.percentage) / 100 * campaign.target_amount

        event_data = MilestoneApprovedEventData(
            campaign_id=proposal.campaign_id,
            pool_id=campaign.pool_id if campaign else None,
            milestone_index=proposal.milestone_index,
            percentage=milestone.percentage if milestone else None,
            release_amount=release_amount,
            recipient=campaign.recipient if campaign else None,
            proposal_id=proposal.proposal_id,
        )

        event = Event(
            event_type=GovernanceEventType.MILESTONE_APPROVED.value,
            source=ServiceSource.GOVERNANCE_SERVICE,
            data=event_data.model_dump(mode='json'),
        )

        await event_bus.publish_event(event)
        logger.info(
            f"Published campaign.milestone.approved for campaign {proposal.campaign_id} "
            f"milestone {proposal.milestone_index}"
        )

    except Exception as e:
        logger.error(f"Failed to publish campaign.milestone.approved for {proposal.proposal_id}: {e}")
