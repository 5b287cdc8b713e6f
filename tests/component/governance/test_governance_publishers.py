"""
Governance Event Publisher Component Tests
"""

from decimal import Decimal

import pytest

from microservices.governance_service.events.publishers import (
    publish_milestone_approved,
    publish_proposal_created,
    publish_proposal_executed,
    publish_vote_cast,
)
from microservices.governance_service.models import (
    ExecutionOutcome,
    MilestoneAction,
    ProposalType,
)


@pytest.mark.component
@pytest.mark.asyncio
class TestPublishers:

    async def test_proposal_created_payload(self, mock_event_bus, factory):
        proposal = factory.make_proposal(options=["A", "B", "C"])

        await publish_proposal_created(mock_event_bus, proposal)

        event = mock_event_bus.get_last_event()
        assert event["type"] == "governance.proposal.created"
        assert event["source"] == "governance_service"
        assert event["data"]["proposal_id"] == proposal.proposal_id
        assert event["data"]["options"] == ["A", "B", "C"]
        assert event["data"]["proposal_type"] == "general"

    async def test_vote_cast_payload(self, mock_event_bus, factory):
        vote = factory.make_vote("prop_1", 1, 42)

        await publish_vote_cast(mock_event_bus, vote)

        mock_event_bus.assert_event_published(
            "governance.vote.cast", {"proposal_id": "prop_1", "vote_option": 1, "vote_weight": 42}
        )

    async def test_proposal_executed_payload(self, mock_event_bus, factory):
        proposal = factory.make_proposal(
            proposal_type=ProposalType.FUND_RELEASE, campaign_id="cmp_1", milestone_index=2
        )
        outcome = ExecutionOutcome(
            approved=False,
            yes_weight=1,
            no_weight=3,
            total_voters=2,
            milestone_action=MilestoneAction.REJECTED,
            winning_option=1,
        )

        await publish_proposal_executed(mock_event_bus, proposal, outcome)

        data = mock_event_bus.assert_event_published("governance.proposal.executed")["data"]
        assert data["approved"] is False
        assert data["milestone_action"] == "rejected"
        assert data["campaign_id"] == "cmp_1"
        assert data["milestone_index"] == 2

    async def test_milestone_approved_release_amount(self, mock_event_bus, factory):
        campaign = factory.make_campaign(target_amount=Decimal("20"))
        milestone = factory.make_milestones(campaign.campaign_id, (40, 60))[1]
        proposal = factory.make_proposal(
            proposal_type=ProposalType.FUND_RELEASE, campaign_id=campaign.campaign_id, milestone_index=1
        )

        await publish_milestone_approved(mock_event_bus, proposal, campaign, milestone)

        data = mock_event_bus.assert_event_published("campaign.milestone.approved")["data"]
        assert Decimal(data["release_amount"]) == Decimal("12")
        assert data["percentage"] == 60
        assert data["pool_id"] == campaign.pool_id

    async def test_publish_failure_is_swallowed(self, mock_event_bus, factory):
        mock_event_bus.set_error(ConnectionError("nats down"))

        await publish_proposal_created(mock_event_bus, factory.make_proposal())

        mock_event_bus.assert_no_events_published()
