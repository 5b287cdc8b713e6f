"""
Governance API Component Tests

HTTP surface of the governance service with the in-memory repository
injected in place of the lifespan-built service.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from microservices.governance_service import main
from microservices.governance_service.models import MilestoneStatus, ProposalType


@pytest.fixture
def client(governance_service, monkeypatch):
    monkeypatch.setattr(main, "governance_service", governance_service)
    return AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


@pytest.mark.component
@pytest.mark.asyncio
class TestHealthAndInfo:

    async def test_health(self, client):
        async with client:
            response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "governance_service"
        assert data["dependencies"]["database"] == "healthy"
        assert data["dependencies"]["event_bus"] == "not_configured"
        assert data["status"] == "healthy"

    async def test_health_degraded(self, client, mock_repository):
        mock_repository.healthy = False

        async with client:
            response = await client.get("/health")

        assert response.json()["status"] == "degraded"

    async def test_service_info(self, client):
        async with client:
            response = await client.get("/api/v1/governance/info")

        assert response.status_code == 200
        assert response.json()["routes"]["route_count"] > 0

    async def test_uninitialized_service(self, monkeypatch):
        monkeypatch.setattr(main, "governance_service", None)

        async with AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test") as client:
            response = await client.get("/api/v1/governance/proposals")

        assert response.status_code == 503


@pytest.mark.component
@pytest.mark.asyncio
class TestCampaignEndpoints:

    async def test_create_and_fetch_campaign(self, client, factory, assertions):
        request = factory.make_campaign_request(target_amount=Decimal("12.5"))

        async with client:
            created = await client.post("/api/v1/campaigns", json=request.model_dump(mode="json"))
            assertions.assert_http_success(created, 201)
            campaign_id = created.json()["campaign_id"]

            fetched = await client.get(f"/api/v1/campaigns/{campaign_id}")
            milestones = await client.get(f"/api/v1/campaigns/{campaign_id}/milestones")
            listed = await client.get("/api/v1/campaigns", params={"active_only": True})

        assertions.assert_has_fields(fetched.json(), ["pool_id", "recipient", "milestones", "progress"])
        assert Decimal(fetched.json()["target_amount"]) == Decimal("12.5")
        assert [m["status"] for m in milestones.json()] == ["pending"] * 3
        assert [c["campaign_id"] for c in listed.json()] == [campaign_id]

    async def test_bad_percentages(self, client, factory, assertions):
        request = factory.make_campaign_request(percentages=(50, 40))

        async with client:
            response = await client.post("/api/v1/campaigns", json=request.model_dump(mode="json"))

        assertions.assert_error_reason(response, 400, "validation_error")

    async def test_duplicate_pool(self, client, factory, assertions):
        request = factory.make_campaign_request(pool_id="pool-dup")

        async with client:
            await client.post("/api/v1/campaigns", json=request.model_dump(mode="json"))
            response = await client.post("/api/v1/campaigns", json=request.model_dump(mode="json"))

        assertions.assert_error_reason(response, 409, "campaign_already_exists")

    async def test_unknown_campaign(self, client, assertions):
        async with client:
            response = await client.get("/api/v1/campaigns/cmp_missing")

        assertions.assert_error_reason(response, 404, "campaign_not_found")


@pytest.mark.component
@pytest.mark.asyncio
class TestDonationEndpoint:

    async def test_donation_reports_created_proposals(self, client, mock_repository, factory):
        campaign, _ = mock_repository.seed_campaign()

        async with client:
            response = await client.post(
                "/api/v1/governance/donations/confirmed",
                json={"pool_id": campaign.pool_id, "donor_address": factory.make_address(), "amount": "3.5"},
            )

        assert response.status_code == 202
        data = response.json()
        assert data["accepted"] is True
        assert len(data["proposals_created"]) == 1
        assert data["proposals_created"][0] in mock_repository.proposals

    async def test_retried_donation_counts_once(self, client, mock_repository, factory):
        campaign, _ = mock_repository.seed_campaign(target_amount=Decimal("100"))
        body = {
            "pool_id": campaign.pool_id,
            "donor_address": factory.make_address(),
            "amount": "2",
            "transaction_signature": "sig-1",
        }

        async with client:
            first = await client.post("/api/v1/governance/donations/confirmed", json=body)
            retry = await client.post("/api/v1/governance/donations/confirmed", json=body)

        assert first.status_code == 202
        assert retry.status_code == 202
        assert mock_repository.campaigns[campaign.campaign_id].total_raised == Decimal("2")

    async def test_donation_failure_still_accepted(self, client, mock_repository, factory):
        mock_repository.fail_get_campaign_by_pool = True

        async with client:
            response = await client.post(
                "/api/v1/governance/donations/confirmed",
                json={"pool_id": "pool-x", "donor_address": factory.make_address(), "amount": 1},
            )

        assert response.status_code == 202
        assert response.json()["proposals_created"] == []

    async def test_non_positive_amount_rejected_by_schema(self, client, factory):
        async with client:
            response = await client.post(
                "/api/v1/governance/donations/confirmed",
                json={"pool_id": "pool-x", "donor_address": factory.make_address(), "amount": 0},
            )

        assert response.status_code == 422


@pytest.mark.component
@pytest.mark.asyncio
class TestProposalEndpoints:

    async def test_proposal_lifecycle_over_http(self, client, mock_repository, factory, clock):
        creator, voter = factory.make_address(), factory.make_address()
        mock_repository.add_user(creator, 500)
        mock_repository.add_user(voter, 70)

        async with client:
            created = await client.post(
                "/api/v1/governance/proposals",
                json={
                    "creator_address": creator,
                    "title": "Community fund",
                    "description": "Which cause next?",
                    "options": ["Water", "Schools"],
                    "duration_hours": 24,
                },
            )
            assert created.status_code == 201
            proposal_id = created.json()["proposal_id"]

            vote = await client.post(
                f"/api/v1/governance/proposals/{proposal_id}/votes",
                json={"voter_address": voter, "option_index": 1},
            )
            assert vote.status_code == 201
            assert vote.json()["weight"] == 70

            early = await client.post(f"/api/v1/governance/proposals/{proposal_id}/execute")
            assert early.status_code == 409
            assert early.json()["detail"]["error"] == "voting_still_open"

            clock.advance(hours=24)
            executed = await client.post(f"/api/v1/governance/proposals/{proposal_id}/execute")
            results = await client.get(f"/api/v1/governance/proposals/{proposal_id}")
            votes = await client.get(f"/api/v1/governance/proposals/{proposal_id}/votes")
            listing = await client.get("/api/v1/governance/proposals", params={"status": "executed"})

        assert executed.status_code == 200
        assert executed.json()["approved"] is True
        assert executed.json()["winning_option"] == 1
        assert results.json()["results"][1]["total_weight"] == 70
        assert votes.json()["count"] == 1
        assert listing.json()["count"] == 1
        assert listing.json()["proposals"][0]["status"] == "executed"

    async def test_insufficient_points(self, client, mock_repository, factory, assertions):
        creator = factory.make_address()
        mock_repository.add_user(creator, 10)

        async with client:
            response = await client.post(
                "/api/v1/governance/proposals",
                json={"creator_address": creator, "title": "t", "description": "d", "options": ["A", "B"]},
            )

        assertions.assert_error_reason(response, 409, "insufficient_points")

    async def test_duplicate_vote_conflict(self, client, mock_repository, factory, assertions):
        proposal = mock_repository.seed_proposal(factory.make_proposal())
        voter = factory.make_address()
        mock_repository.add_user(voter, 5)

        async with client:
            await client.post(
                f"/api/v1/governance/proposals/{proposal.proposal_id}/votes",
                json={"voter_address": voter, "option_index": 0},
            )
            response = await client.post(
                f"/api/v1/governance/proposals/{proposal.proposal_id}/votes",
                json={"voter_address": voter, "option_index": 1},
            )

        assertions.assert_error_reason(response, 409, "duplicate_vote")

    async def test_vote_errors_map_to_status_codes(self, client, mock_repository, factory, assertions, clock):
        proposal = mock_repository.seed_proposal(factory.make_proposal())
        voter = factory.make_address()
        mock_repository.add_user(voter, 5)

        async with client:
            missing = await client.post(
                "/api/v1/governance/proposals/prop_missing/votes",
                json={"voter_address": voter, "option_index": 0},
            )
            unregistered = await client.post(
                f"/api/v1/governance/proposals/{proposal.proposal_id}/votes",
                json={"voter_address": factory.make_address(), "option_index": 0},
            )
            out_of_range = await client.post(
                f"/api/v1/governance/proposals/{proposal.proposal_id}/votes",
                json={"voter_address": voter, "option_index": 9},
            )
            clock.advance(hours=72)
            expired = await client.post(
                f"/api/v1/governance/proposals/{proposal.proposal_id}/votes",
                json={"voter_address": voter, "option_index": 0},
            )

        assertions.assert_error_reason(missing, 404, "proposal_not_found")
        assertions.assert_error_reason(unregistered, 404, "voter_not_registered")
        assertions.assert_error_reason(out_of_range, 400, "validation_error")
        assertions.assert_error_reason(expired, 409, "proposal_expired")

    async def test_listing_includes_fund_release_recipient(self, client, mock_repository, factory):
        campaign, _ = mock_repository.seed_campaign(
            statuses=[MilestoneStatus.PROPOSING, MilestoneStatus.PENDING, MilestoneStatus.PENDING]
        )
        mock_repository.seed_proposal(
            factory.make_proposal(
                proposal_type=ProposalType.FUND_RELEASE, campaign_id=campaign.campaign_id, milestone_index=0
            )
        )

        async with client:
            response = await client.get("/api/v1/governance/proposals")

        proposal = response.json()["proposals"][0]
        assert proposal["recipient"]["address"] == campaign.recipient
        assert proposal["results"][0]["option"].startswith("Yes")

    async def test_unknown_status_filter_is_rejected(self, client):
        async with client:
            response = await client.get("/api/v1/governance/proposals", params={"status": "closed"})

        assert response.status_code == 422

    async def test_execute_twice(self, client, mock_repository, factory, clock, assertions):
        proposal = mock_repository.seed_proposal(factory.make_proposal())
        clock.set(proposal.closes_at + timedelta(minutes=1))

        async with client:
            first = await client.post(f"/api/v1/governance/proposals/{proposal.proposal_id}/execute")
            second = await client.post(f"/api/v1/governance/proposals/{proposal.proposal_id}/execute")

        assert first.status_code == 200
        assertions.assert_error_reason(second, 409, "already_executed")
