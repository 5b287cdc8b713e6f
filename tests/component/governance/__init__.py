"""
Governance Service Component Tests

Component tests for governance_service exercising the business components
against an in-memory repository, a frozen clock and a mocked event bus.

Structure:
- conftest.py: MockGovernanceRepository and service fixtures
- test_threshold_monitor.py: Donation totals and milestone crossing
- test_proposal_factory.py: Milestone claim and auto-proposal creation
- test_voting_service.py: Weighted voting and check ordering
- test_tally_engine.py: Live results
- test_execution_service.py: Decisions and milestone side effects
- test_governance_service.py: Campaigns, manual proposals, end-to-end flow
- test_governance_concurrency.py: Racing donations, votes and executions
- test_governance_event_handlers.py / test_governance_publishers.py: Events
- test_governance_repository.py: SQL layer against MockPostgresClient
- test_governance_api.py: HTTP surface

Markers:
- @pytest.mark.component: Component test marker
- @pytest.mark.asyncio: Async test marker

Usage:
    pytest tests/component/governance -v
"""
