"""
Governance Microservice API

Milestone-gated campaign governance: threshold detection on confirmed
donations, fund-release proposals, weighted voting and one-time execution.
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException

from core.config_manager import ConfigManager
from core.logger import setup_service_logger
from core.nats_client import get_event_bus

from .factory import create_governance_service
from .governance_repository import GovernanceRepository
from .governance_service import GovernanceService
from .models import (
    Campaign,
    CampaignCreateRequest,
    CampaignDetail,
    DonationAck,
    DonationConfirmedRequest,
    ExecutionOutcome,
    HealthResponse,
    Milestone,
    Proposal,
    ProposalCreateRequest,
    ProposalListResponse,
    ProposalResults,
    ProposalStatus,
    VoteListResponse,
    VoteReceipt,
    VoteRequest,
)
from .protocols import (
    GovernanceNotFoundError,
    GovernanceServiceError,
    GovernanceValidationError,
    StateConflictError,
)
from .routes_registry import SERVICE_METADATA, get_route_summary

# Initialize configuration manager
config_manager = ConfigManager("governance_service")
config = config_manager.get_service_config()

# Configure logging
logger = setup_service_logger("governance_service", level=config.log_level.upper())

# Print configuration info (development environment)
if config.debug:
    config_manager.print_config_summary(show_secrets=False)

# Global variables
governance_service: Optional[GovernanceService] = None
repository: Optional[GovernanceRepository] = None
event_bus = None  # NATS event bus
SERVICE_PORT = config.service_port or 8240


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    global governance_service, repository, event_bus

    try:
        # Initialize NATS JetStream event bus
        if config.nats_enabled:
            try:
                event_bus = await get_event_bus("governance_service", config=config_manager)
                logger.info("Event bus initialized successfully")
            except Exception as e:
                logger.warning(
                    f"Failed to initialize event bus: {e}. Continuing without event publishing."
                )
                event_bus = None

        # Create governance service using factory (with or without event bus)
        governance_service = create_governance_service(
            config=config_manager, event_bus=event_bus
        )

        # Initialize repository connection
        repository = governance_service.repository
        run_migrations = str(config_manager.get("RUN_MIGRATIONS", "false")).lower() == "true"
        await repository.initialize(run_migrations=run_migrations)

        # Subscribe to events if event bus is available
        if event_bus:
            try:
                from .events import get_event_handlers

                handler_map = get_event_handlers(governance_service)

                for pattern, handler_func in handler_map.items():
                    await event_bus.subscribe_to_events(
                        pattern=pattern,
                        handler=handler_func,
                        durable=f"governance-{pattern.replace('.', '-').replace('*', 'all')}-consumer",
                    )
                    logger.info(f"Subscribed to {pattern}")

                logger.info(
                    f"Governance event subscriber started ({len(handler_map)} event patterns)"
                )

            except Exception as e:
                logger.warning(f"Failed to subscribe to events: {e}")

        logger.info(f"Governance service started on port {SERVICE_PORT}")
        yield

    except Exception as e:
        logger.error(f"Failed to initialize governance service: {e}")
        raise
    finally:
        if event_bus:
            try:
                await event_bus.close()
                logger.info("Governance event bus closed")
            except Exception as e:
                logger.error(f"Error closing event bus: {e}")

        if repository:
            await repository.close()
            logger.info("Governance service database connections closed")


# Create FastAPI application
app = FastAPI(
    title="Governance Service",
    description="Milestone-gated fund release governance for charity campaigns",
    version="1.0.0",
    lifespan=lifespan,
)


# ====================
# Dependency Injection
# ====================


async def get_governance_service() -> GovernanceService:
    """Get governance service instance"""
    if not governance_service:
        raise HTTPException(status_code=503, detail="Governance service not initialized")
    return governance_service


def _http_error(e: GovernanceServiceError) -> HTTPException:
    """Map domain errors to HTTP status codes"""
    if isinstance(e, GovernanceValidationError):
        status_code = 400
    elif isinstance(e, GovernanceNotFoundError):
        status_code = 404
    elif isinstance(e, StateConflictError):
        status_code = 409
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail={"error": e.reason, "message": str(e)})


# ====================
# Health Check and Service Info
# ====================


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Basic health check"""
    dependencies = {}

    # Check database connection
    try:
        if governance_service:
            healthy = await governance_service.health_check()
            dependencies["database"] = "healthy" if healthy else "unhealthy"
        else:
            dependencies["database"] = "unhealthy"
    except Exception:
        dependencies["database"] = "unhealthy"

    # Check event bus
    if event_bus is not None and hasattr(event_bus, 'is_connected'):
        dependencies["event_bus"] = "healthy" if event_bus.is_connected else "unhealthy"
    else:
        dependencies["event_bus"] = "not_configured"

    status = "healthy" if all(v in ["healthy", "not_configured"] for v in dependencies.values()) else "degraded"

    return HealthResponse(
        status=status,
        service="governance_service",
        port=SERVICE_PORT,
        version="1.0.0",
        dependencies=dependencies,
    )


@app.get("/api/v1/governance/info")
async def service_info():
    """Service metadata and route summary"""
    return {**SERVICE_METADATA, "routes": get_route_summary()}


# ====================
# Campaigns
# ====================


@app.post("/api/v1/campaigns", response_model=CampaignDetail, status_code=201)
async def create_campaign(
    request: CampaignCreateRequest,
    service: GovernanceService = Depends(get_governance_service)
):
    """Create a campaign with 1-5 milestones whose percentages sum to 100"""
    try:
        return await service.create_campaign(request)
    except GovernanceServiceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error creating campaign: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.get("/api/v1/campaigns", response_model=List[Campaign])
async def list_campaigns(
    active_only: bool = False,
    service: GovernanceService = Depends(get_governance_service)
):
    """List campaigns newest first"""
    try:
        return await service.list_campaigns(active_only=active_only)
    except Exception as e:
        logger.error(f"Error listing campaigns: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.get("/api/v1/campaigns/{campaign_id}", response_model=CampaignDetail)
async def get_campaign(
    campaign_id: str,
    service: GovernanceService = Depends(get_governance_service)
):
    """Get campaign with milestones and progress"""
    try:
        return await service.get_campaign(campaign_id)
    except GovernanceServiceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error getting campaign {campaign_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.get("/api/v1/campaigns/{campaign_id}/milestones", response_model=List[Milestone])
async def get_milestones(
    campaign_id: str,
    service: GovernanceService = Depends(get_governance_service)
):
    """List a campaign's milestones in index order"""
    try:
        return await service.get_milestones(campaign_id)
    except GovernanceServiceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error listing milestones for {campaign_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


# ====================
# Donation pipeline
# ====================


@app.post("/api/v1/governance/donations/confirmed", response_model=DonationAck, status_code=202)
async def donation_confirmed(
    request: DonationConfirmedRequest,
    service: GovernanceService = Depends(get_governance_service)
):
    """Report a confirmed donation; threshold detection is best-effort"""
    try:
        created = await service.handle_donation_confirmed(
            pool_id=request.pool_id,
            donor_address=request.donor_address,
            amount=request.amount,
            transaction_signature=request.transaction_signature,
        )
    except Exception as e:
        logger.error(f"Threshold check failed for pool {request.pool_id}: {e}")
        created = []
    return DonationAck(accepted=True, proposals_created=[p.proposal_id for p in created])


# ====================
# Proposals
# ====================


@app.post("/api/v1/governance/proposals", response_model=Proposal, status_code=201)
async def create_proposal(
    request: ProposalCreateRequest,
    service: GovernanceService = Depends(get_governance_service)
):
    """Create a manual proposal (requires the minimum reward points)"""
    try:
        return await service.create_proposal(
            creator_address=request.creator_address,
            title=request.title,
            description=request.description,
            options=request.options,
            duration_hours=request.duration_hours,
            proposal_type=request.proposal_type,
            campaign_id=request.campaign_id,
            milestone_index=request.milestone_index,
        )
    except GovernanceServiceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error creating proposal: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.get("/api/v1/governance/proposals", response_model=ProposalListResponse)
async def list_proposals(
    status: Optional[ProposalStatus] = None,
    include_results: bool = True,
    service: GovernanceService = Depends(get_governance_service)
):
    """List proposals with live results and campaign recipients"""
    try:
        proposals = await service.list_proposals(status=status, include_results=include_results)
        return ProposalListResponse(proposals=proposals, count=len(proposals))
    except GovernanceServiceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error listing proposals: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.get("/api/v1/governance/proposals/{proposal_id}", response_model=ProposalResults)
async def get_results(
    proposal_id: str,
    service: GovernanceService = Depends(get_governance_service)
):
    """Live results for a proposal"""
    try:
        return await service.get_results(proposal_id)
    except GovernanceServiceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error getting results for {proposal_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.get("/api/v1/governance/proposals/{proposal_id}/votes", response_model=VoteListResponse)
async def list_votes(
    proposal_id: str,
    service: GovernanceService = Depends(get_governance_service)
):
    """List the votes cast on a proposal"""
    try:
        votes = await service.list_votes(proposal_id)
        return VoteListResponse(proposal_id=proposal_id, votes=votes, count=len(votes))
    except GovernanceServiceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error listing votes for {proposal_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.post("/api/v1/governance/proposals/{proposal_id}/votes", response_model=VoteReceipt, status_code=201)
async def cast_vote(
    proposal_id: str,
    request: VoteRequest,
    service: GovernanceService = Depends(get_governance_service)
):
    """Cast a vote weighted by the voter's reward points"""
    try:
        return await service.cast_vote(
            proposal_id=proposal_id,
            voter_address=request.voter_address,
            option_index=request.option_index,
        )
    except GovernanceServiceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error casting vote on {proposal_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.post("/api/v1/governance/proposals/{proposal_id}/execute", response_model=ExecutionOutcome)
async def execute_proposal(
    proposal_id: str,
    service: GovernanceService = Depends(get_governance_service)
):
    """Execute a proposal whose voting window has closed"""
    try:
        return await service.execute(proposal_id)
    except GovernanceServiceError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error executing proposal {proposal_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "microservices.governance_service.main:app",
        host=config.service_host,
        port=SERVICE_PORT,
        reload=config.debug,
        log_level=config.log_level.lower(),
    )
