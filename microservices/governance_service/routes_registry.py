"""
Governance Service Routes Registry
Defines all API routes exposed by the service; served by the info endpoint.
"""
from typing import List, Dict, Any

SERVICE_ROUTES = [
    # Health and Service Info
    {
        "path": "/health",
        "methods": ["GET"],
        "auth_required": False,
        "description": "Basic health check endpoint"
    },
    {
        "path": "/api/v1/governance/info",
        "methods": ["GET"],
        "auth_required": False,
        "description": "Service metadata and route summary"
    },
    # Campaigns
    {
        "path": "/api/v1/campaigns",
        "methods": ["GET", "POST"],
        "auth_required": False,
        "description": "List campaigns (GET) or create campaign with milestones (POST)"
    },
    {
        "path": "/api/v1/campaigns/{campaign_id}",
        "methods": ["GET"],
        "auth_required": False,
        "description": "Get campaign with milestones and progress"
    },
    {
        "path": "/api/v1/campaigns/{campaign_id}/milestones",
        "methods": ["GET"],
        "auth_required": False,
        "description": "List campaign milestones in order"
    },
    # Donation pipeline
    {
        "path": "/api/v1/governance/donations/confirmed",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Report a confirmed donation (threshold check, best-effort)"
    },
    # Proposals
    {
        "path": "/api/v1/governance/proposals",
        "methods": ["GET", "POST"],
        "auth_required": False,
        "description": "List proposals with live results (GET) or create proposal (POST)"
    },
    {
        "path": "/api/v1/governance/proposals/{proposal_id}",
        "methods": ["GET"],
        "auth_required": False,
        "description": "Get live results for a proposal"
    },
    {
        "path": "/api/v1/governance/proposals/{proposal_id}/votes",
        "methods": ["GET", "POST"],
        "auth_required": False,
        "description": "List votes (GET) or cast a weighted vote (POST)"
    },
    {
        "path": "/api/v1/governance/proposals/{proposal_id}/execute",
        "methods": ["POST"],
        "auth_required": False,
        "description": "Execute a closed proposal exactly once"
    },
]


def get_route_summary() -> Dict[str, Any]:
    """
    Compact route metadata grouped by area.

    Returns:
        Dict with route counts and comma-joined paths per group
    """
    health_routes: List[str] = []
    campaign_routes: List[str] = []
    proposal_routes: List[str] = []
    donation_routes: List[str] = []
    for route in SERVICE_ROUTES:
        path = route["path"]
        if path.startswith("/health") or path.endswith("/info"):
            health_routes.append(path)
        elif path.startswith("/api/v1/campaigns"):
            campaign_routes.append(path.replace("/api/v1/campaigns", "") or "/")
        elif "donations" in path:
            donation_routes.append(path.replace("/api/v1/governance/", ""))
        else:
            proposal_routes.append(path.replace("/api/v1/governance/", ""))
    return {
        "route_count": len(SERVICE_ROUTES),
        "base_path": "/api/v1/governance",
        "health": ",".join(health_routes),
        "campaigns": ",".join(campaign_routes),
        "proposals": ",".join(proposal_routes),
        "donations": ",".join(donation_routes),
        "public_count": sum(1 for r in SERVICE_ROUTES if not r["auth_required"]),
        "protected_count": sum(1 for r in SERVICE_ROUTES if r["auth_required"]),
    }


# Service metadata
SERVICE_METADATA = {
    "service_name": "governance_service",
    "version": "1.0.0",
    "tags": ["v1", "governance", "campaigns", "milestones"],
    "capabilities": [
        "campaign_milestones",
        "threshold_detection",
        "fund_release_proposals",
        "weighted_voting",
        "live_tally",
        "one_time_execution",
        "event_driven"
    ]
}
