"""
Governance Service Event Handlers

Handle events from other services that drive governance operations.
"""

import logging
from typing import Any, Dict, Union

from pydantic import ValidationError

from .models import DonationConfirmedEventData

logger = logging.getLogger(__name__)


def extract_event_data(event_or_data: Union[Dict[str, Any], Any]) -> Dict[str, Any]:
    """
    Extract data from either an Event object or a raw dict.

    Handles both:
    - Event objects with .data attribute (from NATS)
    - Raw dict (for testing or direct calls)
    """
    if hasattr(event_or_data, 'data'):
        return event_or_data.data
    return event_or_data


# ============================================================================
# Event Handlers
# ============================================================================


async def handle_donation_confirmed(event_or_data: Union[Dict[str, Any], Any], governance_service=None):
    """
    Handle donation.confirmed event from the donation pipeline

    Feeds the threshold monitor, which may auto-create fund-release
    proposals for crossed milestones.

    Event data:
        - pool_id: Charity pool the donation went to
        - donor_address: Donor wallet address (also accepted as `donor`)
        - amount: Donated amount (SOL)
        - transaction_signature: On-chain signature (optional; redeliveries are applied once)
    """
    try:
        event_data = dict(extract_event_data(event_or_data) or {})
        if "donor_address" not in event_data and "donor" in event_data:
            event_data["donor_address"] = event_data["donor"]

        try:
            donation = DonationConfirmedEventData(**event_data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed donation.confirmed event {event_data}: {e.error_count()} error(s)")
            return

        logger.info(
            f"Processing donation.confirmed for pool {donation.pool_id}: "
            f"{donation.amount} from {donation.donor_address}"
        )

        if governance_service:
            created = await governance_service.handle_donation_confirmed(
                pool_id=donation.pool_id,
                donor_address=donation.donor_address,
                amount=donation.amount,
                transaction_signature=donation.transaction_signature,
            )
            if created:
                logger.info(f"Donation to pool {donation.pool_id} opened {len(created)} fund-release proposal(s)")

    except Exception as e:
        logger.error(f"Error handling donation.confirmed event: {e}")


# ============================================================================
# Event Handler Registry
# ============================================================================


def get_event_handlers(governance_service=None) -> Dict[str, callable]:
    """
    Return a mapping of event types to handler functions

    This will be used in main.py to register event subscriptions

    Events subscribed:
        - donation.confirmed: Threshold check and fund-release proposals
    """
    return {
        "donation.confirmed": lambda event: handle_donation_confirmed(event, governance_service),
    }
