"""
Governance Service Factory

Factory for creating GovernanceService with real dependencies.
This is the ONLY module that imports concrete implementations.
"""

import logging
from typing import Optional

from core.config_manager import ConfigManager

from .clock import SystemClock
from .governance_repository import GovernanceRepository
from .governance_service import GovernanceService

logger = logging.getLogger(__name__)


def create_governance_service(
    config: Optional[ConfigManager] = None,
    event_bus=None,
    clock=None,
) -> GovernanceService:
    """
    Create GovernanceService with all real dependencies

    Args:
        config: Optional config manager (creates default if not provided)
        event_bus: Optional event bus for event publishing
        clock: Optional time source (system clock if not provided)

    Returns:
        Fully initialized GovernanceService instance
    """
    # Initialize config if not provided
    if config is None:
        config = ConfigManager("governance_service")

    # Create repository
    repository = GovernanceRepository(config=config)
    settings = config.get_governance_settings()

    # Create and return service
    return GovernanceService(
        repository=repository,
        event_bus=event_bus,
        clock=clock or SystemClock(),
        settings=settings,
    )


__all__ = ["create_governance_service"]
