#!/usr/bin/env python3
"""
Core Module for the Governance Platform

Shared infrastructure components for the microservices in this repository.

COMPONENTS:
    - config/: Dataclass configuration loaded from environment (+ env files)
    - config_manager.py: Per-service configuration facade and discovery
    - logger.py: Process logging setup
    - postgres_client.py: asyncpg pool wrapper used by repositories
    - nats_client.py: NATS JetStream event bus

USAGE:
    from core.config_manager import ConfigManager

    # Initialize configuration for a service
    config = ConfigManager("governance_service")
"""

from .config_manager import ConfigManager, Environment, ServiceConfig, create_config

# Export public API
__all__ = [
    "ConfigManager",
    "Environment",
    "ServiceConfig",
    "create_config",
]

__version__ = "1.0.0"
