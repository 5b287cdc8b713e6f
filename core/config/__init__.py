#!/usr/bin/env python3
"""Modular configuration system for the governance platform

Configuration hierarchy:
- infra_config: Infrastructure endpoints (PostgreSQL, NATS)
- governance_config: Proposal, voting and milestone tunables
- logging_config: Logging configuration
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .governance_config import GovernanceSettings

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)

# Create global settings instance
settings = GovernanceSettings.from_env()

def get_settings() -> GovernanceSettings:
    """Get global governance settings instance"""
    return settings

def reload_settings() -> GovernanceSettings:
    """Reload settings from environment"""
    global settings
    settings = GovernanceSettings.from_env()
    return settings

__all__ = [
    'GovernanceSettings',
    'get_settings',
    'reload_settings',
    'settings',
    'LoggingConfig',
    'InfraConfig',
]
