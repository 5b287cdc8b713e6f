#!/usr/bin/env python3
"""
Centralized configuration management for microservices

Combines the dataclass configs in core.config into a per-service view:
service identity and port, log level, NATS settings, infrastructure
endpoints and governance tunables. Everything is read from environment
variables (optionally populated from an env file by core.config).

Usage:
    from core.config_manager import ConfigManager

    config_manager = ConfigManager("governance_service")
    config = config_manager.get_service_config()
    host, port = config_manager.discover_service(
        service_name="postgres_service",
        default_host="localhost",
        default_port=5432,
        env_host_key="POSTGRES_HOST",
        env_port_key="POSTGRES_PORT",
    )
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .config import GovernanceSettings, InfraConfig, LoggingConfig

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "Environment":
        aliases = {"dev": cls.DEVELOPMENT, "test": cls.TESTING, "prod": cls.PRODUCTION}
        if not value:
            return cls.DEVELOPMENT
        value = value.lower()
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            return cls.DEVELOPMENT


@dataclass
class ServiceConfig:
    """Runtime settings for one service process"""
    service_name: str
    environment: Environment = Environment.DEVELOPMENT
    service_host: str = "0.0.0.0"
    service_port: int = 8240
    log_level: str = "INFO"
    debug: bool = False

    # Event bus
    nats_enabled: bool = True
    nats_url: str = "nats://localhost:4222"


def _bool(val: Optional[str], default: bool = False) -> bool:
    if val is None or val == "":
        return default
    return val.lower() in ("true", "1", "yes")


def _int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


class ConfigManager:
    """Per-service configuration facade"""

    # Default ports by service, overridable with <SERVICE>_PORT or PORT
    SERVICE_PORTS = {
        "governance_service": 8240,
    }

    def __init__(self, service_name: str, environment: Optional[str] = None):
        self.service_name = service_name
        self.environment = Environment.from_value(
            environment or os.getenv("ENV") or os.getenv("ENVIRONMENT")
        )
        self._service_config: Optional[ServiceConfig] = None

    @property
    def env_prefix(self) -> str:
        return self.service_name.upper()

    def get(self, key: str, default: Any = None) -> Any:
        """Read a raw setting, preferring the service-prefixed variant"""
        prefixed = os.getenv(f"{self.env_prefix}_{key}")
        if prefixed is not None:
            return prefixed
        return os.getenv(key, default)

    def get_service_config(self) -> ServiceConfig:
        if self._service_config is None:
            infra = self.get_infra_config()
            logging_config = LoggingConfig.from_env()
            default_port = self.SERVICE_PORTS.get(self.service_name, 8000)
            self._service_config = ServiceConfig(
                service_name=self.service_name,
                environment=self.environment,
                service_host=self.get("HOST", "0.0.0.0"),
                service_port=_int(self.get("PORT"), default_port),
                log_level=(self.get("LOG_LEVEL") or logging_config.log_level).upper(),
                debug=_bool(self.get("DEBUG"), self.environment == Environment.DEVELOPMENT),
                nats_enabled=infra.nats_enabled,
                nats_url=infra.resolved_nats_url,
            )
        return self._service_config

    def get_infra_config(self) -> InfraConfig:
        return InfraConfig.from_env()

    def get_logging_config(self) -> LoggingConfig:
        return LoggingConfig.from_env()

    def get_governance_settings(self) -> GovernanceSettings:
        return GovernanceSettings.from_env()

    def discover_service(
        self,
        service_name: str,
        default_host: str,
        default_port: int,
        env_host_key: Optional[str] = None,
        env_port_key: Optional[str] = None,
    ) -> Tuple[str, int]:
        """
        Resolve host/port for a dependency.

        Priority: explicit env keys → <SERVICE_NAME>_HOST/_PORT → defaults.
        """
        generic_prefix = service_name.upper()
        host = None
        port = None
        if env_host_key:
            host = os.getenv(env_host_key)
        if env_port_key:
            port = os.getenv(env_port_key)
        host = host or os.getenv(f"{generic_prefix}_HOST") or default_host
        port = _int(port or os.getenv(f"{generic_prefix}_PORT"), default_port)
        logger.debug(f"Resolved {service_name} for {self.service_name}: {host}:{port}")
        return host, port

    def print_config_summary(self, show_secrets: bool = False):
        """Log the effective configuration"""
        config = self.get_service_config()
        infra = self.get_infra_config()
        governance = self.get_governance_settings()
        password = infra.postgres_password if show_secrets else "***"
        summary: Dict[str, Any] = {
            "service": config.service_name,
            "environment": config.environment.value,
            "listen": f"{config.service_host}:{config.service_port}",
            "log_level": config.log_level,
            "debug": config.debug,
            "nats": config.nats_url if config.nats_enabled else "disabled",
            "postgres": f"{infra.postgres_user}:{password}@{infra.postgres_host}:{infra.postgres_port}/{infra.postgres_db}",
            "min_proposal_points": governance.min_proposal_points,
            "fund_release_window_hours": governance.fund_release_window_hours,
        }
        logger.info(f"Configuration summary for {self.service_name}:")
        for key, value in summary.items():
            logger.info(f"  {key}: {value}")


def create_config(service_name: str) -> ConfigManager:
    return ConfigManager(service_name)
