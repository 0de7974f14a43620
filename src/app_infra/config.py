"""Configuration management for App Infra.

Provides environment-specific configuration loading and validation for the
container service deployment (network, database, service, load balancer, DNS).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_REGION = "eu-central-1"
DEFAULT_IMAGE = "751236674196.dkr.ecr.eu-central-1.amazonaws.com/new-app-with-db"

# Fargate CPU units -> allowed memory (MiB)
FARGATE_SIZES: dict[int, list[int]] = {
    256: [512, 1024, 2048],
    512: list(range(1024, 4097, 1024)),
    1024: list(range(2048, 8193, 1024)),
    2048: list(range(4096, 16385, 1024)),
    4096: list(range(8192, 30721, 1024)),
    8192: list(range(16384, 61441, 4096)),
    16384: list(range(32768, 122881, 8192)),
}


class NetworkConfig(BaseModel):
    """Configuration for the VPC."""

    max_azs: int = Field(2, ge=1, description="Number of availability zones")
    nat_gateways: int = Field(1, ge=0, description="Number of NAT gateways")
    cidr_mask: int = Field(24, ge=16, le=28, description="CIDR mask for every subnet")


class DatabaseConfig(BaseModel):
    """Configuration for the Aurora PostgreSQL cluster and its credentials."""

    secret_name: str = Field("db-credentials", description="Secrets Manager name for DB credentials")
    username: str = Field("postgres", description="Master username")
    engine_version: str = Field("13.18", description="Aurora PostgreSQL full engine version")
    instance_type: str = Field("r5.large", description="Instance type (without the db. prefix)")
    instances: int = Field(1, ge=1, description="Cluster instances (one writer, the rest readers)")
    port: int = Field(5432, ge=1, le=65535, description="Database port")
    database_name: str = Field("postgres", description="Default database name")
    publicly_accessible: bool = Field(True, description="Expose instances on public subnets")
    allowed_cidr: str = Field("0.0.0.0/0", description="CIDR allowed to reach the database port")
    deletion_protection: bool = Field(False, description="Enable cluster deletion protection")

    @field_validator("engine_version")
    @classmethod
    def validate_engine_version(cls, v: str) -> str:
        """Require a MAJOR.MINOR version string."""
        parts = v.split(".")
        if len(parts) < 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Engine version must look like MAJOR.MINOR, got: {v}")
        return v

    @property
    def engine_major_version(self) -> str:
        return self.engine_version.split(".")[0]


class ContainerConfig(BaseModel):
    """Configuration for the Fargate task, container, and service."""

    image: str = Field(DEFAULT_IMAGE, description="Container image reference in a registry")
    cpu: int = Field(256, description="Fargate CPU units")
    memory_mib: int = Field(512, description="Fargate memory in MiB")
    container_port: int = Field(8080, ge=1, le=65535, description="Port the container listens on")
    desired_count: int = Field(1, ge=0, description="Desired number of running tasks")
    assign_public_ip: bool = Field(True, description="Assign public IPs to tasks")
    log_stream_prefix: str = Field("AppContainer", description="awslogs stream prefix")
    environment: dict[str, str] = Field(
        default_factory=dict, description="Extra plain environment variables for the container"
    )

    @model_validator(mode="after")
    def validate_fargate_size(self) -> "ContainerConfig":
        """Reject CPU/memory pairs Fargate does not offer."""
        allowed = FARGATE_SIZES.get(self.cpu)
        if allowed is None:
            raise ValueError(f"CPU must be one of: {sorted(FARGATE_SIZES)}")
        if self.memory_mib not in allowed:
            raise ValueError(
                f"Memory {self.memory_mib} MiB is not valid for {self.cpu} CPU units "
                f"(allowed: {allowed[0]}-{allowed[-1]})"
            )
        return self


class LoadBalancerConfig(BaseModel):
    """Configuration for the application load balancer."""

    name: str = Field("AppALB", description="Load balancer name")
    internet_facing: bool = Field(True, description="Internet-facing scheme")
    listener_port: int = Field(80, ge=1, le=65535, description="HTTP listener port")
    ingress_ports: list[int] = Field(
        default_factory=lambda: [80, 443], description="Ports open to any IPv4 on the LB security group"
    )
    health_check_path: str = Field("/hello", description="Target group health check path")
    healthy_http_codes: str = Field("200", description="Healthy HTTP codes, e.g. 200 or 200-299")

    @field_validator("health_check_path")
    @classmethod
    def validate_health_check_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("Health check path must start with '/'")
        return v


class DnsConfig(BaseModel):
    """Configuration for the Route 53 alias record."""

    domain_name: str = Field("cloud-sai.com", description="Hosted zone domain name")
    record_name: str = Field("be.cloud-sai.com", description="Record pointing at the load balancer")
    hosted_zone_id: str | None = Field(None, description="Import the zone by id instead of looking it up")

    @model_validator(mode="after")
    def validate_record_in_zone(self) -> "DnsConfig":
        domain = self.domain_name.rstrip(".")
        record = self.record_name.rstrip(".")
        if record != domain and not record.endswith(f".{domain}"):
            raise ValueError(f"Record {self.record_name} is not inside zone {self.domain_name}")
        return self


class AppInfraConfig(BaseModel):
    """Main configuration class for App Infra."""

    # Environment
    environment: str = Field(..., description="Deployment environment")
    stack_name: str = Field("AppCdkInfraStack", description="CloudFormation stack name")
    aws_region: str = Field(DEFAULT_REGION, description="AWS region")
    aws_account_id: str | None = Field(None, description="AWS account ID")

    cluster_name: str = Field("AppCluster", description="ECS cluster name")

    # Sub-configurations
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    container: ContainerConfig = Field(default_factory=ContainerConfig)
    load_balancer: LoadBalancerConfig = Field(default_factory=LoadBalancerConfig)
    dns: DnsConfig = Field(default_factory=DnsConfig)

    # Logging
    log_level: str = Field("INFO", description="Logging level")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment values."""
        allowed_envs = ["dev", "staging", "prod"]
        if v not in allowed_envs:
            raise ValueError(f"Environment must be one of: {allowed_envs}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level values."""
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"Log level must be one of: {allowed_levels}")
        return v.upper()

    @property
    def service_url(self) -> str:
        return f"http://{self.dns.record_name.rstrip('.')}"

    @classmethod
    def from_env(cls, environment: str | None = None) -> "AppInfraConfig":
        """Load configuration from environment variables on top of the environment defaults."""
        environment = environment or os.environ.get("ENVIRONMENT", "dev")

        return cls(**_deep_merge(get_default_config(environment), _env_overrides()))

    @classmethod
    def from_yaml(cls, path: str | Path) -> "AppInfraConfig":
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file

        Returns:
            AppInfraConfig instance loaded from the file
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        # Try to infer environment from filename if not provided
        if "environment" not in data:
            stem = config_path.stem.lower()
            if stem in {"dev", "staging", "prod"}:
                data["environment"] = stem
            else:
                data["environment"] = os.environ.get("ENVIRONMENT", "dev")

        return cls(**_merge_layers(data["environment"], data))


def _account_from_env() -> str | None:
    return os.getenv("CDK_DEFAULT_ACCOUNT") or os.getenv("AWS_ACCOUNT_ID")


def _env_overrides() -> dict[str, Any]:
    """Collect the settings that environment variables (or .env) may override."""
    overrides: dict[str, Any] = {}
    account = _account_from_env()
    if account:
        overrides["aws_account_id"] = account
    if os.environ.get("LOG_LEVEL"):
        overrides["log_level"] = os.environ["LOG_LEVEL"]
    if os.environ.get("CONTAINER_IMAGE"):
        overrides["container"] = {"image": os.environ["CONTAINER_IMAGE"]}
    if os.environ.get("HOSTED_ZONE_ID"):
        overrides["dns"] = {"hosted_zone_id": os.environ["HOSTED_ZONE_ID"]}
    return overrides


def _merge_layers(environment: str, file_data: dict[str, Any]) -> dict[str, Any]:
    """Environment defaults, then file data, then environment variables.

    An account set in the file wins over the one from the environment.
    """
    overrides = _env_overrides()
    if file_data.get("aws_account_id"):
        overrides.pop("aws_account_id", None)
    return _deep_merge(_deep_merge(get_default_config(environment), file_data), overrides)


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(environment: str, config_path: Path | None = None) -> AppInfraConfig:
    """Load configuration for the specified environment.

    Args:
        environment: Target environment (dev/staging/prod)
        config_path: Optional custom config file path

    Returns:
        Loaded configuration object

    Raises:
        FileNotFoundError: If config file is not found
        ValueError: If configuration is invalid
    """
    if config_path is None:
        config_dir = Path(__file__).parent.parent.parent / "config"
        config_path = config_dir / f"{environment}.yml"

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    config_data["environment"] = environment

    logger.debug("Loaded configuration file %s", config_path)
    return AppInfraConfig(**_merge_layers(environment, config_data))


def resolve_config(environment: str, config_path: Path | None = None) -> AppInfraConfig:
    """Load the YAML config for an environment, falling back to env-var defaults."""
    try:
        return load_config(environment, config_path)
    except FileNotFoundError:
        logger.info("No config file for %s, using environment defaults", environment)
        return AppInfraConfig.from_env(environment)


def get_default_config(environment: str) -> dict[str, Any]:
    """Get default configuration for an environment.

    Args:
        environment: Target environment

    Returns:
        Default configuration dictionary
    """
    base_config: dict[str, Any] = {
        "environment": environment,
        "aws_region": DEFAULT_REGION,
    }

    if environment == "prod":
        base_config["database"] = {"deletion_protection": True}
        base_config["container"] = {"desired_count": 2}

    return base_config
