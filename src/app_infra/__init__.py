"""App Infra - container service deployment on AWS.

Declares the network, Aurora PostgreSQL database, Fargate service, load
balancer and DNS record for the backend application using the AWS CDK.
"""

__version__ = "0.1.0"

from .config import AppInfraConfig, load_config, resolve_config
from .exceptions import AppInfraError, ConfigurationError, DeploymentError

__all__ = [
    "AppInfraConfig",
    "AppInfraError",
    "ConfigurationError",
    "DeploymentError",
    "load_config",
    "resolve_config",
]
