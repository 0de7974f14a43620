#!/usr/bin/env python3
"""
CDK Application for App Infra

Deploys the backend application stack (network, database, container
service, load balancer, DNS) into a single account and region.
"""

import logging
import os
from pathlib import Path

import aws_cdk as cdk
from dotenv import load_dotenv

from app_infra.config import AppInfraConfig, resolve_config
from infra.app_stack import AppStack

logger = logging.getLogger(__name__)


def build_app(config: AppInfraConfig, app: cdk.App | None = None) -> tuple[cdk.App, AppStack]:
    """Instantiate the deployment unit for `config` inside a CDK app."""
    app = app or cdk.App()

    stack = AppStack(
        app, config.stack_name,
        config=config,
        env=cdk.Environment(
            account=config.aws_account_id,
            region=config.aws_region
        ),
        description=f"Backend application infrastructure for {config.environment} environment"
    )

    # Add tags to all resources
    cdk.Tags.of(stack).add("App", "app-infra")
    cdk.Tags.of(stack).add("Environment", config.environment)
    cdk.Tags.of(stack).add("Project", "Backend")
    cdk.Tags.of(stack).add("Owner", "Platform")

    return app, stack


def main():
    """Main CDK application entry point."""
    # Pick up CDK_DEFAULT_ACCOUNT / AWS_ACCOUNT_ID from a local .env file
    load_dotenv()

    app = cdk.App()

    # Get environment from context or environment variable
    environment = app.node.try_get_context("environment") or os.environ.get("ENVIRONMENT", "dev")
    config_path = app.node.try_get_context("config_path")
    config = resolve_config(environment, Path(config_path) if config_path else None)

    logging.basicConfig(level=config.log_level)
    logger.info("Synthesizing %s for %s", config.stack_name, environment)

    build_app(config, app)
    app.synth()


if __name__ == "__main__":
    main()
