"""Pytest configuration and shared fixtures for App Infra tests."""

from __future__ import annotations

import aws_cdk as cdk
import pytest
import yaml
from aws_cdk.assertions import Template

from app_infra.config import AppInfraConfig
from infra.app import build_app
from infra.app_stack import AppStack

HOSTED_ZONE_ID = "Z0123456789EXAMPLE"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep local AWS/.env settings from leaking into config resolution."""
    for var in ["CDK_DEFAULT_ACCOUNT", "AWS_ACCOUNT_ID", "ENVIRONMENT", "CONTAINER_IMAGE", "HOSTED_ZONE_ID", "LOG_LEVEL"]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def sample_config() -> AppInfraConfig:
    """Default topology with an imported hosted zone so no lookup is needed."""
    return AppInfraConfig(environment="dev", dns={"hosted_zone_id": HOSTED_ZONE_ID})


@pytest.fixture
def stack(sample_config: AppInfraConfig) -> AppStack:
    _, stack = build_app(sample_config, cdk.App())
    return stack


@pytest.fixture
def template(stack: AppStack) -> Template:
    return Template.from_stack(stack)


@pytest.fixture
def config_file(tmp_path):
    """Write a minimal dev YAML config and return its path."""
    path = tmp_path / "dev.yml"
    path.write_text(yaml.safe_dump({"dns": {"hosted_zone_id": HOSTED_ZONE_ID}}))
    return path
