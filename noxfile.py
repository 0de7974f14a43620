"""Nox configuration for App Infra development automation.

Sessions cover linting, tests, template synthesis, and guarded
deploy/teardown through the `app-infra` CLI.
"""

import nox

PYTHON_VERSIONS = ["3.11"]

nox.options.sessions = ["lint", "test"]


def _install(session, extras: bool = True):
    session.install("poetry")
    if extras:
        session.run("poetry", "install", "--all-extras")
    else:
        session.run("poetry", "install")


@nox.session(python=PYTHON_VERSIONS)
def lint(session):
    """Ruff over the stack, CLI and tests; mypy over the importable packages."""
    _install(session)
    session.run("poetry", "run", "ruff", "check", "src", "infra", "tests")
    session.run("poetry", "run", "mypy", "src", "infra")
    session.log("✅ Lint passed")


@nox.session(python=PYTHON_VERSIONS)
def test(session):
    """Template assertion tests; pass pytest args to override the default marker filter.

    Examples:
      nox -s test
      nox -s test -- -m slow
      nox -s test -- tests/test_cdk_dns.py --cov=src --cov=infra
    """
    _install(session)
    args = session.posargs or ["-m", "not slow"]
    session.run("poetry", "run", "pytest", "tests/", "--tb=short", "--strict-markers", *args)


@nox.session(python=PYTHON_VERSIONS)
def synth(session):
    """Synthesize the CloudFormation template.

    Examples:
      nox -s synth
      nox -s synth -- --env staging --output-dir cdk.out/staging
    """
    _install(session, extras=False)
    session.run("poetry", "run", "app-infra", "synth", *(session.posargs or ["--env", "dev"]))


@nox.session(python=PYTHON_VERSIONS)
def deploy(session):
    """Deploy with the CLI guardrails.

    Examples:
      nox -s deploy -- --env dev
      nox -s deploy -- --env prod --yes
    """
    _install(session, extras=False)
    session.run("poetry", "run", "app-infra", "deploy", *(session.posargs or ["--env", "dev"]))


@nox.session(python=PYTHON_VERSIONS)
def teardown(session):
    """Destroy the stack; requires --yes.

    Examples:
      nox -s teardown -- --env dev --yes
    """
    _install(session, extras=False)
    session.run("poetry", "run", "app-infra", "destroy", *(session.posargs or ["--env", "dev"]))
