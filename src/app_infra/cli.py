"""Command-line interface for App Infra.

Provides CLI commands for inspecting configuration, synthesizing the
CloudFormation template, and deploying or destroying the stack.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from collections import Counter
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .config import AppInfraConfig, resolve_config
from .exceptions import AppInfraError, DeploymentError

ROOT = Path(__file__).resolve().parents[2]

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="app-infra",
    help="App Infra - backend deployment CLI",
    rich_markup_mode="rich",
)
console = Console()


@app.command()
def config(
    env: str = typer.Option("dev", help="Environment (dev/staging/prod)"),
    config_path: Path | None = typer.Option(None, help="Custom config file path"),
) -> None:
    """Show the resolved deployment configuration."""
    try:
        cfg = resolve_config(env, config_path)
        _display_config(cfg)
    except AppInfraError as e:
        console.print(f"[bold red]❌ Failed to load config: {e}[/bold red]")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[bold red]❌ Invalid configuration: {e}[/bold red]")
        sys.exit(1)


@app.command()
def synth(
    env: str = typer.Option("dev", help="Environment (dev/staging/prod)"),
    config_path: Path | None = typer.Option(None, help="Custom config file path"),
    output_dir: Path = typer.Option(Path("cdk.out"), help="Cloud assembly output directory"),
) -> None:
    """Synthesize the stack template without touching AWS."""
    console.print("[bold blue]🏗️  Synthesizing stack...[/bold blue]")

    try:
        cfg = resolve_config(env, config_path)
        _configure_logging(cfg)

        import aws_cdk as cdk

        from infra.app import build_app

        cdk_app, stack = build_app(cfg, cdk.App(outdir=str(output_dir)))
        assembly = cdk_app.synth()
        template = assembly.get_stack_by_name(stack.stack_name).template

        _display_resource_summary(template)
        console.print(f"[bold green]✅ Template written to: {output_dir}[/bold green]")

    except AppInfraError as e:
        console.print(f"[bold red]❌ Synth failed: {e}[/bold red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[bold red]💥 Unexpected error: {e}[/bold red]")
        sys.exit(1)


@app.command()
def deploy(
    env: str = typer.Option("dev", help="Environment (dev/staging/prod)"),
    config_path: Path | None = typer.Option(None, help="Custom config file path"),
    yes: bool = typer.Option(False, "--yes", help="Confirm deployment (required for prod)"),
    force: bool = typer.Option(False, "--force", help="Bypass branch guardrail for prod"),
) -> None:
    """Deploy the stack with `cdk deploy`."""
    if env == "prod":
        branch = get_branch()
        if not force and branch not in {"main", "master"}:
            console.print(f"[bold red]❌ Refusing to deploy prod from branch '{branch}'. Use --force to override.[/bold red]")
            sys.exit(2)
        if not yes:
            console.print("[bold red]❌ Production deploy requires --yes confirmation flag.[/bold red]")
            sys.exit(2)

    try:
        cfg = resolve_config(env, config_path)
        _configure_logging(cfg)
        console.print(f"[bold blue]🚀 Deploying {cfg.stack_name} ({env})...[/bold blue]")
        run_cdk(["deploy", cfg.stack_name, "--require-approval", "never", *_context_args(env, config_path)])
        console.print(f"[bold green]✅ Deployed stack: {cfg.stack_name}[/bold green]")

    except AppInfraError as e:
        console.print(f"[bold red]❌ Deploy failed: {e}[/bold red]")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[bold red]❌ Invalid configuration: {e}[/bold red]")
        sys.exit(1)


@app.command()
def destroy(
    env: str = typer.Option("dev", help="Environment (dev/staging/prod)"),
    config_path: Path | None = typer.Option(None, help="Custom config file path"),
    yes: bool = typer.Option(False, "--yes", help="Confirm destroy"),
) -> None:
    """Destroy the stack with `cdk destroy`."""
    try:
        cfg = resolve_config(env, config_path)
        _configure_logging(cfg)

        if not yes:
            console.print(f"⚠️  You are about to destroy stack: {cfg.stack_name}. Re-run with --yes.")
            sys.exit(2)

        run_cdk(["destroy", cfg.stack_name, "--force", *_context_args(env, config_path)])
        console.print(f"[bold green]🧹 Destroyed stack: {cfg.stack_name}[/bold green]")

    except AppInfraError as e:
        console.print(f"[bold red]❌ Destroy failed: {e}[/bold red]")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[bold red]❌ Invalid configuration: {e}[/bold red]")
        sys.exit(1)


def run_cdk(args: list[str], cwd: Path | None = None) -> None:
    """Run a CDK toolkit command from the repository root.

    Raises:
        DeploymentError: If the command exits non-zero
    """
    cmd = ["cdk", *args]
    logger.info("$ %s", " ".join(cmd))
    result = subprocess.run(cmd, cwd=str(cwd or ROOT))
    if result.returncode != 0:
        raise DeploymentError(
            f"cdk {args[0]} exited with code {result.returncode}",
            command=cmd,
            returncode=result.returncode,
        )


def _context_args(env: str, config_path: Path | None) -> list[str]:
    """CDK context so the synthesized app resolves the same config as this command."""
    args = ["-c", f"environment={env}"]
    if config_path is not None:
        args += ["-c", f"config_path={config_path.resolve()}"]
    return args


def get_branch() -> str:
    try:
        out = subprocess.check_output(["git", "rev-parse", "--abbrev-ref", "HEAD"], cwd=ROOT)
        return out.decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return os.getenv("GITHUB_REF_NAME", "")


def _configure_logging(cfg: AppInfraConfig) -> None:
    logging.basicConfig(level=cfg.log_level, format="%(levelname)s %(name)s: %(message)s")


def _display_config(cfg: AppInfraConfig) -> None:
    """Display configuration table."""
    table = Table(title=f"App Infra Configuration ({cfg.environment})")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Stack", cfg.stack_name)
    table.add_row("Account", cfg.aws_account_id or "(from CDK defaults)")
    table.add_row("Region", cfg.aws_region)
    table.add_row("VPC", f"{cfg.network.max_azs} AZs, /{cfg.network.cidr_mask} subnets, {cfg.network.nat_gateways} NAT")
    table.add_row(
        "Database",
        f"aurora-postgresql {cfg.database.engine_version}, {cfg.database.instances} x {cfg.database.instance_type}, port {cfg.database.port}",
    )
    table.add_row("Image", cfg.container.image)
    table.add_row("Task size", f"{cfg.container.cpu} CPU / {cfg.container.memory_mib} MiB x {cfg.container.desired_count}")
    table.add_row(
        "Load balancer",
        f"{cfg.load_balancer.name} :{cfg.load_balancer.listener_port} -> :{cfg.container.container_port} "
        f"(health {cfg.load_balancer.health_check_path})",
    )
    table.add_row("DNS", f"{cfg.dns.record_name} in {cfg.dns.domain_name}")

    console.print(table)


def _display_resource_summary(template: dict) -> None:
    """Display resource counts by CloudFormation type."""
    counts = Counter(res["Type"] for res in template.get("Resources", {}).values())

    table = Table(title="Synthesized Resources")
    table.add_column("Type", style="cyan")
    table.add_column("Count", style="green")

    for resource_type, count in sorted(counts.items()):
        table.add_row(resource_type, str(count))

    console.print(table)
    console.print(f"{sum(counts.values())} resources, {len(template.get('Outputs', {}))} outputs")


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
