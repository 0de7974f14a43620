import subprocess

import pytest
from typer.testing import CliRunner

from app_infra import cli
from app_infra.exceptions import DeploymentError

runner = CliRunner()


def test_config_command_shows_stack(config_file):
    result = runner.invoke(cli.app, ["config", "--env", "dev", "--config-path", str(config_file)])

    assert result.exit_code == 0, result.output
    assert "AppCdkInfraStack" in result.output
    assert "eu-central-1" in result.output


def test_config_command_rejects_invalid_config(tmp_path):
    p = tmp_path / "dev.yml"
    p.write_text("container:\n  cpu: 256\n  memory_mib: 8192\n")

    result = runner.invoke(cli.app, ["config", "--env", "dev", "--config-path", str(p)])

    assert result.exit_code == 1


@pytest.mark.slow
def test_synth_writes_assembly(config_file, tmp_path):
    out_dir = tmp_path / "cdk.out"

    result = runner.invoke(
        cli.app,
        ["synth", "--env", "dev", "--config-path", str(config_file), "--output-dir", str(out_dir)],
    )

    assert result.exit_code == 0, result.output
    assert "AWS::RDS::DBCluster" in result.output
    assert (out_dir / "AppCdkInfraStack.template.json").exists()


def test_deploy_dev_runs_cdk(config_file, monkeypatch):
    calls = []
    monkeypatch.setattr(cli, "run_cdk", lambda args: calls.append(args))

    result = runner.invoke(cli.app, ["deploy", "--env", "dev", "--config-path", str(config_file)])

    assert result.exit_code == 0, result.output
    assert calls == [[
        "deploy", "AppCdkInfraStack", "--require-approval", "never",
        "-c", "environment=dev", "-c", f"config_path={config_file.resolve()}",
    ]]


def test_deploy_prod_requires_yes(monkeypatch):
    calls = []
    monkeypatch.setattr(cli, "get_branch", lambda: "main")
    monkeypatch.setattr(cli, "run_cdk", lambda args: calls.append(args))

    result = runner.invoke(cli.app, ["deploy", "--env", "prod"])

    assert result.exit_code == 2
    assert calls == []


def test_deploy_prod_refuses_feature_branch(monkeypatch):
    calls = []
    monkeypatch.setattr(cli, "get_branch", lambda: "feature/x")
    monkeypatch.setattr(cli, "run_cdk", lambda args: calls.append(args))

    result = runner.invoke(cli.app, ["deploy", "--env", "prod", "--yes"])

    assert result.exit_code == 2
    assert calls == []


def test_deploy_reports_cdk_failure(config_file, monkeypatch):
    def failing(args):
        raise DeploymentError("cdk deploy exited with code 1", command=["cdk", *args], returncode=1)

    monkeypatch.setattr(cli, "run_cdk", failing)

    result = runner.invoke(cli.app, ["deploy", "--env", "dev", "--config-path", str(config_file)])

    assert result.exit_code == 1
    assert "Deploy failed" in result.output


def test_destroy_requires_yes(config_file, monkeypatch):
    calls = []
    monkeypatch.setattr(cli, "run_cdk", lambda args: calls.append(args))

    result = runner.invoke(cli.app, ["destroy", "--env", "dev", "--config-path", str(config_file)])

    assert result.exit_code == 2
    assert calls == []

    result = runner.invoke(cli.app, ["destroy", "--env", "dev", "--config-path", str(config_file), "--yes"])

    assert result.exit_code == 0, result.output
    assert calls == [[
        "destroy", "AppCdkInfraStack", "--force",
        "-c", "environment=dev", "-c", f"config_path={config_file.resolve()}",
    ]]


def test_run_cdk_raises_on_failure(monkeypatch, tmp_path):
    monkeypatch.setattr(
        cli.subprocess, "run", lambda cmd, cwd=None: subprocess.CompletedProcess(cmd, returncode=3)
    )

    with pytest.raises(DeploymentError) as exc:
        cli.run_cdk(["deploy", "AppCdkInfraStack"], cwd=tmp_path)

    assert exc.value.returncode == 3
    assert exc.value.details["command"] == "cdk deploy AppCdkInfraStack"


def test_deploy_passes_custom_config_to_cdk_app(tmp_path, monkeypatch):
    p = tmp_path / "custom.yml"
    p.write_text("stack_name: CustomStack\ndns:\n  hosted_zone_id: Z0123456789EXAMPLE\n")
    calls = []
    monkeypatch.setattr(cli, "run_cdk", lambda args: calls.append(args))

    result = runner.invoke(cli.app, ["deploy", "--env", "dev", "--config-path", str(p)])

    assert result.exit_code == 0, result.output
    (args,) = calls
    assert args[:2] == ["deploy", "CustomStack"]
    assert f"config_path={p.resolve()}" in args


def test_deploy_without_config_path_only_sets_environment(monkeypatch):
    calls = []
    monkeypatch.setattr(cli, "run_cdk", lambda args: calls.append(args))

    result = runner.invoke(cli.app, ["deploy", "--env", "staging"])

    assert result.exit_code == 0, result.output
    (args,) = calls
    assert args[-2:] == ["-c", "environment=staging"]
    assert not any(a.startswith("config_path=") for a in args)
