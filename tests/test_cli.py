"""End-to-end tests for the command-line entry point."""

import io
import json
import sys

import pytest

from deploy_runner.cli import EXIT_ABORTED, EXIT_FAILED, EXIT_OK, EXIT_USAGE, build_session, run_cli
from deploy_runner.config import AppConfig
from deploy_runner.local import LocalSession
from deploy_runner.secrets import ENV_NAMES
from deploy_runner.ssh import SSHSession

from conftest import FakeSession

REGISTRY_ENV = {
    "DOCKERHUB_USERNAME": "ci-bot",
    "DOCKERHUB_PASSWORD": "registry-pass",
    "STRIPE_PUBLISHABLE_KEY": "pk_test",
}
INFRA_ENV = {
    "AWS_ACCESS_KEY_ID": "AKIA1",
    "AWS_SECRET_ACCESS_KEY": "aws-secret",
    "DB_PASSWORD": "db-pass",
    "JWT_SECRET": "jwt",
    "GRAFANA_ADMIN_PASSWORD": "grafana",
}


@pytest.fixture
def config_file(tmp_path):
    payload = {
        "docker": {"client_repository": "acme/client", "server_repository": "acme/server"},
        "kubernetes": {"kubeconfig": str(tmp_path / "kubeconfig")},
        "execution": {"require_confirmation": True},
        "logging": {"run_log_dir": str(tmp_path / "runs")},
    }
    path = tmp_path / "config.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(ENV_NAMES.values()) + ["BUILD_NUMBER", "DEPLOY_RUNNER_BUILD_TAG", "DEPLOY_RUNNER_TARGET"]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(sys, "stdin", io.StringIO(""))


def _set_env(monkeypatch, *groups):
    for group in groups:
        for name, value in group.items():
            monkeypatch.setenv(name, value)


def test_plan_prints_stages_without_running(config_file, capsys):
    code = run_cli(["--config", config_file, "plan", "--action", "terraform-clean-and-apply"])
    out = capsys.readouterr().out

    assert code == EXIT_OK
    assert "destroy-infra" in out
    assert "configure-cluster-access" in out
    assert "epilogue" in out
    assert "Missing required secrets" in out


def test_unknown_action_is_usage_error(config_file):
    with pytest.raises(SystemExit) as excinfo:
        run_cli(["--config", config_file, "run", "--action", "deploy-all"])
    assert excinfo.value.code == 2


def test_missing_secrets_exit_code(config_file, capsys):
    session = FakeSession()
    code = run_cli(["--config", config_file, "run", "--action", "docker-only"], session=session)

    assert code == EXIT_USAGE
    assert session.calls == []
    assert "DOCKERHUB_USERNAME" in capsys.readouterr().out


def test_successful_run(config_file, monkeypatch, capsys):
    _set_env(monkeypatch, REGISTRY_ENV)
    session = FakeSession()
    code = run_cli(
        ["--config", config_file, "run", "--action", "docker-only", "--build-tag", "rc5"],
        session=session,
    )

    assert code == EXIT_OK
    assert session.entered == 1 and session.exited == 1
    assert any(c.startswith("docker build -t acme/client:rc5") for c in session.commands)
    out = capsys.readouterr().out
    assert "Outcome: success" in out
    assert "registry-pass" not in out


def test_failed_run(config_file, monkeypatch, capsys):
    _set_env(monkeypatch, REGISTRY_ENV)
    session = FakeSession().fail_on("docker push acme/server")
    code = run_cli(["--config", config_file, "run", "--action", "docker-only"], session=session)

    assert code == EXIT_FAILED
    assert "Failed stage: push-server" in capsys.readouterr().out


def test_destroy_without_yes_is_aborted(config_file, monkeypatch):
    _set_env(monkeypatch, INFRA_ENV)
    session = FakeSession()
    code = run_cli(["--config", config_file, "run", "--action", "terraform-destroy"], session=session)

    assert code == EXIT_ABORTED
    assert not any("destroy -input=false" in c for c in session.commands)


def test_destroy_with_yes_runs(config_file, monkeypatch):
    _set_env(monkeypatch, INFRA_ENV)
    session = FakeSession()
    code = run_cli(
        ["--config", config_file, "run", "--action", "terraform-destroy", "--yes"],
        session=session,
    )

    assert code == EXIT_OK
    assert any("destroy -input=false" in c for c in session.commands)


def test_logs_list_and_latest(config_file, monkeypatch, capsys):
    _set_env(monkeypatch, REGISTRY_ENV)
    run_cli(["--config", config_file, "run", "--action", "docker-only"], session=FakeSession())
    capsys.readouterr()

    assert run_cli(["--config", config_file, "logs", "--list"]) == EXIT_OK
    listing = capsys.readouterr().out
    assert "run_docker-only_" in listing

    assert run_cli(["--config", config_file, "logs", "--latest"]) == EXIT_OK
    detail = capsys.readouterr().out
    assert "docker-login (success)" in detail
    assert "$ docker login -u *** --password-stdin" in detail


def test_logs_without_runs(config_file, capsys):
    assert run_cli(["--config", config_file, "logs"]) == EXIT_OK
    assert "No run logs found" in capsys.readouterr().out


def test_logs_unknown_file(config_file, monkeypatch, capsys):
    _set_env(monkeypatch, REGISTRY_ENV)
    run_cli(["--config", config_file, "run", "--action", "docker-only"], session=FakeSession())
    assert run_cli(["--config", config_file, "logs", "--file", "nope.json"]) == EXIT_FAILED


class TestBuildSession:
    def test_local(self):
        assert isinstance(build_session(AppConfig()), LocalSession)

    def test_ssh_requires_host(self):
        config = AppConfig()
        config.execution.target = "ssh"
        with pytest.raises(ValueError, match="host"):
            build_session(config)

    def test_ssh_with_password(self):
        config = AppConfig()
        config.execution.target = "ssh"
        config.ssh.host = "agent"
        config.ssh.username = "jenkins"
        config.ssh.auth_method = "password"
        config.ssh.password = "pw"
        assert isinstance(build_session(config), SSHSession)

    def test_unsupported_target(self):
        config = AppConfig()
        config.execution.target = "k8s-job"
        with pytest.raises(ValueError, match="Unsupported"):
            build_session(config)
