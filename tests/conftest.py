"""Shared fakes for the pipeline tests. No external CLI is ever invoked."""

import json
from dataclasses import dataclass
from typing import List, Optional

import pytest

from deploy_runner.config import AppConfig
from deploy_runner.interaction import AutoResponseHandler
from deploy_runner.pipeline import PipelineOrchestrator
from deploy_runner.secrets import Secrets
from deploy_runner.tools import Toolbox

TERRAFORM_OUTPUTS = json.dumps({
    "cluster_name": {"value": "demo-eks", "sensitive": False},
    "region": {"value": "us-west-2", "sensitive": False},
    "db_endpoint": {"value": "db.internal:5432", "sensitive": True},
})


@dataclass
class FakeResult:
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class FakeSession:
    """Records every command and answers from scripted (substring, status, stdout, stderr) rules."""

    def __init__(self, rules: Optional[list] = None) -> None:
        self.rules = list(rules or [])
        self.rules.append(("output -json", 0, TERRAFORM_OUTPUTS, ""))
        self.calls: List[dict] = []
        self.entered = 0
        self.exited = 0

    def fail_on(self, pattern: str, exit_status: int = 1, stderr: str = "boom") -> "FakeSession":
        self.rules.insert(0, (pattern, exit_status, "", stderr))
        return self

    def run(self, command, *, timeout=None, env=None, input=None, stream_output=True):
        self.calls.append({
            "command": command,
            "timeout": timeout,
            "env": dict(env or {}),
            "input": input,
        })
        for pattern, status, stdout, stderr in self.rules:
            if pattern in command:
                return FakeResult(command, stdout, stderr, status)
        return FakeResult(command, "", "", 0)

    @property
    def commands(self) -> List[str]:
        return [c["command"] for c in self.calls]

    def __enter__(self):
        self.entered += 1
        return self

    def __exit__(self, exc_type, exc, tb):
        self.exited += 1


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def secrets() -> Secrets:
    return Secrets(
        aws_access_key_id="AKIAEXAMPLE",
        aws_secret_access_key="aws-secret-value",
        db_password="db-pass-value",
        jwt_secret="jwt-secret-value",
        grafana_admin_password="grafana-pass-value",
        stripe_publishable_key="pk_test_value",
        registry_username="ci-bot",
        registry_password="registry-pass-value",
    )


@pytest.fixture
def config(tmp_path) -> AppConfig:
    cfg = AppConfig()
    cfg.logging.run_log_dir = str(tmp_path / "runs")
    cfg.docker.build_tag = "42"
    cfg.kubernetes.kubeconfig = str(tmp_path / "kubeconfig")
    cfg.kubernetes.cleanup_targets = ["k8s/hpa.yaml", "networkpolicy -l app=shop"]
    cfg.execution.require_confirmation = False
    return cfg


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def make_orchestrator(config, secrets, session):
    def factory(**kwargs) -> PipelineOrchestrator:
        cfg = kwargs.pop("config", config)
        sec = kwargs.pop("secrets", secrets)
        sess = kwargs.pop("session", session)
        handler = kwargs.pop("interaction_handler", AutoResponseHandler(always_confirm=True))
        toolbox = Toolbox(sess, cfg, sec, http_session=kwargs.pop("http_session", None))
        return PipelineOrchestrator(cfg, sec, toolbox, handler, **kwargs)

    return factory
