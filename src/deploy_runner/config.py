"""Configuration loading utilities for deploy-runner."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/default_config.json")


@dataclass
class DockerConfig:
    """Image build and registry settings."""

    registry: str = "docker.io"
    client_repository: str = "example/client"
    server_repository: str = "example/server"
    client_context: str = "client"
    server_context: str = "server"
    client_dockerfile: Optional[str] = None
    server_dockerfile: Optional[str] = None
    build_tag: str = "latest"           # Jenkins BUILD_NUMBER 覆盖
    api_url: Optional[str] = None       # 客户端构建参数 VITE_API_URL


@dataclass
class TerraformConfig:
    """Settings for the infrastructure-as-code tool."""

    working_dir: str = "terraform"
    plan_file: str = "tfplan"
    binary: str = "terraform"
    # secret 字段名 -> terraform 变量名
    secret_vars: Dict[str, str] = field(default_factory=lambda: {
        "db_password": "db_password",
        "jwt_secret": "jwt_secret",
        "grafana_admin_password": "grafana_admin_password",
    })
    extra_vars: Dict[str, str] = field(default_factory=dict)
    clean_provider_cache: bool = False  # clean-state 时是否同时删除 .terraform/


@dataclass
class KubernetesConfig:
    """Cluster access and cleanup settings."""

    region: str = "us-east-1"
    cluster_name: Optional[str] = None  # 未从 terraform output 获取时的回退值
    cluster_output: str = "cluster_name"
    region_output: str = "region"
    kubeconfig: Optional[str] = None    # 默认 .deploy-runner/kubeconfig
    namespace: str = "default"
    # 部署前清理的资源：manifest 路径或 "kind/name" / "kind -l selector"
    cleanup_targets: List[str] = field(default_factory=list)
    monitoring_namespace: str = "monitoring"
    wait_timeout: int = 300


@dataclass
class MonitoringConfig:
    """Post-deploy monitoring verification."""

    grafana_url: Optional[str] = None
    health_timeout: int = 10


@dataclass
class ExecutionConfig:
    """How the run is executed."""

    target: str = "local"               # "local" | "ssh"
    working_dir: Optional[str] = None
    require_confirmation: bool = True   # 破坏性 stage 前需要人工确认
    parallel_images: bool = False       # 客户端/服务端镜像并行构建推送
    run_timeout: int = 3600             # 0 表示不限制
    command_timeout: int = 1800


@dataclass
class SSHConfig:
    """Remote build agent connection."""

    host: Optional[str] = None
    port: int = 22
    username: Optional[str] = None
    auth_method: Optional[str] = None
    password: Optional[str] = None
    key_path: Optional[str] = None


@dataclass
class LoggingConfig:
    run_log_dir: str = ".deploy-runner/runs"
    level: str = "INFO"


@dataclass
class AppConfig:
    """Top-level configuration."""

    docker: DockerConfig = field(default_factory=DockerConfig)
    terraform: TerraformConfig = field(default_factory=TerraformConfig)
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    ssh: SSHConfig = field(default_factory=SSHConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        def section(name: str) -> Dict[str, Any]:
            data = payload.get(name, {}) or {}
            # 过滤掉以下划线开头的注释字段
            return {k: v for k, v in data.items() if not k.startswith("_")}

        return cls(
            docker=DockerConfig(**{**DockerConfig().__dict__, **section("docker")}),
            terraform=TerraformConfig(**{**TerraformConfig().__dict__, **section("terraform")}),
            kubernetes=KubernetesConfig(**{**KubernetesConfig().__dict__, **section("kubernetes")}),
            monitoring=MonitoringConfig(**{**MonitoringConfig().__dict__, **section("monitoring")}),
            execution=ExecutionConfig(**{**ExecutionConfig().__dict__, **section("execution")}),
            ssh=SSHConfig(**{**SSHConfig().__dict__, **section("ssh")}),
            logging=LoggingConfig(**{**LoggingConfig().__dict__, **section("logging")}),
        )

    def snapshot(self) -> Dict[str, Any]:
        """Non-secret view of the config for run logs."""
        return {
            "docker": {
                "registry": self.docker.registry,
                "client_repository": self.docker.client_repository,
                "server_repository": self.docker.server_repository,
                "build_tag": self.docker.build_tag,
            },
            "terraform": {
                "working_dir": self.terraform.working_dir,
                "plan_file": self.terraform.plan_file,
            },
            "kubernetes": {
                "region": self.kubernetes.region,
                "namespace": self.kubernetes.namespace,
                "monitoring_namespace": self.kubernetes.monitoring_namespace,
            },
            "execution": dict(self.execution.__dict__),
        }


def _apply_env_overrides(config: AppConfig) -> None:
    env_build = os.getenv("DEPLOY_RUNNER_BUILD_TAG") or os.getenv("BUILD_NUMBER")
    if env_build:
        config.docker.build_tag = env_build

    env_region = os.getenv("DEPLOY_RUNNER_AWS_REGION") or os.getenv("AWS_DEFAULT_REGION")
    if env_region:
        config.kubernetes.region = env_region

    env_grafana = os.getenv("DEPLOY_RUNNER_GRAFANA_URL")
    if env_grafana:
        config.monitoring.grafana_url = env_grafana

    env_target = os.getenv("DEPLOY_RUNNER_TARGET")
    if env_target:
        config.execution.target = env_target

    # SSH 构建机设置
    env_host = os.getenv("DEPLOY_RUNNER_SSH_HOST")
    if env_host:
        config.ssh.host = env_host

    env_port = os.getenv("DEPLOY_RUNNER_SSH_PORT")
    if env_port:
        config.ssh.port = int(env_port)

    env_username = os.getenv("DEPLOY_RUNNER_SSH_USERNAME")
    if env_username:
        config.ssh.username = env_username

    env_password = os.getenv("DEPLOY_RUNNER_SSH_PASSWORD")
    if env_password:
        config.ssh.password = env_password
        config.ssh.auth_method = "password"

    env_key_path = os.getenv("DEPLOY_RUNNER_SSH_KEY_PATH")
    if env_key_path:
        config.ssh.key_path = env_key_path
        config.ssh.auth_method = "key"


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Environment variables (higher priority than config file):
    - BUILD_NUMBER or DEPLOY_RUNNER_BUILD_TAG: image build tag
    - AWS_DEFAULT_REGION or DEPLOY_RUNNER_AWS_REGION: cluster region
    - DEPLOY_RUNNER_GRAFANA_URL: Grafana base URL for the monitoring health check
    - DEPLOY_RUNNER_TARGET: "local" or "ssh"
    - DEPLOY_RUNNER_SSH_HOST / _PORT / _USERNAME / _PASSWORD / _KEY_PATH
    """

    candidate_paths = []
    if path:
        candidate_paths.append(Path(path))
    candidate_paths.append(_DEFAULT_CONFIG_PATH)

    for candidate in candidate_paths:
        if candidate.is_file():
            with candidate.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            config = AppConfig.from_dict(data)
            _apply_env_overrides(config)
            return config

    raise FileNotFoundError(
        f"Could not find configuration file. Looked in: {', '.join(str(p) for p in candidate_paths)}"
    )
