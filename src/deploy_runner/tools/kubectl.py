"""Cluster control tool wrapper (``kubectl`` plus ``aws eks``)."""

from __future__ import annotations

import shlex
from typing import Mapping, Optional

from ..config import KubernetesConfig
from .base import CommandRunner

_MANIFEST_SUFFIXES = (".yaml", ".yml", ".json")


class KubectlTool:
    """Thin wrapper around kubectl bound to a dedicated kubeconfig file."""

    def __init__(self, runner: CommandRunner, config: KubernetesConfig, kubeconfig: str) -> None:
        self.runner = runner
        self.config = config
        self.kubeconfig = kubeconfig

    @property
    def _base(self) -> str:
        return f"kubectl --kubeconfig {shlex.quote(self.kubeconfig)}"

    def cluster_exists(self, cluster: str, region: str, env: Optional[Mapping[str, str]] = None) -> bool:
        result = self.runner.run(
            f"aws eks describe-cluster --name {shlex.quote(cluster)} --region {shlex.quote(region)}",
            env=env,
            check=False,
            stream_output=False,
        )
        return result.ok

    def update_kubeconfig(self, cluster: str, region: str, env: Optional[Mapping[str, str]] = None) -> None:
        self.runner.run(
            f"aws eks update-kubeconfig --name {shlex.quote(cluster)} "
            f"--region {shlex.quote(region)} --kubeconfig {shlex.quote(self.kubeconfig)}",
            env=env,
            stream_output=False,
        )

    def delete(self, target: str, namespace: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> None:
        """Delete a manifest file or a ``kind/name`` / ``kind -l selector`` target."""
        if target.endswith(_MANIFEST_SUFFIXES):
            command = f"{self._base} delete -f {shlex.quote(target)} --ignore-not-found"
        else:
            # target 由配置给出，允许包含 "-l app=x" 这样的参数
            command = f"{self._base} delete {target} --ignore-not-found"
            if namespace:
                command += f" -n {shlex.quote(namespace)}"
        self.runner.run(command, env=env)

    def wait_ready(self, namespace: str, timeout: int, env: Optional[Mapping[str, str]] = None) -> None:
        self.runner.run(
            f"{self._base} wait --for=condition=Ready pods --all "
            f"-n {shlex.quote(namespace)} --timeout={int(timeout)}s",
            env=env,
        )

    def get(self, resources: str, namespace: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> str:
        command = f"{self._base} get {resources}"
        if namespace:
            command += f" -n {shlex.quote(namespace)}"
        return self.runner.run(command, env=env).stdout
