"""Bundles the tool wrappers around one execution session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import requests

from ..config import AppConfig
from ..paths import KUBECONFIG_PATH
from ..secrets import Secrets
from .base import CommandRecord, CommandRunner, Session
from .docker import DockerTool
from .kubectl import KubectlTool
from .monitoring import MonitoringCheck
from .terraform import TerraformTool


@dataclass
class BoundTools:
    """Tools sharing one runner, scoped to a single stage."""

    runner: CommandRunner
    docker: DockerTool
    terraform: TerraformTool
    kubectl: KubectlTool
    monitoring: MonitoringCheck


class Toolbox:
    """Creates per-stage tool sets so each stage records its own commands."""

    def __init__(
        self,
        session: Session,
        config: AppConfig,
        secrets: Secrets,
        http_session: Optional[requests.Session] = None,
    ) -> None:
        self.session = session
        self.config = config
        self.secrets = secrets
        self.http_session = http_session
        self.kubeconfig = config.kubernetes.kubeconfig or str(KUBECONFIG_PATH)

    def bind(self, records: List[CommandRecord], timeout: Optional[int] = None) -> BoundTools:
        runner = CommandRunner(
            self.session,
            records=records,
            secrets=self.secrets.values(),
            timeout=timeout,
        )
        return BoundTools(
            runner=runner,
            docker=DockerTool(runner, self.config.docker),
            terraform=TerraformTool(runner, self.config.terraform),
            kubectl=KubectlTool(runner, self.config.kubernetes, self.kubeconfig),
            monitoring=MonitoringCheck(
                self.http_session, timeout=self.config.monitoring.health_timeout
            ),
        )
