"""Wrappers around the external CLIs the pipeline drives."""

from .base import CommandRecord, CommandRunner
from .docker import DockerTool
from .kubectl import KubectlTool
from .monitoring import MonitoringCheck
from .terraform import TerraformTool
from .toolbox import BoundTools, Toolbox

__all__ = [
    "CommandRecord",
    "CommandRunner",
    "DockerTool",
    "KubectlTool",
    "MonitoringCheck",
    "TerraformTool",
    "BoundTools",
    "Toolbox",
]
