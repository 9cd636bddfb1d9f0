"""Unified path constants for deploy-runner.

All runtime data is stored under the .deploy-runner directory:
- .deploy-runner/runs/       # JSON run logs
- .deploy-runner/kubeconfig  # Temporary kubeconfig written per run
"""

from pathlib import Path

# 基础目录（在当前工作目录下）
BASE_DIR = Path(".deploy-runner")

RUNS_DIR = BASE_DIR / "runs"              # 运行日志
KUBECONFIG_PATH = BASE_DIR / "kubeconfig"  # 临时 kubeconfig


def get_runs_dir(root: Path | str | None = None) -> Path:
    """获取运行日志目录路径."""
    runs_dir = Path(root) if root else RUNS_DIR
    runs_dir.mkdir(parents=True, exist_ok=True)
    return runs_dir
