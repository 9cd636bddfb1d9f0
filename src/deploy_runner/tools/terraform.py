"""Infrastructure-as-code tool wrapper."""

from __future__ import annotations

import json
import shlex
from typing import Any, Dict, List, Mapping, Optional

from ..config import TerraformConfig
from ..errors import StageError
from .base import CommandRunner

# clean-state 删除的本地状态文件
STATE_FILES = ("terraform.tfstate", "terraform.tfstate.backup", ".terraform.lock.hcl")


class TerraformTool:
    """Wraps ``terraform`` invocations against one working directory."""

    def __init__(self, runner: CommandRunner, config: TerraformConfig) -> None:
        self.runner = runner
        self.config = config

    @property
    def _base(self) -> str:
        return f"{self.config.binary} -chdir={shlex.quote(self.config.working_dir)}"

    def _path(self, name: str) -> str:
        return shlex.quote(f"{self.config.working_dir.rstrip('/')}/{name}")

    def var_env(self, secret_values: Mapping[str, Optional[str]]) -> Dict[str, str]:
        """Build ``TF_VAR_*`` entries from secrets and extra vars."""
        env = {f"TF_VAR_{name}": str(value) for name, value in self.config.extra_vars.items()}
        for field_name, var_name in self.config.secret_vars.items():
            value = secret_values.get(field_name)
            if value:
                env[f"TF_VAR_{var_name}"] = value
        return env

    def init(self, env: Optional[Mapping[str, str]] = None) -> None:
        self.runner.run(f"{self._base} init -input=false -no-color", env=env)

    def validate(self, env: Optional[Mapping[str, str]] = None) -> None:
        self.runner.run(f"{self._base} validate -no-color", env=env)

    def plan(self, env: Optional[Mapping[str, str]] = None) -> str:
        plan_file = shlex.quote(self.config.plan_file)
        self.runner.run(f"{self._base} plan -input=false -no-color -out={plan_file}", env=env)
        return self.config.plan_file

    def apply(self, env: Optional[Mapping[str, str]] = None) -> None:
        plan_file = shlex.quote(self.config.plan_file)
        self.runner.run(
            f"{self._base} apply -input=false -no-color -auto-approve {plan_file}", env=env
        )

    def destroy(self, env: Optional[Mapping[str, str]] = None) -> None:
        self.runner.run(f"{self._base} destroy -input=false -no-color -auto-approve", env=env)

    def output(self, env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """Return named outputs as ``{name: value}``."""
        result = self.runner.run(f"{self._base} output -json", env=env, stream_output=False)
        try:
            payload = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise StageError(f"Could not parse terraform output: {exc}") from exc
        return {name: item.get("value") for name, item in payload.items() if isinstance(item, dict)}

    def clean_state(self) -> List[str]:
        """Delete the plan artifact and local state files; absent files are fine."""
        names = [self.config.plan_file, *STATE_FILES]
        targets = [self._path(name) for name in names]
        self.runner.run(f"rm -f {' '.join(targets)}", stream_output=False)
        if self.config.clean_provider_cache:
            self.runner.run(f"rm -rf {self._path('.terraform')}", stream_output=False)
            names.append(".terraform")
        return names
