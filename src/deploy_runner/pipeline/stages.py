"""The stage table: one ordered definition consumed by the orchestrator."""

from __future__ import annotations

from typing import List, Sequence

from ..secrets import AWS_SECRETS, INFRA_SECRETS, REGISTRY_SECRETS
from . import handlers
from .models import Action, FailurePolicy, Stage, StageKind

A = Action

IMAGE_ACTIONS = frozenset({A.DOCKER_ONLY, A.FULL_DEPLOY})
DESTROY_ACTIONS = frozenset({A.TERRAFORM_DESTROY, A.TERRAFORM_CLEAN_AND_APPLY})
CLEAN_ACTIONS = frozenset({A.TERRAFORM_CLEAN_AND_APPLY})
PLAN_ACTIONS = frozenset({
    A.TERRAFORM_PLAN, A.TERRAFORM_APPLY, A.FULL_DEPLOY, A.TERRAFORM_CLEAN_AND_APPLY,
})
APPLY_ACTIONS = frozenset({A.TERRAFORM_APPLY, A.FULL_DEPLOY, A.TERRAFORM_CLEAN_AND_APPLY})
MONITORING_ACTIONS = frozenset({A.FULL_DEPLOY})

FATAL = FailurePolicy.FATAL
BEST_EFFORT = FailurePolicy.BEST_EFFORT

# 顺序固定：action 只决定包含与否，从不改变相对顺序
STAGES: Sequence[Stage] = (
    Stage("destroy-infra", StageKind.DESTROY, BEST_EFFORT, DESTROY_ACTIONS,
          handlers.destroy_infra, INFRA_SECRETS, destructive=True),
    Stage("clean-state", StageKind.CLEANUP, FATAL, CLEAN_ACTIONS,
          handlers.clean_state, destructive=True),
    Stage("docker-login", StageKind.LOGIN, FATAL, IMAGE_ACTIONS,
          handlers.docker_login, REGISTRY_SECRETS),
    Stage("build-client", StageKind.BUILD, FATAL, IMAGE_ACTIONS,
          handlers.build_client, ("stripe_publishable_key",), lane="client"),
    Stage("build-server", StageKind.BUILD, FATAL, IMAGE_ACTIONS,
          handlers.build_server, lane="server"),
    Stage("push-client", StageKind.PUSH, FATAL, IMAGE_ACTIONS,
          handlers.push_client, lane="client"),
    Stage("push-server", StageKind.PUSH, FATAL, IMAGE_ACTIONS,
          handlers.push_server, lane="server"),
    Stage("terraform-init", StageKind.PLAN, FATAL, PLAN_ACTIONS,
          handlers.terraform_init, AWS_SECRETS),
    Stage("terraform-validate", StageKind.PLAN, FATAL, PLAN_ACTIONS,
          handlers.terraform_validate),
    Stage("terraform-plan", StageKind.PLAN, FATAL, PLAN_ACTIONS,
          handlers.terraform_plan, INFRA_SECRETS),
    Stage("cleanup-k8s-resources", StageKind.CLEANUP, BEST_EFFORT, APPLY_ACTIONS,
          handlers.cleanup_k8s_resources, AWS_SECRETS),
    Stage("terraform-apply", StageKind.APPLY, FATAL, APPLY_ACTIONS,
          handlers.terraform_apply, INFRA_SECRETS),
    Stage("configure-cluster-access", StageKind.CONFIGURE, FATAL, APPLY_ACTIONS,
          handlers.configure_cluster_access, AWS_SECRETS),
    Stage("verify-monitoring", StageKind.VERIFY, BEST_EFFORT, MONITORING_ACTIONS,
          handlers.verify_monitoring, AWS_SECRETS),
)

# 无条件执行的收尾 stage，失败只记录 warning
EPILOGUE = Stage(
    "epilogue", StageKind.CLEANUP, BEST_EFFORT, frozenset(Action), handlers.epilogue,
)


def stages_for(action: Action, table: Sequence[Stage] = STAGES) -> List[Stage]:
    """Ordered subsequence of ``table`` included for ``action``."""
    return [stage for stage in table if stage.includes(action)]


def stage_names(action: Action, table: Sequence[Stage] = STAGES) -> List[str]:
    return [stage.name for stage in stages_for(action, table)]
