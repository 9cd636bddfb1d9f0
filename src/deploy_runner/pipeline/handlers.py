"""Stage bodies.

Each handler takes a :class:`StageContext`, drives the external tools and
returns the outputs later stages may read. A failure is signalled by
raising :class:`StageError`; the orchestrator applies the failure policy.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import asdict
from typing import Any, Dict, Optional, Tuple

from ..errors import StageError
from .models import StageContext

logger = logging.getLogger(__name__)

CLIENT_PUBLISHABLE_KEY_ARG = "VITE_STRIPE_PUBLISHABLE_KEY"
CLIENT_API_URL_ARG = "VITE_API_URL"


def _aws_env(ctx: StageContext, region: Optional[str] = None) -> Dict[str, str]:
    env = {"AWS_DEFAULT_REGION": region or ctx.config.kubernetes.region}
    if ctx.secrets.aws_access_key_id:
        env["AWS_ACCESS_KEY_ID"] = ctx.secrets.aws_access_key_id
    if ctx.secrets.aws_secret_access_key:
        env["AWS_SECRET_ACCESS_KEY"] = ctx.secrets.aws_secret_access_key
    return env


def _terraform_env(ctx: StageContext) -> Dict[str, str]:
    env = _aws_env(ctx)
    env.update(ctx.tools.terraform.var_env(asdict(ctx.secrets)))
    return env


def _cluster_target(ctx: StageContext) -> Tuple[Optional[str], str]:
    cluster = ctx.shared.get("cluster_name") or ctx.config.kubernetes.cluster_name
    region = ctx.shared.get("region") or ctx.config.kubernetes.region
    return cluster, region


# --- infrastructure reset -------------------------------------------------

def destroy_infra(ctx: StageContext) -> Dict[str, Any]:
    env = _terraform_env(ctx)
    ctx.tools.terraform.init(env)
    ctx.tools.terraform.destroy(env)
    return {"destroyed": True}


def clean_state(ctx: StageContext) -> Dict[str, Any]:
    removed = ctx.tools.terraform.clean_state()
    return {"removed": removed}


# --- images ---------------------------------------------------------------

def docker_login(ctx: StageContext) -> None:
    ctx.tools.docker.login(ctx.secrets.registry_username, ctx.secrets.registry_password)


def build_client(ctx: StageContext) -> Dict[str, Any]:
    docker = ctx.config.docker
    build_args = {CLIENT_PUBLISHABLE_KEY_ARG: ctx.secrets.stripe_publishable_key}
    if docker.api_url:
        build_args[CLIENT_API_URL_ARG] = docker.api_url
    tags = ctx.tools.docker.build(
        docker.client_repository,
        docker.client_context,
        build_args=build_args,
        dockerfile=docker.client_dockerfile,
    )
    return {"client_image_tags": tags}


def build_server(ctx: StageContext) -> Dict[str, Any]:
    docker = ctx.config.docker
    tags = ctx.tools.docker.build(
        docker.server_repository,
        docker.server_context,
        dockerfile=docker.server_dockerfile,
    )
    return {"server_image_tags": tags}


def push_client(ctx: StageContext) -> Dict[str, Any]:
    return {"client_pushed": ctx.tools.docker.push(ctx.config.docker.client_repository)}


def push_server(ctx: StageContext) -> Dict[str, Any]:
    return {"server_pushed": ctx.tools.docker.push(ctx.config.docker.server_repository)}


# --- terraform ------------------------------------------------------------

def terraform_init(ctx: StageContext) -> None:
    ctx.tools.terraform.init(_aws_env(ctx))


def terraform_validate(ctx: StageContext) -> None:
    ctx.tools.terraform.validate(_aws_env(ctx))


def terraform_plan(ctx: StageContext) -> Dict[str, Any]:
    plan_file = ctx.tools.terraform.plan(_terraform_env(ctx))
    return {"plan_file": plan_file}


def terraform_apply(ctx: StageContext) -> Dict[str, Any]:
    env = _terraform_env(ctx)
    ctx.tools.terraform.apply(env)
    outputs = ctx.tools.terraform.output(env)
    k8s = ctx.config.kubernetes
    # 只保留非敏感输出，output -json 会明文返回 sensitive 值
    result: Dict[str, Any] = {"output_names": sorted(outputs)}
    if outputs.get(k8s.cluster_output):
        result["cluster_name"] = outputs[k8s.cluster_output]
    if outputs.get(k8s.region_output):
        result["region"] = outputs[k8s.region_output]
    return result


# --- cluster --------------------------------------------------------------

def cleanup_k8s_resources(ctx: StageContext) -> Dict[str, Any]:
    cluster, region = _cluster_target(ctx)
    if not cluster:
        raise StageError("No cluster name configured; cannot clean up existing resources")
    env = _aws_env(ctx, region)
    kubectl = ctx.tools.kubectl
    if not kubectl.cluster_exists(cluster, region, env):
        logger.info("   Cluster %s not found, nothing to clean up", cluster)
        return {"cleaned": []}

    kubectl.update_kubeconfig(cluster, region, env)
    cleaned = []
    for target in ctx.config.kubernetes.cleanup_targets:
        kubectl.delete(target, ctx.config.kubernetes.namespace, env)
        cleaned.append(target)
    return {"cleaned": cleaned}


def configure_cluster_access(ctx: StageContext) -> Dict[str, Any]:
    cluster, region = _cluster_target(ctx)
    if not cluster:
        raise StageError("Cluster name not available from terraform outputs or config")
    env = _aws_env(ctx, region)
    kubectl = ctx.tools.kubectl
    kubectl.update_kubeconfig(cluster, region, env)
    kubectl.get("nodes", env=env)
    return {"kubeconfig": kubectl.kubeconfig, "cluster_name": cluster, "region": region}


def verify_monitoring(ctx: StageContext) -> Dict[str, Any]:
    k8s = ctx.config.kubernetes
    _, region = _cluster_target(ctx)
    env = _aws_env(ctx, region)
    kubectl = ctx.tools.kubectl
    kubectl.wait_ready(k8s.monitoring_namespace, k8s.wait_timeout, env)
    kubectl.get("pods,svc", k8s.monitoring_namespace, env)

    result: Dict[str, Any] = {"namespace": k8s.monitoring_namespace}
    if ctx.config.monitoring.grafana_url:
        result["grafana"] = ctx.tools.monitoring.check(ctx.config.monitoring.grafana_url)
    return result


# --- epilogue -------------------------------------------------------------

def epilogue(ctx: StageContext) -> None:
    """Log out of the registry and drop the temporary kubeconfig."""
    errors = []
    try:
        ctx.tools.docker.logout()
    except StageError as exc:
        errors.append(str(exc))
    try:
        ctx.tools.runner.run(
            f"rm -f {shlex.quote(ctx.tools.kubectl.kubeconfig)}", stream_output=False
        )
    except StageError as exc:
        errors.append(str(exc))
    if errors:
        raise StageError("; ".join(errors))
