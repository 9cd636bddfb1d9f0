"""Immutable secret record bound to a pipeline run."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Dict, Iterable, List, Mapping, Optional

# 字段名 -> 环境变量名（沿用 Jenkins credentials 注入的变量名）
ENV_NAMES: Dict[str, str] = {
    "aws_access_key_id": "AWS_ACCESS_KEY_ID",
    "aws_secret_access_key": "AWS_SECRET_ACCESS_KEY",
    "db_password": "DB_PASSWORD",
    "jwt_secret": "JWT_SECRET",
    "grafana_admin_password": "GRAFANA_ADMIN_PASSWORD",
    "stripe_publishable_key": "STRIPE_PUBLISHABLE_KEY",
    "registry_username": "DOCKERHUB_USERNAME",
    "registry_password": "DOCKERHUB_PASSWORD",
}

AWS_SECRETS = ("aws_access_key_id", "aws_secret_access_key")
INFRA_SECRETS = AWS_SECRETS + ("db_password", "jwt_secret", "grafana_admin_password")
REGISTRY_SECRETS = ("registry_username", "registry_password")


@dataclass(frozen=True)
class Secrets:
    """Secret inputs supplied from outside the runner.

    Values are never included in ``repr`` or run logs.
    """

    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    db_password: Optional[str] = None
    jwt_secret: Optional[str] = None
    grafana_admin_password: Optional[str] = None
    stripe_publishable_key: Optional[str] = None
    registry_username: Optional[str] = None
    registry_password: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Secrets":
        env = os.environ if environ is None else environ
        return cls(**{name: env.get(env_name) or None for name, env_name in ENV_NAMES.items()})

    def missing(self, names: Iterable[str]) -> List[str]:
        """Return the field names from ``names`` that are absent or empty."""
        return [name for name in names if not getattr(self, name)]

    def masked(self) -> Dict[str, str]:
        return {
            ENV_NAMES[f.name]: ("***" if getattr(self, f.name) else "<unset>")
            for f in fields(self)
        }

    def values(self) -> List[str]:
        """All non-empty secret values, used for masking command output."""
        return [v for v in (getattr(self, f.name) for f in fields(self)) if v]

    def __repr__(self) -> str:
        present = [f.name for f in fields(self) if getattr(self, f.name)]
        return f"Secrets(present={present})"

    __str__ = __repr__
