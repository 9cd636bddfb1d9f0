"""Container build/push tool wrapper."""

from __future__ import annotations

import shlex
from typing import Dict, List, Mapping, Optional

from ..config import DockerConfig
from .base import CommandRunner

_DEFAULT_REGISTRIES = ("", "docker.io", "index.docker.io")


class DockerTool:
    """Builds and pushes the client/server images with two tags each."""

    def __init__(self, runner: CommandRunner, config: DockerConfig) -> None:
        self.runner = runner
        self.config = config

    def image_ref(self, repository: str) -> str:
        if self.config.registry in _DEFAULT_REGISTRIES:
            return repository
        return f"{self.config.registry.rstrip('/')}/{repository}"

    def image_tags(self, repository: str) -> List[str]:
        """``<repo>:<build tag>`` and ``<repo>:latest`` (deduplicated)."""
        ref = self.image_ref(repository)
        tags = [f"{ref}:{self.config.build_tag}"]
        if self.config.build_tag != "latest":
            tags.append(f"{ref}:latest")
        return tags

    def login(self, username: str, password: str) -> None:
        registry = "" if self.config.registry in _DEFAULT_REGISTRIES else f" {shlex.quote(self.config.registry)}"
        self.runner.run(
            f"docker login{registry} -u {shlex.quote(username)} --password-stdin",
            input=password,
            stream_output=False,
        )

    def build(
        self,
        repository: str,
        context: str,
        *,
        build_args: Optional[Mapping[str, str]] = None,
        dockerfile: Optional[str] = None,
    ) -> List[str]:
        """Build an image and return the tags applied.

        Build-arg values are passed through the environment
        (``--build-arg NAME`` with no value), so they never appear on the
        command line.
        """
        tags = self.image_tags(repository)
        parts = ["docker build"]
        parts.extend(f"-t {shlex.quote(tag)}" for tag in tags)
        env: Dict[str, str] = {}
        for name, value in (build_args or {}).items():
            parts.append(f"--build-arg {name}")
            env[name] = value
        if dockerfile:
            parts.append(f"-f {shlex.quote(dockerfile)}")
        parts.append(shlex.quote(context))
        self.runner.run(" ".join(parts), env=env or None)
        return tags

    def push(self, repository: str) -> List[str]:
        tags = self.image_tags(repository)
        for tag in tags:
            self.runner.run(f"docker push {shlex.quote(tag)}")
        return tags

    def logout(self) -> None:
        registry = "" if self.config.registry in _DEFAULT_REGISTRIES else f" {shlex.quote(self.config.registry)}"
        self.runner.run(f"docker logout{registry}", stream_output=False)
