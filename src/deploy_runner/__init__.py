"""deploy-runner: table-driven deployment pipeline runner."""

__version__ = "0.1.0"
