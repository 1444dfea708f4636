"""Resolution of the user config directory and the local workspace directory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import click

APP_NAME = "sqli"
CONFIG_FILE_NAME = "config.yaml"
COLLECTIONS_DIR_NAME = "collections"
WORKSPACE_DIR_NAME = "sqli"

CONFIG_DIR_ENV = "SQLI_CONFIG_DIR"
WORKSPACE_DIR_ENV = "SQLI_WORKSPACE_DIR"


def _expand(path_str: str) -> Path:
    """Return a Path with user and environment variables expanded."""
    return Path(os.path.expandvars(path_str)).expanduser()


@dataclass(frozen=True)
class Settings:
    """Filesystem locations used by a sqli process."""

    config_dir: Path
    workspace_dir: Path

    @property
    def config_path(self) -> Path:
        return self.config_dir / CONFIG_FILE_NAME

    @property
    def user_collections_dir(self) -> Path:
        return self.config_dir / COLLECTIONS_DIR_NAME

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, cwd: Path | None = None) -> "Settings":
        """
        Build settings from the environment.

        ``SQLI_CONFIG_DIR`` overrides the platform config directory
        (``click.get_app_dir("sqli")``) and ``SQLI_WORKSPACE_DIR`` overrides the
        local collection root (``<cwd>/sqli``).
        """
        env = os.environ if env is None else env
        cwd = cwd or Path.cwd()

        raw_config = env.get(CONFIG_DIR_ENV)
        config_dir = _expand(raw_config) if raw_config else Path(click.get_app_dir(APP_NAME))

        raw_workspace = env.get(WORKSPACE_DIR_ENV)
        workspace_dir = _expand(raw_workspace) if raw_workspace else cwd / WORKSPACE_DIR_NAME

        return cls(config_dir=config_dir.absolute(), workspace_dir=workspace_dir.absolute())
