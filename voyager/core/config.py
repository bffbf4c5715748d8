"""
Runtime settings for the voyager commands.

Settings objects are built once by the CLI (from arguments, falling back to
environment variables) and handed to the components that need them.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

CONFIG_PATH_ENV_VAR = "VOYAGER_CONFIG"
GITHUB_TOKEN_ENV_VARS = ("VOYAGER_GITHUB_TOKEN", "GITHUB_TOKEN")
MAX_CONCURRENT_ENV_VAR = "VOYAGER_MAX_CONCURRENT"
MAX_RETRIES_ENV_VAR = "VOYAGER_MAX_RETRIES"
ASSET_NAME_ENV_VAR = "VOYAGER_ASSET_NAME"
OUTPUT_PATH_ENV_VAR = "VOYAGER_OUTPUT_PATH"

DEFAULT_CONFIG_PATH = "voyager.toml"
DEFAULT_ASSET_NAME = "package.json"
DEFAULT_OUTPUT_PATH = "index.json"
DEFAULT_MAX_CONCURRENT = 5
DEFAULT_MAX_RETRIES = 3
MIN_CONCURRENT, MAX_CONCURRENT = 1, 50
MIN_RETRIES, MAX_RETRIES = 0, 8


class FetchSettings(BaseModel):
    asset_name: str = Field(
        default=DEFAULT_ASSET_NAME,
        min_length=1,
        description="Name of the release asset holding the package metadata.",
    )
    max_concurrent: int = Field(
        default=DEFAULT_MAX_CONCURRENT,
        ge=MIN_CONCURRENT,
        le=MAX_CONCURRENT,
        description="Upper bound on remote requests in flight at once.",
    )
    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        ge=MIN_RETRIES,
        le=MAX_RETRIES,
        description="Retries after the first attempt for transient download failures.",
    )
    wipe: bool = Field(
        default=False,
        description="Discard all previously fetched state before fetching.",
    )


class ValidateSettings(BaseModel):
    max_concurrent: int = Field(default=DEFAULT_MAX_CONCURRENT, ge=MIN_CONCURRENT, le=MAX_CONCURRENT)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=MIN_RETRIES, le=MAX_RETRIES)
    timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds.")


class GenerateSettings(BaseModel):
    output_path: Path = Field(default=Path(DEFAULT_OUTPUT_PATH))
    allow_empty: bool = Field(
        default=False,
        description="Emit packages without versions instead of failing.",
    )


class WorkspacePaths(BaseModel):
    """Locations of the manifest and its lock file."""

    manifest_path: Path

    @property
    def lock_path(self) -> Path:
        return self.manifest_path.with_suffix(".lock")

    @property
    def root(self) -> Path:
        return self.manifest_path.parent


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def github_token_from_env() -> Optional[str]:
    for name in GITHUB_TOKEN_ENV_VARS:
        token = env_str(name)
        if token:
            return token
    return None
