"""Configuration for the workspace ledger.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Every store takes its workspace explicitly; these settings only decide where the
default workspace lives and who is recorded as the actor when a caller does not
say.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DIR_NAME = ".ledger"


class LedgerSettings(BaseSettings):
    """Settings for the ledger.

    Environment variables:
    - LEDGER_WORKSPACE   (optional)
    - LEDGER_DIR_NAME    (optional)
    - LEDGER_DEFAULT_BY  (optional)
    - LOG_LEVEL          (optional)
    - LEDGER_STORE_LOG_LEVEL (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `LedgerSettings(_env_file=path_to_env)`.
    """

    workspace_path: Path = Field(
        default=Path("."),
        validation_alias="LEDGER_WORKSPACE",
        description="Directory that contains the ledger workspace directory",
    )
    dir_name: str = Field(
        default=DEFAULT_DIR_NAME,
        validation_alias="LEDGER_DIR_NAME",
        description="Name of the workspace directory created under LEDGER_WORKSPACE",
    )
    default_by: str = Field(
        default="cli",
        validation_alias="LEDGER_DEFAULT_BY",
        description="Actor recorded on runs, events and mutations when none is given",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )
    store_log_level: str | None = Field(
        default=None,
        validation_alias="LEDGER_STORE_LOG_LEVEL",
        description="Logging level for the per-write store loggers",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("dir_name")
    @classmethod
    def _dir_name_is_plain(cls, value: str) -> str:
        name = value.strip()
        if not name or "/" in name or "\\" in name:
            raise ValueError("LEDGER_DIR_NAME must be a single directory name")
        return name

    @field_validator("default_by")
    @classmethod
    def _default_by_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("LEDGER_DEFAULT_BY must not be empty")
        return value.strip()

    @field_validator("store_log_level")
    @classmethod
    def _blank_store_level_is_unset(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip().upper()

    @property
    def workspace_root(self) -> Path:
        """Absolute path of the workspace directory."""

        return (self.workspace_path / self.dir_name).resolve()
