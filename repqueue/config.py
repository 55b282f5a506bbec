"""
Configuration settings for the replication queue client.

Uses Pydantic Settings to load environment variables for the Innovator
connection, the three identities involved (producer, replication worker and
administrator), and the queue-processing knobs. `load_config_file` also
accepts the legacy XML configuration file and turns it into a `Settings`.
"""
from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from repqueue.errors import ConfigurationError

DEFAULT_CONFIG_FILE = "config.xml"


@dataclass(frozen=True)
class Credentials:
    """One identity on one Innovator database."""

    url: str
    database: str
    user: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(url={self.url!r}, database={self.database!r}, user={self.user!r})"


class Settings(BaseSettings):
    # Innovator server
    innovator_url: str = Field("http://localhost/InnovatorServer", alias="INNOVATOR_URL")
    innovator_db: str = Field("InnovatorSolutions", alias="INNOVATOR_DB")
    request_timeout_seconds: float = Field(30.0, alias="REQUEST_TIMEOUT_SECONDS")

    # Identities
    replication_user: str = Field("", alias="REPLICATION_USER")
    replication_password: str = Field("", alias="REPLICATION_PASSWORD")
    producer_user: str = Field("", alias="PRODUCER_USER")
    producer_password: str = Field("", alias="PRODUCER_PASSWORD")
    admin_user: str = Field("admin", alias="ADMIN_USER")
    admin_password: str = Field("innovator", alias="ADMIN_PASSWORD")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Queue processing
    queue_max_batch: int = Field(10, gt=0, alias="QUEUE_MAX_BATCH")
    queue_max_pending: int = Field(15, gt=0, alias="QUEUE_MAX_PENDING")
    queue_interval_seconds: float = Field(10.0, ge=0, alias="QUEUE_INTERVAL_SECONDS")
    queue_contention_jitter_seconds: float = Field(
        0.0, ge=0, alias="QUEUE_CONTENTION_JITTER_SECONDS"
    )
    queue_max_contended_cycles: int = Field(3, ge=0, alias="QUEUE_MAX_CONTENDED_CYCLES")

    # Transaction creation
    source_vault: str = Field("Default", alias="SOURCE_VAULT")
    file_pattern: str = Field("file*", alias="FILE_PATTERN")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def _credentials(self, user: str, password: str, role: str) -> Credentials:
        if not user:
            raise ConfigurationError(f"no user configured for the {role} identity")
        return Credentials(
            url=self.innovator_url,
            database=self.innovator_db,
            user=user,
            password=password,
        )

    @property
    def replication_credentials(self) -> Credentials:
        return self._credentials(self.replication_user, self.replication_password, "replication")

    @property
    def producer_credentials(self) -> Credentials:
        return self._credentials(self.producer_user, self.producer_password, "producer")

    @property
    def admin_credentials(self) -> Credentials:
        return self._credentials(self.admin_user, self.admin_password, "admin")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


def _read_config_file(path: Path) -> Dict[str, Any]:
    """
    Map the XML configuration file onto Settings field names.

    Expected layout::

        <config>
          <innovator url='...' db='...' />
          <first_user name='...' password='...' />
          <second_user name='...' password='...' />
          <interval sec='...' />
        </config>

    `first_user` is the replication worker, `second_user` the producer.
    """
    root = ET.parse(path).getroot()
    values: Dict[str, Any] = {}

    innovator = root.find(".//innovator")
    if innovator is None:
        raise ValueError("missing <innovator> element")
    values["innovator_url"] = innovator.get("url", "")
    values["innovator_db"] = innovator.get("db", "")

    for tag, prefix in (("first_user", "replication"), ("second_user", "producer")):
        node = root.find(f".//{tag}")
        if node is None:
            raise ValueError(f"missing <{tag}> element")
        values[f"{prefix}_user"] = node.get("name", "")
        values[f"{prefix}_password"] = node.get("password", "")

    interval = root.find(".//interval")
    if interval is not None and interval.get("sec"):
        try:
            # Negative means no pause between cycles.
            values["queue_interval_seconds"] = float(max(int(interval.get("sec", "")), 0))
        except ValueError:
            # Unparseable interval keeps the default.
            pass

    return values


def load_config_file(path: Path | str | None = None, base: Settings | None = None) -> Settings:
    """
    Load the XML configuration file on top of `base` (environment settings by default).

    Raises
    ------
    ConfigurationError
        If the file cannot be opened or parsed, lacks a required element or
        holds values that fail validation.
    """
    config_path = Path(path or DEFAULT_CONFIG_FILE)
    try:
        overrides = _read_config_file(config_path)
    except (OSError, ET.ParseError, ValueError) as exc:
        raise ConfigurationError(
            f"Failed to open or parse the configuration file '{config_path}' "
            f"(original error - {exc})"
        ) from exc

    settings = base or get_settings()
    try:
        return Settings.model_validate({**settings.model_dump(), **overrides})
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid values in the configuration file '{config_path}': {exc}"
        ) from exc


__all__ = [
    "Credentials",
    "DEFAULT_CONFIG_FILE",
    "Settings",
    "get_settings",
    "load_config_file",
]
