"""Runtime configuration for tag cascade runs."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from urllib.parse import urlparse

from tag_cascade.models import TAG_SEPARATOR

DEFAULT_MARKER_TAG = "CascadeTags"
DEFAULT_BASE_URL = "https://dev.azure.com"
DEFAULT_API_VERSION = "7.0"


@dataclass(slots=True)
class Settings:
    """Connection and behaviour settings passed explicitly into each run."""

    organization: str = ""
    project: str = ""
    token: str = ""
    marker_tag: str = DEFAULT_MARKER_TAG
    base_url: str = DEFAULT_BASE_URL
    api_version: str = DEFAULT_API_VERSION
    request_timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_backoff_seconds: float = 1.0

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""

        return cls(
            organization=os.getenv("TAG_CASCADE_ORGANIZATION", "").strip(),
            project=os.getenv("TAG_CASCADE_PROJECT", "").strip(),
            token=os.getenv("TAG_CASCADE_TOKEN", "").strip(),
            marker_tag=os.getenv("TAG_CASCADE_MARKER_TAG", DEFAULT_MARKER_TAG).strip(),
            base_url=os.getenv("TAG_CASCADE_BASE_URL", DEFAULT_BASE_URL).strip().rstrip("/"),
            api_version=os.getenv("TAG_CASCADE_API_VERSION", DEFAULT_API_VERSION).strip(),
            request_timeout_seconds=_env_float("TAG_CASCADE_REQUEST_TIMEOUT_SECONDS", 30.0),
            max_retries=_env_int("TAG_CASCADE_MAX_RETRIES", 3),
            retry_backoff_seconds=_env_float("TAG_CASCADE_RETRY_BACKOFF_SECONDS", 1.0),
        )

    def with_overrides(
        self,
        *,
        organization: str | None = None,
        project: str | None = None,
        token: str | None = None,
        marker_tag: str | None = None,
    ) -> Settings:
        """Return a copy with non-empty CLI values taking precedence over env values."""

        updates = {
            name: value.strip()
            for name, value in (
                ("organization", organization),
                ("project", project),
                ("token", token),
                ("marker_tag", marker_tag),
            )
            if value is not None and value.strip()
        }
        return replace(self, **updates)

    def validate(self) -> None:
        """Raise configuration error if required connection values are missing or invalid."""

        if not self.organization:
            raise ValueError(
                "Organization is required. Set TAG_CASCADE_ORGANIZATION or pass --organization.",
            )
        if not self.project:
            raise ValueError(
                "Project is required. Set TAG_CASCADE_PROJECT or pass --project.",
            )
        if not self.token:
            raise ValueError(
                "Personal access token is required. Set TAG_CASCADE_TOKEN or pass --token.",
            )
        if not self.marker_tag:
            raise ValueError("TAG_CASCADE_MARKER_TAG must not be empty.")
        if TAG_SEPARATOR in self.marker_tag:
            raise ValueError(
                f"TAG_CASCADE_MARKER_TAG must not contain the tag separator {TAG_SEPARATOR!r}.",
            )
        parsed = urlparse(self.base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"Invalid TAG_CASCADE_BASE_URL: {self.base_url}")
        if self.request_timeout_seconds <= 0:
            raise ValueError("TAG_CASCADE_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.max_retries <= 0:
            raise ValueError("TAG_CASCADE_MAX_RETRIES must be a positive integer.")
        if self.retry_backoff_seconds < 0:
            raise ValueError("TAG_CASCADE_RETRY_BACKOFF_SECONDS must be >= 0.")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}.") from exc
