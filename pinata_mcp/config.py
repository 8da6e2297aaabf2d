"""Configuration for the Pinata MCP server."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from .security import PREFIX_SEGMENT

DEFAULT_API_URL = "https://api.pinata.cloud/v3"
DEFAULT_UPLOADS_URL = "https://uploads.pinata.cloud/v3"
DEFAULT_TIMEOUT_SECONDS = 60.0


def normalize_gateway(value: str) -> str:
    """Reduce ``https://example.mypinata.cloud/`` to ``example.mypinata.cloud``."""
    gateway = value.strip()
    for scheme in ("https://", "http://"):
        if gateway.startswith(scheme):
            gateway = gateway[len(scheme) :]
    return gateway.rstrip("/")


@dataclass(frozen=True)
class PinataConfig:
    """Runtime configuration for the Pinata API client."""

    jwt: str = ""
    gateway_url: str = ""
    api_url: str = DEFAULT_API_URL
    uploads_url: str = DEFAULT_UPLOADS_URL
    request_timeout: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PinataConfig":
        if environ is None:
            load_dotenv()
            environ = os.environ
        return cls(
            jwt=environ.get("PINATA_JWT", ""),
            gateway_url=normalize_gateway(environ.get("GATEWAY_URL", "")),
            api_url=environ.get("PINATA_API_URL", DEFAULT_API_URL).rstrip("/"),
            uploads_url=environ.get("PINATA_UPLOADS_URL", DEFAULT_UPLOADS_URL).rstrip("/"),
            request_timeout=float(environ.get("PINATA_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)),
        )


@dataclass(frozen=True)
class ServerSettings:
    allowed_roots: tuple[str, ...] = field(default_factory=tuple)
    prefix_match: str = PREFIX_SEGMENT
    log_level: str = "INFO"
