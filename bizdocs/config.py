"""
Configuration management for bizdocs.

Loads settings from environment variables (and a local .env file) with
sensible defaults for a single-company installation.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _default_session_file() -> str:
    return os.getenv(
        "BIZDOCS_SESSION_FILE",
        str(Path.home() / ".bizdocs" / "session.json"),
    )


@dataclass
class BizDocsConfig:
    """Configuration settings for the bizdocs API client and workflows."""

    # API connection
    api_url: str = field(
        default_factory=lambda: os.getenv("BIZDOCS_API_URL", "http://localhost:8080/api.php")
    )
    company_id: Optional[str] = field(default_factory=lambda: os.getenv("BIZDOCS_COMPANY_ID"))
    api_token: Optional[str] = field(default_factory=lambda: os.getenv("BIZDOCS_API_TOKEN"))
    session_file: str = field(default_factory=_default_session_file)
    request_timeout: int = field(
        default_factory=lambda: int(os.getenv("BIZDOCS_REQUEST_TIMEOUT", "60"))
    )

    # Document defaults
    # Invoices born from a conversion are due this many days after issue
    due_days: int = field(default_factory=lambda: int(os.getenv("BIZDOCS_DUE_DAYS", "30")))
    # Proformas without a source valid_until stay valid this long
    validity_days: int = field(
        default_factory=lambda: int(os.getenv("BIZDOCS_VALIDITY_DAYS", "30"))
    )

    # Generate a random local number when the allocator is down.
    # Off by default: fallback numbers are not guaranteed unique.
    numbering_fallback: bool = field(
        default_factory=lambda: _env_bool("BIZDOCS_NUMBERING_FALLBACK", "false")
    )
    create_stock_movements: bool = field(
        default_factory=lambda: _env_bool("BIZDOCS_STOCK_MOVEMENTS", "true")
    )

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(default_factory=lambda: os.getenv("BIZDOCS_LOG_FILE"))

    @classmethod
    def from_env(cls) -> "BizDocsConfig":
        """Create config from environment variables."""
        return cls()

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []
        if not self.api_url:
            errors.append("BIZDOCS_API_URL is required")
        if self.request_timeout <= 0:
            errors.append("BIZDOCS_REQUEST_TIMEOUT must be positive")
        if self.due_days < 0:
            errors.append("BIZDOCS_DUE_DAYS cannot be negative")
        if self.validity_days < 0:
            errors.append("BIZDOCS_VALIDITY_DAYS cannot be negative")
        return errors
