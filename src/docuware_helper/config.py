"""
Configuration management.

All config keys for the DocuWare helper are defined here. Values are layered:
YAML file, then environment variables, then command-line flags (applied by
the runner).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .docuware_client.models import DEFAULT_DOCUMENT_ID_FIELD
from .docuware_client.retry import RetryPolicy


@dataclass
class DocuwareConfig:
    """DocuWare connection settings.

    Exactly one of token / cookie is expected at run time. A cookie generated
    earlier with ``gencookie`` avoids opening another licensed session.
    """

    endpoint: str = ""
    token: str | None = None
    cookie: str | None = None
    # Organization name sent with credential logon
    organization: str = ""
    # Organization whose cabinets are listed
    organization_id: str = "1"
    document_id_field: str = DEFAULT_DOCUMENT_ID_FIELD
    timeout_seconds: int = 60


@dataclass
class Config:
    """Application configuration."""

    docuware: DocuwareConfig = field(default_factory=DocuwareConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def validate(self) -> list[str]:
        """Validate configuration consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []
        if self.docuware.timeout_seconds <= 0:
            errors.append("docuware.timeout_seconds must be > 0")
        if not self.docuware.document_id_field:
            errors.append("docuware.document_id_field is required")
        errors.extend(self.retry.validate())
        return errors


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "")
    if value:
        try:
            return int(value)
        except ValueError:
            pass  # Keep default
    return default


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from an optional YAML file.

    Environment variables override file values:
    - DOCUWARE_URL
    - DOCUWARE_TOKEN
    - DOCUWARE_COOKIE
    - DOCUWARE_ORGANIZATION
    - DOCUWARE_RETRY_MAX
    """
    if config_path is not None and config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    dw_data = data.get("docuware", {}) or {}
    docuware = DocuwareConfig(
        endpoint=os.environ.get("DOCUWARE_URL", dw_data.get("endpoint", "")) or "",
        token=os.environ.get("DOCUWARE_TOKEN", dw_data.get("token")),
        cookie=os.environ.get("DOCUWARE_COOKIE", dw_data.get("cookie")),
        organization=os.environ.get("DOCUWARE_ORGANIZATION", dw_data.get("organization", "")),
        organization_id=str(dw_data.get("organization_id", "1")),
        document_id_field=dw_data.get("document_id_field", DEFAULT_DOCUMENT_ID_FIELD),
        timeout_seconds=int(dw_data.get("timeout_seconds", 60)),
    )

    retry_data = data.get("retry", {}) or {}
    defaults = RetryPolicy()
    retry = RetryPolicy(
        max_attempts=_env_int(
            "DOCUWARE_RETRY_MAX", int(retry_data.get("max_attempts", defaults.max_attempts))
        ),
        base_delay_seconds=retry_data.get("base_delay_seconds", defaults.base_delay_seconds),
        min_jitter_seconds=retry_data.get("min_jitter_seconds", defaults.min_jitter_seconds),
        max_jitter_seconds=retry_data.get("max_jitter_seconds", defaults.max_jitter_seconds),
    )

    return Config(docuware=docuware, retry=retry)


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# DocuWare helper configuration
#
# Every value can be overridden on the command line; the connection values
# also by DOCUWARE_URL / DOCUWARE_TOKEN / DOCUWARE_COOKIE.

docuware:
  endpoint: "https://example.docuware.cloud"
  token: null                 # Login token from `-m gentoken` (valid 24h)
  cookie: null                # Session cookie from `-m gencookie`
  organization: ""            # Organization name sent at credential logon
  organization_id: "1"        # Organization whose cabinets are listed
  document_id_field: "DWDOCID"
  timeout_seconds: 60

# Retry on non-200 responses: wait base + random(0, max - min) seconds
retry:
  max_attempts: 100
  base_delay_seconds: 10
  min_jitter_seconds: 10
  max_jitter_seconds: 20
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
