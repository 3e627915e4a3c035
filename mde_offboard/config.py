"""Configuration and settings."""

import getpass
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _local_user() -> str:
    """Login name of the local operator, used in offboard comments."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


# Paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
OUTPUT_DIR = Path(os.getenv("MDE_OUTPUT_DIR", str(PROJECT_ROOT / "output")))
EXPORT_DIR = OUTPUT_DIR / "exports"
DEFAULT_EXPORT_FILENAME = "defender_devices_export.csv"

# Logging
LOG_DIR = OUTPUT_DIR / "logs"
LOG_FILE = LOG_DIR / "app.jsonl"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
VERBOSE_LOGGING = os.getenv("VERBOSE_LOGGING", "false").lower() == "true"

# Ensure log directory exists
LOG_DIR.mkdir(parents=True, exist_ok=True)

# Microsoft identity platform (app registration, public client: no secret)
TENANT_ID = os.getenv("MDE_TENANT_ID", "")
CLIENT_ID = os.getenv("MDE_CLIENT_ID", "")
REDIRECT_URI = os.getenv("MDE_REDIRECT_URI", "http://localhost:8400")
AUTHORITY_BASE = os.getenv("MDE_AUTHORITY_BASE", "https://login.microsoftonline.com").rstrip("/")
DEFAULT_SCOPES = [
    "https://api.securitycenter.microsoft.com/Machine.Read",
    "https://api.securitycenter.microsoft.com/Machine.Offboard",
    "User.Read.All",
]
SCOPES = os.getenv("MDE_SCOPES", "").split() or DEFAULT_SCOPES
# Seconds to wait for the browser redirect before treating sign-in as cancelled
AUTH_TIMEOUT_SECONDS = int(os.getenv("AUTH_TIMEOUT_SECONDS", "300"))

# Defender for Endpoint API
API_BASE = os.getenv("MDE_API_BASE", "https://api.security.microsoft.com/api").rstrip("/")
OFFBOARD_USER = os.getenv("MDE_OFFBOARD_USER", "") or _local_user()

# OpenTelemetry (disabled unless explicitly turned on)
TRACING_ENABLED = os.getenv("TRACING_ENABLED", "false").lower() == "true"
OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv(
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "http://localhost:4318/v1/traces",
)
OTEL_SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "mde-offboard")
DEPLOYMENT_ENVIRONMENT = os.getenv("DEPLOYMENT_ENVIRONMENT", "local")
