"""Centralized configuration for the clinicbook package.

Provides paths, scheduling policy settings, and timeouts
used across all modules.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Package root (clinicbook/ directory)
PACKAGE_ROOT = Path(__file__).parent

# Working directory (where the user runs the CLI or server from)
WORKING_DIR = Path.cwd()

# Load environment variables from current working directory
load_dotenv(WORKING_DIR / ".env")

# Storage paths
OUTPUTS_DIR = WORKING_DIR / "outputs"
DATABASE_PATH = Path(
    os.getenv("CLINICBOOK_DATABASE_PATH", str(OUTPUTS_DIR / "clinicbook.db"))
)
DIRECTORY_PATH = Path(os.getenv("CLINICBOOK_DIRECTORY_PATH", "directory.yaml"))

# Slot generation
SLOT_MINUTES = int(os.getenv("CLINICBOOK_SLOT_MINUTES", "30"))
DEFAULT_DURATION = int(os.getenv("CLINICBOOK_DEFAULT_DURATION", "30"))

# Allowed appointment lengths in minutes (comma-separated)
_default_durations = "15,30,45,60,90,120"
ALLOWED_DURATIONS = tuple(
    int(d)
    for d in os.getenv("CLINICBOOK_ALLOWED_DURATIONS", _default_durations).split(",")
    if d.strip()
)

# Lifecycle policy
MAX_RESCHEDULES = int(os.getenv("CLINICBOOK_MAX_RESCHEDULES", "3"))
REFUND_WINDOW_HOURS = float(os.getenv("CLINICBOOK_REFUND_WINDOW_HOURS", "24"))

# Timeouts for collaborator calls (seconds)
STORE_TIMEOUT = float(os.getenv("CLINICBOOK_STORE_TIMEOUT", "5.0"))
NOTIFY_TIMEOUT = float(os.getenv("CLINICBOOK_NOTIFY_TIMEOUT", "2.0"))

# Optional webhook for outbound notifications
WEBHOOK_URL = os.getenv("CLINICBOOK_WEBHOOK_URL")

LOG_LEVEL = os.getenv("CLINICBOOK_LOG_LEVEL", "INFO")


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Root logging setup for the CLI and the API server."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
