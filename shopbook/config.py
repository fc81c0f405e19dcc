# shopbook/config.py

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./shopbook.db")

# Token verification for the staff dashboard (tokens are issued elsewhere)
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# Shared secret for the periodic reminder trigger
CRON_SECRET = os.getenv("CRON_SECRET")

# Scheduling defaults
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/New_York")
DEFAULT_OPEN_TIME = os.getenv("DEFAULT_OPEN_TIME", "08:00")
DEFAULT_CLOSE_TIME = os.getenv("DEFAULT_CLOSE_TIME", "20:00")
SLOT_GRANULARITY_MINUTES = int(os.getenv("SLOT_GRANULARITY_MINUTES", "30"))
DEFAULT_SERVICE_DURATION_MINUTES = int(os.getenv("DEFAULT_SERVICE_DURATION_MINUTES", "30"))
SLOT_CAPACITY = int(os.getenv("SLOT_CAPACITY", "1"))
# "shared" or "isolated", see AnyStaffPolicy
ANY_STAFF_POLICY = os.getenv("ANY_STAFF_POLICY", "shared")

# Reminder batch
REMINDER_SEND_DELAY_SECONDS = float(os.getenv("REMINDER_SEND_DELAY_SECONDS", "1.0"))
REMINDER_TIME_BUDGET_SECONDS = float(os.getenv("REMINDER_TIME_BUDGET_SECONDS", "55"))
REMINDER_CLAIM_TTL_MINUTES = int(os.getenv("REMINDER_CLAIM_TTL_MINUTES", "10"))

# Outbound notifications; unset means log-only delivery
NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL")
NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
