import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


ECOURTS_BASE_URL = os.getenv(
    "ECOURTS_BASE_URL", "https://services.ecourts.gov.in/ecourtindia_v6"
).rstrip("/")
ECOURTS_ORIGIN = os.getenv("ECOURTS_ORIGIN", "https://services.ecourts.gov.in").rstrip("/")

REQUEST_TIMEOUT = int(os.getenv("ECOURTS_TIMEOUT", "30") or 30)
CAPTCHA_TIMEOUT = int(os.getenv("ECOURTS_CAPTCHA_TIMEOUT", "10") or 10)
HTTP_RETRIES = int(os.getenv("ECOURTS_HTTP_RETRIES", "3") or 3)
VERIFY_SSL = _env_flag("ECOURTS_VERIFY_SSL", False)

USER_AGENT = os.getenv(
    "ECOURTS_USER_AGENT",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
TRACKING_TABLE = os.getenv("ECOURT_TRACKING_TABLE", "ecourt_tracking")
TRACKING_FILE = Path(
    os.getenv("ECOURT_TRACKING_FILE")
    or Path.home() / ".ecourt_registry" / "tracking.json"
)
