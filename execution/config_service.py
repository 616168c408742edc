"""
Runtime settings for the breach notifier.
Values come from the environment (a .env file is honoured by the entry point).
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "./hibp.db"
DEFAULT_RATE_LIMIT = 10
HIBP_BASE_URL = "https://haveibeenpwned.com/api/v3"
GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"


def _default_template_path() -> str:
    project_root = Path(__file__).resolve().parents[1]
    return str(project_root / "templates" / "breach_notification.html")


@dataclass
class Settings:
    api_key: str = ""
    db_path: str = DEFAULT_DB_PATH
    # Requests per minute; replaced by the subscription check at startup.
    rate_limit: int = DEFAULT_RATE_LIMIT
    hibp_base_url: str = HIBP_BASE_URL
    user_agent: str = "BreachNotifier/1.0"
    request_timeout: float = 10.0
    graph_base_url: str = GRAPH_BASE_URL
    graph_client_id: str = ""
    graph_tenant_id: str = "organizations"
    template_path: str = ""
    mail_subject: str = "Your account was found in a data breach"

    def __post_init__(self):
        if not self.template_path:
            self.template_path = _default_template_path()

    @property
    def delay_seconds(self) -> float:
        """Pause between users that keeps us inside the per-minute budget."""
        return 60.0 / self.rate_limit


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"[CONFIG] {name}={raw!r} is not an integer, using {default}")
        return default
    if value <= 0:
        logger.warning(f"[CONFIG] {name} must be positive, using {default}")
        return default
    return value


def load_settings() -> Settings:
    """Build Settings from environment variables."""
    return Settings(
        api_key=os.getenv("HIBP_API_KEY", "").strip(),
        db_path=os.getenv("DB_PATH", DEFAULT_DB_PATH).strip() or DEFAULT_DB_PATH,
        rate_limit=_int_from_env("HIBP_RATE_LIMIT", DEFAULT_RATE_LIMIT),
        hibp_base_url=os.getenv("HIBP_BASE_URL", HIBP_BASE_URL).strip().rstrip("/"),
        user_agent=os.getenv("HIBP_USER_AGENT", "BreachNotifier/1.0").strip(),
        graph_base_url=os.getenv("GRAPH_BASE_URL", GRAPH_BASE_URL).strip().rstrip("/"),
        graph_client_id=os.getenv("GRAPH_CLIENT_ID", "").strip(),
        graph_tenant_id=os.getenv("GRAPH_TENANT_ID", "organizations").strip(),
        template_path=os.getenv("TEMPLATE_PATH", "").strip(),
        mail_subject=os.getenv("MAIL_SUBJECT", "Your account was found in a data breach").strip(),
    )
