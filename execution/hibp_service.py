"""
HIBP (Have I Been Pwned) client for subscription status and per-account breaches.
The API key is only ever sent in the request header.
"""
import logging
import urllib.parse
from dataclasses import dataclass, field

import requests

from execution.breach_models import BreachRecord, normalize_email
from execution.config_service import Settings

logger = logging.getLogger(__name__)

FOUND = "found"
NO_BREACHES = "no_breaches"
FAILED = "failed"


@dataclass
class FetchResult:
    status: str
    records: list[BreachRecord] = field(default_factory=list)
    reason: str | None = None

    @property
    def breaches(self) -> list[BreachRecord] | None:
        """Records on success, None for both "no breaches" and "could not check"."""
        if self.status == FOUND:
            return self.records
        return None


def _headers(settings: Settings) -> dict:
    return {
        "hibp-api-key": settings.api_key,
        "user-agent": settings.user_agent,
    }


def check_subscription(settings: Settings) -> bool:
    """
    Validate the API key and adopt the subscription's requests-per-minute.

    Returns False on any failure and leaves ``settings.rate_limit`` as it was.
    """
    if not settings.api_key:
        logger.error("[HIBP] HIBP_API_KEY not configured")
        return False

    url = f"{settings.hibp_base_url}/subscription/status"
    try:
        response = requests.get(url, headers=_headers(settings), timeout=settings.request_timeout)
    except requests.exceptions.RequestException as e:
        logger.error(f"[HIBP] Subscription check failed: {e}")
        return False

    if response.status_code == 401:
        logger.error("[HIBP] Invalid API key (401 Unauthorized)")
        return False
    if not response.ok:
        logger.error(f"[HIBP] Subscription check returned HTTP {response.status_code}")
        return False

    try:
        payload = response.json()
        rpm = int(payload["Rpm"])
    except (ValueError, KeyError, TypeError) as e:
        logger.error(f"[HIBP] Unexpected subscription payload: {e}")
        return False
    if rpm <= 0:
        logger.error(f"[HIBP] Subscription reports a rate limit of {rpm}")
        return False

    settings.rate_limit = rpm
    logger.info(
        f"[HIBP] Subscription {payload.get('SubscriptionName', 'unknown')} active, "
        f"{rpm} requests per minute"
    )
    return True


def fetch_breaches(email: str, settings: Settings) -> FetchResult:
    """Look up every breach for ``email``; never raises."""
    email = normalize_email(email)
    url = f"{settings.hibp_base_url}/breachedaccount/{urllib.parse.quote(email)}"
    try:
        response = requests.get(
            url,
            params={"truncateResponse": "false"},
            headers=_headers(settings),
            timeout=settings.request_timeout,
        )
    except requests.exceptions.Timeout:
        logger.warning(f"[HIBP] Timeout for {email}")
        return FetchResult(FAILED, reason="Request timeout")
    except requests.exceptions.RequestException as e:
        logger.warning(f"[HIBP] Network error for {email}: {e}")
        return FetchResult(FAILED, reason=f"Network error: {e}")

    # 404 = account not in any breach
    if response.status_code == 404:
        logger.info(f"[HIBP] {email} - No breaches found")
        return FetchResult(NO_BREACHES)

    if response.status_code == 429:
        retry_after = response.headers.get("Retry-After", "?")
        logger.warning(f"[HIBP] Rate limited for {email}, retry after {retry_after}s")
        return FetchResult(FAILED, reason=f"Rate limited, retry after {retry_after}s")

    if response.status_code == 401:
        logger.warning("[HIBP] Invalid API key (401 Unauthorized)")
        return FetchResult(FAILED, reason="Invalid HIBP API key")

    if not response.ok:
        logger.warning(f"[HIBP] HTTP {response.status_code} for {email}")
        return FetchResult(FAILED, reason=f"HTTP {response.status_code}")

    try:
        items = response.json() or []
    except ValueError as e:
        logger.warning(f"[HIBP] Invalid JSON for {email}: {e}")
        return FetchResult(FAILED, reason="Invalid JSON response")
    if not isinstance(items, list):
        return FetchResult(FAILED, reason="Unexpected response shape")

    records = []
    for item in items:
        try:
            records.append(BreachRecord.from_hibp(email, item))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"[HIBP] Skipping malformed breach for {email}: {e}")

    logger.info(f"[HIBP] {email} - {len(records)} breaches found")
    return FetchResult(FOUND, records=records)
