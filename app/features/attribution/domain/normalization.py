"""
Domain and email normalization helpers used by the matching engine.

Every lookup key the engine builds goes through normalize_domain so that
events, outbound sends and aggregates agree on one registrable domain.
"""

import re
from datetime import UTC, datetime

from .models import EventSource

# Second-level suffixes where the registrable domain keeps three labels
COMPOUND_TLDS = frozenset(
    {
        "co.uk",
        "co.jp",
        "co.nz",
        "co.za",
        "co.in",
        "co.kr",
        "com.au",
        "com.br",
        "com.mx",
        "com.cn",
        "com.sg",
        "com.hk",
        "org.uk",
        "org.au",
        "net.au",
        "gov.uk",
        "ac.uk",
    }
)

_SCHEME_RE = re.compile(r"^https?://")
_SLUG_RE = re.compile(r"[^a-z0-9]+")

_EVENT_SOURCES: dict[str, EventSource] = {
    "sign_up": "SIGN_UP",
    "meeting_booked": "MEETING_BOOKED",
    "paying_customer": "PAYING_CUSTOMER",
    "positive_reply": "POSITIVE_REPLY",
}


def normalize_domain(raw: str | None) -> str | None:
    """
    Reduce a domain, hostname or URL to its registrable domain.

    "https://www.Mail.Acme.com/path" -> "acme.com"
    "shop.example.co.uk" -> "example.co.uk"

    Returns None for empty input or anything without a dot.
    """
    if not raw:
        return None

    domain = _SCHEME_RE.sub("", raw.strip().lower())
    domain = domain.split("/")[0].split("?")[0].strip(".")
    if domain.startswith("www."):
        domain = domain[4:]

    if not domain or "." not in domain:
        return None

    labels = domain.split(".")
    if len(labels) <= 2:
        return domain

    if ".".join(labels[-2:]) in COMPOUND_TLDS:
        return ".".join(labels[-3:])
    return ".".join(labels[-2:])


def extract_domain(email: str | None) -> str | None:
    """Normalized domain part of an email address, None unless there is exactly one '@'."""
    if not email:
        return None
    parts = email.strip().lower().split("@")
    if len(parts) != 2 or not parts[0]:
        return None
    return normalize_domain(parts[1])


def normalize_email(email: str | None) -> str | None:
    if not email:
        return None
    cleaned = email.strip().lower()
    return cleaned or None


def as_utc(value: datetime) -> datetime:
    # Naive timestamps coming from upstream integrations are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days between two instants, floored."""
    delta = as_utc(later) - as_utc(earlier)
    return int(abs(delta.total_seconds()) // 86400)


def format_attribution_month(value: datetime) -> str:
    """Reporting bucket "YYYY-MM" in UTC."""
    return as_utc(value).strftime("%Y-%m")


def map_event_type_to_source(event_type: str) -> EventSource | None:
    return _EVENT_SOURCES.get(event_type)


def slugify(text: str) -> str:
    """Lower-case slug with runs of non-alphanumerics collapsed to a dash."""
    return _SLUG_RE.sub("-", text.strip().lower()).strip("-")
