import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone


@dataclass
class BreachRecord:
    email: str
    name: str
    title: str = ""
    domain: str = ""
    breach_date: str = ""
    added_date: str = ""
    modified_date: str = ""
    pwn_count: int = 0
    description: str = ""
    logo_path: str = ""
    data_classes: list[str] = field(default_factory=list)
    is_verified: bool = False
    is_fabricated: bool = False
    is_sensitive: bool = False
    is_retired: bool = False
    is_spam_list: bool = False
    is_malware: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_hibp(cls, email: str, item: dict) -> "BreachRecord":
        """Map one HIBP breach object onto a record for ``email``."""
        name = (item.get("Name") or "").strip()
        if not name:
            raise ValueError("Breach object has no Name")
        return cls(
            email=normalize_email(email),
            name=name,
            title=item.get("Title") or name,
            domain=item.get("Domain") or "",
            breach_date=item.get("BreachDate") or "",
            added_date=item.get("AddedDate") or "",
            modified_date=item.get("ModifiedDate") or "",
            pwn_count=int(item.get("PwnCount") or 0),
            description=item.get("Description") or "",
            logo_path=item.get("LogoPath") or "",
            data_classes=list(item.get("DataClasses") or []),
            is_verified=bool(item.get("IsVerified")),
            is_fabricated=bool(item.get("IsFabricated")),
            is_sensitive=bool(item.get("IsSensitive")),
            is_retired=bool(item.get("IsRetired")),
            is_spam_list=bool(item.get("IsSpamList")),
            is_malware=bool(item.get("IsMalware")),
        )

    @property
    def added_at(self) -> datetime | None:
        return parse_timestamp(self.added_date)


def parse_timestamp(value: str) -> datetime | None:
    """Parse HIBP dates ("2013-12-04T00:00:00Z" or "2013-10-04") as UTC."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def cutoff_datetime(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def normalize_email(email: str) -> str:
    """Addresses are matched case-insensitively, so they are stored lowercased."""
    return (email or "").strip().lower()
