"""
Decides which fetched breaches are new and which of those warrant an alert.
"""
import logging
from dataclasses import dataclass, field
from datetime import date

from execution.breach_models import BreachRecord, cutoff_datetime
from execution.breach_store_service import insert_breach, mark_suppressed
from execution.hibp_service import FAILED, FetchResult

logger = logging.getLogger(__name__)

NO_BREACHES = "no_breaches"
FETCH_FAILED = "fetch_failed"
NO_NEW = "no_new"
NEW = "new"


@dataclass
class BreachOutcome:
    status: str
    # Everything newly stored; this is the count that gets reported.
    new_breaches: list[BreachRecord] = field(default_factory=list)
    # The subset that passes the cutoff and is mailed or printed.
    to_notify: list[BreachRecord] = field(default_factory=list)
    reason: str | None = None

    @property
    def new_count(self) -> int:
        return len(self.new_breaches)


def record_new_breaches(db_path: str, records: list[BreachRecord]) -> list[BreachRecord]:
    """Persist records in source order and return the ones not seen before."""
    return [record for record in records if insert_breach(db_path, record)]


def filter_by_cutoff(records: list[BreachRecord], ignore_before: date | None) -> list[BreachRecord]:
    if ignore_before is None:
        return list(records)
    cutoff = cutoff_datetime(ignore_before)
    kept = []
    for record in records:
        added_at = record.added_at
        if added_at is None:
            logger.warning(f"[FILTER] {record.name} has no usable added date, excluding from alert")
            continue
        if added_at >= cutoff:
            kept.append(record)
    return kept


def process_breaches(
    db_path: str, fetch_result: FetchResult, ignore_before: date | None = None
) -> BreachOutcome:
    if fetch_result.status == FAILED:
        return BreachOutcome(FETCH_FAILED, reason=fetch_result.reason)

    records = fetch_result.breaches
    if not records:
        return BreachOutcome(NO_BREACHES)

    new_breaches = record_new_breaches(db_path, records)
    if not new_breaches:
        return BreachOutcome(NO_NEW)

    to_notify = filter_by_cutoff(new_breaches, ignore_before)
    if len(to_notify) < len(new_breaches):
        alerted = {record.name for record in to_notify}
        held_back = [record for record in new_breaches if record.name not in alerted]
        mark_suppressed(db_path, held_back[0].email, [record.name for record in held_back])
        logger.info(
            f"[FILTER] {len(held_back)} new breaches added before "
            f"{ignore_before} stored without alert"
        )
    return BreachOutcome(NEW, new_breaches=new_breaches, to_notify=to_notify)
