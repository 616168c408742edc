"""
Batch job: check every directory user against HIBP and mail them about new breaches.
"""
import argparse
import logging
import sys
import time
from datetime import date, datetime, timezone

import requests
from dotenv import load_dotenv

from execution.breach_filter_service import FETCH_FAILED, NEW, NO_NEW, filter_by_cutoff, process_breaches
from execution.breach_store_service import count_breaches, ensure_schema, list_unnotified, mark_notified
from execution.config_service import Settings, load_settings
from execution.email_service import breach_noun, format_breach_summary, load_template, send_breach_notification
from execution.graph_directory_service import (
    DirectoryAuthError,
    DirectoryUser,
    GraphDirectory,
    NotificationError,
    SEND_MAIL_SCOPE,
    scopes_for,
)
from execution.hibp_service import check_subscription, fetch_breaches

logger = logging.getLogger(__name__)


def _new_stats() -> dict:
    return {
        "started_at": datetime.now(timezone.utc).isoformat(),
        "users_scanned": 0,
        "new_breaches": 0,
        "notified_users": 0,
        "fetch_failures": 0,
        "send_failures": 0,
        "aborted": None,
    }


def _abort(stats: dict, reason: str) -> dict:
    logger.error(f"[SCAN] Aborting run: {reason}")
    print(f"Aborted: {reason}")
    stats["aborted"] = reason
    return stats


def _notify(settings: Settings, directory, user: DirectoryUser, breaches: list, template: str, stats: dict) -> None:
    try:
        send_breach_notification(directory, user, breaches, template, settings.mail_subject)
    except NotificationError as e:
        logger.error(f"[SCAN] {e}")
        print(f"{user.mail}: failed to send notification ({e})")
        stats["send_failures"] += 1
        return
    mark_notified(settings.db_path, user.mail, [breach.name for breach in breaches])
    stats["notified_users"] += 1
    print(f"{user.mail}: notified about {len(breaches)} {breach_noun(len(breaches))}")


def scan_user(
    settings: Settings,
    directory,
    user: DirectoryUser,
    suppress_emails: bool,
    ignore_before: date | None,
    template: str | None,
    stats: dict,
) -> None:
    """Fetch, dedup, persist and notify for one user."""
    fetch_result = fetch_breaches(user.mail, settings)
    outcome = process_breaches(settings.db_path, fetch_result, ignore_before)
    stats["users_scanned"] += 1

    if outcome.status == FETCH_FAILED:
        stats["fetch_failures"] += 1
        print(f"{user.mail}: no breaches found (lookup failed: {outcome.reason})")
        return
    if outcome.status == NO_NEW:
        print(f"{user.mail}: no new breaches found")
        return
    if outcome.status != NEW:
        print(f"{user.mail}: no breaches found")
        return

    stats["new_breaches"] += outcome.new_count
    print(f"{user.mail}: {outcome.new_count} new {breach_noun(outcome.new_count)} found")

    if not outcome.to_notify:
        return
    if suppress_emails:
        print(format_breach_summary(user, outcome.to_notify))
        return
    _notify(settings, directory, user, outcome.to_notify, template, stats)


def run_scan(
    settings: Settings,
    directory,
    suppress_emails: bool = False,
    ignore_before: date | None = None,
    sleep=time.sleep,
) -> dict:
    """
    Run one full pass over the directory.

    Returns a stats dict; ``stats["aborted"]`` holds the reason when the run
    stopped before processing any user.
    """
    stats = _new_stats()
    ensure_schema(settings.db_path)

    if not check_subscription(settings):
        return _abort(stats, "HIBP subscription is invalid or unreachable")

    template = None
    if not suppress_emails:
        try:
            template = load_template(settings.template_path)
        except OSError as e:
            return _abort(stats, f"cannot read template {settings.template_path}: {e}")

    try:
        directory.authenticate(scopes_for(suppress_emails))
        users = directory.list_users()
    except DirectoryAuthError as e:
        return _abort(stats, str(e))
    except requests.exceptions.RequestException as e:
        return _abort(stats, f"cannot list directory users: {e}")

    logger.info(
        f"[SCAN] Checking {len(users)} users at {settings.rate_limit} requests per minute"
    )
    for index, user in enumerate(users):
        if index > 0:
            sleep(settings.delay_seconds)
        scan_user(settings, directory, user, suppress_emails, ignore_before, template, stats)

    stats["completed_at"] = datetime.now(timezone.utc).isoformat()
    stats["stored_breaches"] = count_breaches(settings.db_path)
    print(
        f"Checked {stats['users_scanned']} users: "
        f"{stats['new_breaches']} new {breach_noun(stats['new_breaches'])}, "
        f"{stats['notified_users']} users notified, {stats['fetch_failures']} lookups failed, "
        f"{stats['send_failures']} notifications failed, "
        f"{stats['stored_breaches']} {breach_noun(stats['stored_breaches'])} on record"
    )
    return stats


def resend_unnotified(settings: Settings, directory, ignore_before: date | None = None) -> dict:
    """Mail users their stored breaches that were never delivered; HIBP is not called."""
    stats = _new_stats()
    ensure_schema(settings.db_path)

    try:
        template = load_template(settings.template_path)
    except OSError as e:
        return _abort(stats, f"cannot read template {settings.template_path}: {e}")

    try:
        directory.authenticate(scopes_for(False))
        users = directory.list_users()
    except DirectoryAuthError as e:
        return _abort(stats, str(e))
    except requests.exceptions.RequestException as e:
        return _abort(stats, f"cannot list directory users: {e}")

    for user in users:
        pending = filter_by_cutoff(list_unnotified(settings.db_path, user.mail), ignore_before)
        stats["users_scanned"] += 1
        if pending:
            _notify(settings, directory, user, pending, template, stats)

    print(
        f"Resent to {stats['notified_users']} users, "
        f"{stats['send_failures']} notifications failed"
    )
    return stats


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Notify directory users about newly published data breaches."
    )
    parser.add_argument(
        "--suppress-emails",
        action="store_true",
        help="do not send mail; print what would have been sent",
    )
    parser.add_argument(
        "--ignore-before",
        type=_parse_date,
        default=None,
        metavar="YYYY-MM-DD",
        help="store but do not alert on breaches added to HIBP before this date",
    )
    parser.add_argument(
        "--resend-unnotified",
        action="store_true",
        help=f"mail stored breaches that were never delivered (needs {SEND_MAIL_SCOPE})",
    )
    parser.add_argument("--db-path", default=None, help="SQLite database path")
    parser.add_argument("--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler('debug.log', mode='w'),
        ],
    )

    settings = load_settings()
    if args.db_path:
        settings.db_path = args.db_path
    directory = GraphDirectory(settings)

    if args.resend_unnotified:
        if args.suppress_emails:
            print("--resend-unnotified cannot be combined with --suppress-emails")
            return 2
        stats = resend_unnotified(settings, directory, args.ignore_before)
    else:
        stats = run_scan(settings, directory, args.suppress_emails, args.ignore_before)
    return 1 if stats["aborted"] else 0


if __name__ == "__main__":
    sys.exit(main())
