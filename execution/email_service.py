"""
Breach notification emails: template rendering and delivery through the
directory's mail facility.
"""
import html
import logging
from pathlib import Path

from execution.breach_models import BreachRecord
from execution.graph_directory_service import DirectoryUser, NotificationError

logger = logging.getLogger(__name__)


def breach_noun(count: int) -> str:
    return "breach" if count == 1 else "breaches"


def load_template(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def render_template(template: str, values: dict) -> str:
    """Replace each ``{{key}}`` with its value; unknown placeholders are left alone."""
    rendered = template
    for key, value in values.items():
        rendered = rendered.replace("{{" + key + "}}", str(value))
    return rendered


def build_table_rows(breaches: list[BreachRecord]) -> str:
    rows = []
    for breach in breaches:
        data_classes = ", ".join(breach.data_classes)
        # HIBP descriptions are already HTML (links, emphasis), so they go in as-is.
        rows.append(
            f"""
            <tr style="border-bottom: 1px solid #444;">
                <td style="padding: 15px; color: #ffffff !important; font-weight: bold; font-size: 14px;">{html.escape(breach.title)}</td>
                <td style="padding: 15px; color: #ffffff !important; font-family: 'Courier New', monospace; font-size: 13px;">{html.escape(data_classes)}</td>
                <td style="padding: 15px; color: #ffffff !important; font-size: 13px;">{html.escape(breach.breach_date)}</td>
                <td style="padding: 15px; color: #ffffff !important; font-size: 13px;">{breach.description}</td>
            </tr>
            """
        )
    return "".join(rows)


def build_notification_html(user: DirectoryUser, breaches: list[BreachRecord], template: str) -> str:
    first_name = user.given_name or user.display_name or user.mail
    return render_template(
        template,
        {
            "firstName": html.escape(first_name),
            "breach": breach_noun(len(breaches)),
            "tablerows": build_table_rows(breaches),
        },
    )


def send_breach_notification(
    mailer, user: DirectoryUser, breaches: list[BreachRecord], template: str, subject: str
) -> None:
    """
    Mail ``user`` about ``breaches``.

    ``mailer`` is anything with ``send_mail(to_address, subject, html_body,
    save_to_sent_items)``. Delivery problems surface as NotificationError.
    """
    if not breaches:
        logger.info(f"[MAIL] No breaches to report for {user.mail}, skipping email")
        return

    html_body = build_notification_html(user, breaches, template)
    try:
        mailer.send_mail(user.mail, subject, html_body, save_to_sent_items=True)
    except NotificationError:
        raise
    except Exception as e:
        raise NotificationError(f"Failed to send notification to {user.mail}: {e}") from e

    logger.info(f"[MAIL] Breach notification sent to {user.mail} ({len(breaches)} breaches)")


def format_breach_summary(user: DirectoryUser, breaches: list[BreachRecord]) -> str:
    """Plain-text stand-in for the email, printed when mail is suppressed."""
    noun = breach_noun(len(breaches))
    lines = [f"{user.display_name or user.mail} <{user.mail}>: {len(breaches)} new {noun}"]
    for breach in breaches:
        lines.append(
            f"  - {breach.title} ({breach.breach_date}): {', '.join(breach.data_classes)}"
        )
    return "\n".join(lines)
