"""
Common utility functions.

Recipient selection and the date formats used in report bodies and
email subjects.
"""

from datetime import datetime
from typing import Optional

from .config_loader import MailConfig


REPORT_SUBJECT = "SSL Renewal Report"


def resolve_recipient(mail: MailConfig) -> Optional[str]:
    """
    Pick the report recipient.

    The explicit recipient wins, then the sender address. Having both
    set to different addresses is not an error.

    Args:
        mail: Mail configuration

    Returns:
        Recipient address, or None if neither is configured
    """
    for address in (mail.to_address, mail.from_address):
        if address and address.strip():
            return address.strip()
    return None


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.astimezone()
    return moment


def format_report_date(moment: datetime) -> str:
    """
    Format a timestamp for the report body.

    Examples:
        >>> from datetime import timezone
        >>> format_report_date(datetime(2026, 10, 17, 9, 5, tzinfo=timezone.utc))
        'Sat Oct 17 2026 09:05:00 GMT+0000 (UTC)'
    """
    moment = _aware(moment)
    offset = moment.strftime("%z") or "+0000"
    tz_name = moment.tzname() or "UTC"
    return f"{moment:%a %b %d %Y %H:%M:%S} GMT{offset} ({tz_name})"


def format_subject_date(moment: datetime) -> str:
    """
    Format a timestamp for an email subject, e.g. ``Oct 17, 2026, 9:05 AM``.
    """
    moment = _aware(moment)
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{moment:%b} {moment.day}, {moment.year}, {hour}:{moment:%M} {meridiem}"


def report_subject(moment: datetime, failed: bool = False) -> str:
    """Build the report email subject line."""
    subject = f"{REPORT_SUBJECT} - {format_subject_date(moment)}"
    if failed:
        subject += " - FAILED"
    return subject
