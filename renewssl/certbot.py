"""
Certbot command lines and output parsing.

Certbot only offers human-readable output, so both parsers scan it line
by line and leave fields empty rather than fail when a line does not
have the expected shape.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .config_loader import Settings


NAME_MARKER = "Certificate Name:"
DOMAINS_MARKER = "Domains:"
EXPIRY_MARKER = "Expiry Date:"

# "Expiry Date: 2024-01-01 00:00:00+00:00 (VALID: 89 days)"
EXPIRY_PATTERN = re.compile(r"Expiry Date:\s*([^ ]+[ ][^ ]+)[ ]+\(([^)]*)\)")

SUCCESS_MARKERS = (
    "Successfully renewed certificate",
    "Congratulations! Your certificate and chain have been saved",
)
ATTEMPT_MARKERS = (
    "Renewing an existing certificate",
    "Attempting to renew cert",
)
RENEWED_COUNT_PATTERN = re.compile(r"(\d+)\s+renewed")


@dataclass
class CertificateRecord:
    """One certificate block from ``certbot certificates``."""
    name: str = ""
    domains: str = ""
    expiry_timestamp: str = ""
    status: str = ""


@dataclass
class CertificateListing:
    """Parsed ``certbot certificates`` output."""
    records: List[CertificateRecord] = field(default_factory=list)
    total: int = 0


@dataclass
class RenewalOutcome:
    """Counts derived from ``certbot renew`` output."""
    needed_renewal: int = 0
    successfully_renewed: int = 0


class LineKind(Enum):
    """Kinds of line found in certificate listings."""
    NAME = "name"
    DOMAINS = "domains"
    EXPIRY = "expiry"
    OTHER = "other"


def certificates_command(settings: Settings) -> List[str]:
    """Command that lists the certificates certbot manages."""
    return [settings.certbot_path, "certificates"]


def renew_command(settings: Settings) -> List[str]:
    """
    Command that renews due certificates using a standalone HTTP-01 listener.

    The listener needs port 80, which is why the web server is stopped first.
    """
    cmd = [
        settings.certbot_path, "renew",
        "--agree-tos",
        "--preferred-challenges", "http-01",
        "--standalone",
        "--verbose",
    ]
    if settings.dry_run:
        cmd.append("--dry-run")
    return cmd


def _value_after_colon(line: str) -> str:
    # Only the segment between the first and second colon is kept
    return line.split(":")[1].strip()


def classify_line(line: str) -> LineKind:
    """Tag a listing line by the marker it contains."""
    if NAME_MARKER in line:
        return LineKind.NAME
    if DOMAINS_MARKER in line:
        return LineKind.DOMAINS
    if EXPIRY_MARKER in line:
        return LineKind.EXPIRY
    return LineKind.OTHER


def parse_expiry(line: str) -> Optional[Tuple[str, str]]:
    """
    Extract ``(date time, status)`` from an expiry line.

    Returns:
        Tuple of timestamp and status, or None if the line has another shape
    """
    match = EXPIRY_PATTERN.search(line)
    if not match:
        return None
    return match.group(1), match.group(2)


def count_certificates(raw_listing: str) -> int:
    """Count ``Certificate Name:`` markers in a listing."""
    return sum(1 for line in raw_listing.split("\n") if NAME_MARKER in line)


def parse_certificates(raw_listing: str) -> CertificateListing:
    """
    Parse ``certbot certificates`` output into certificate records.

    A marker line starts a new record and flushes the pending one. Domain
    and expiry lines fill the pending record; lines seen before the first
    marker are ignored. Records keep the order of the source text.

    Args:
        raw_listing: Raw command output

    Returns:
        CertificateListing with records and marker count
    """
    records: List[CertificateRecord] = []
    pending: Optional[CertificateRecord] = None

    for line in raw_listing.split("\n"):
        kind = classify_line(line)

        if kind is LineKind.NAME:
            if pending is not None:
                records.append(pending)
            pending = CertificateRecord(name=_value_after_colon(line))
        elif pending is None:
            continue
        elif kind is LineKind.DOMAINS:
            pending.domains = _value_after_colon(line)
        elif kind is LineKind.EXPIRY:
            expiry = parse_expiry(line)
            if expiry:
                pending.expiry_timestamp, pending.status = expiry

    if pending is not None:
        records.append(pending)

    return CertificateListing(records=records, total=count_certificates(raw_listing))


def parse_renewal_outcome(raw_renew_output: str) -> RenewalOutcome:
    """
    Count certificates that needed renewal and that were renewed.

    Per-certificate messages are counted first. When there are none, the
    ``N renewed, M unchanged`` summary line is used and all N renewed
    certificates are taken to have needed renewal. No match at all means
    nothing was due.

    Args:
        raw_renew_output: Raw ``certbot renew`` output

    Returns:
        RenewalOutcome
    """
    lines = raw_renew_output.split("\n")
    outcome = RenewalOutcome()

    for line in lines:
        if any(marker in line for marker in SUCCESS_MARKERS):
            outcome.successfully_renewed += 1
        if any(marker in line for marker in ATTEMPT_MARKERS):
            outcome.needed_renewal += 1

    if outcome.needed_renewal or outcome.successfully_renewed:
        return outcome

    for line in lines:
        if "renewed," in line and "unchanged," in line:
            match = RENEWED_COUNT_PATTERN.search(line)
            if match:
                renewed = int(match.group(1))
                outcome = RenewalOutcome(needed_renewal=renewed, successfully_renewed=renewed)

    return outcome
