"""
HTML renewal report rendering.

Reports are built from a template with ``{{placeholder}}`` tokens. The
success and failure variants share one structure and differ only in
title and heading color.
"""

import html
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

from .certbot import CertificateRecord, RenewalOutcome
from .logger import get_logger


class ReportKind(Enum):
    """Report variant."""
    SUCCESS = "success"
    FAILURE = "failure"


THEMES = {
    ReportKind.SUCCESS: {"title": "SSL Renewal Report", "color": "#2a5d84"},
    ReportKind.FAILURE: {"title": "SSL Renewal Report - FAILED", "color": "#d84315"},
}

DEFAULT_TEMPLATE = """<!DOCTYPE html>
<html><head><meta charset="UTF-8">
<style>
  body { font-family:Arial,sans-serif; color:#222; }
  h2 { color:{{heading_color}}; }
  h3 { color:{{heading_color}}; }
  table { margin-bottom:24px; }
  th { background:#f0f4f8; }
  td,th { padding:6px 12px; }
</style>
</head><body>
  <h2>{{title}}</h2>
  <p><b>Host:</b> {{hostname}}<br><b>Date:</b> {{date}}</p>

  <p><b>Total certificates:</b> {{total_certificates}}<br>
  <b>Total needing updated:</b> {{needing_renewal}}<br>
  <b>Total successfully updated:</b> {{successfully_renewed}}</p>

  <h3>Certificate Status</h3>
  {{certificate_table}}
</body></html>
"""

TABLE_OPEN = '<table border="1" cellpadding="4" cellspacing="0" style="border-collapse:collapse;">'
TABLE_HEADER = "<tr><th>Status</th><th>Certificate Name</th><th>Domains</th><th>Expiry Date</th></tr>"


class ReportBuilder:
    """
    Renders renewal reports.

    Args:
        template_path: Optional HTML template file; the built-in template
            is used when unset or missing
        escape_html: HTML-escape interpolated values. Off by default since
            certificate and domain names come from the operator's own
            certbot configuration.
    """

    def __init__(self, template_path: Optional[str] = None, escape_html: bool = False):
        self.template_path = template_path
        self.escape_html = escape_html
        self.logger = get_logger()
        self._template: Optional[str] = None

    def _load_template(self) -> str:
        if self._template is not None:
            return self._template

        if self.template_path:
            path = Path(self.template_path)
            if path.is_file():
                try:
                    with open(path, "r", encoding="utf-8") as f:
                        self._template = f.read()
                    return self._template
                except (OSError, UnicodeDecodeError) as e:
                    self.logger.warning(f"Could not read report template {path} ({e}), using default")
            else:
                self.logger.warning(f"Report template not found at {path}, using default")

        self._template = DEFAULT_TEMPLATE
        return self._template

    def _text(self, value: object) -> str:
        text = str(value)
        return html.escape(text) if self.escape_html else text

    def render_table(self, records: Sequence[CertificateRecord]) -> str:
        """Render certificate records as an HTML table with a header row."""
        rows = [TABLE_OPEN, TABLE_HEADER]
        for record in records:
            rows.append(
                f"<tr><td>{self._text(record.status)}</td>"
                f"<td>{self._text(record.name)}</td>"
                f"<td>{self._text(record.domains)}</td>"
                f"<td>{self._text(record.expiry_timestamp)}</td></tr>"
            )
        rows.append("</table>")
        return "".join(rows)

    def build(
        self,
        kind: ReportKind,
        hostname: str,
        timestamp: str,
        total_certificates: int,
        outcome: Optional[RenewalOutcome],
        records: Sequence[CertificateRecord],
    ) -> str:
        """
        Build a complete HTML report.

        Args:
            kind: Success or failure variant
            hostname: Host the renewal ran on
            timestamp: Preformatted report date
            total_certificates: Certificate count for the summary
            outcome: Renewal counts, or None when they could not be computed
            records: Certificate rows for the table

        Returns:
            HTML document
        """
        theme = THEMES[kind]

        if outcome is None:
            needing, renewed = "Unknown", "0"
        else:
            needing = str(outcome.needed_renewal)
            renewed = str(outcome.successfully_renewed)

        document = self._load_template()
        document = document.replace("{{heading_color}}", theme["color"])
        document = document.replace("{{title}}", theme["title"])
        document = document.replace("{{hostname}}", self._text(hostname))
        document = document.replace("{{date}}", self._text(timestamp))
        document = document.replace("{{total_certificates}}", str(total_certificates))
        document = document.replace("{{needing_renewal}}", needing)
        document = document.replace("{{successfully_renewed}}", renewed)
        # Table last so certificate text is never scanned for placeholders
        document = document.replace("{{certificate_table}}", self.render_table(records))

        return document
