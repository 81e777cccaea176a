"""
Renewal run orchestration.

One run takes a certificate snapshot, frees port 80 by stopping the web
server, runs ``certbot renew``, restarts the web server, takes a second
snapshot and emails an HTML report. Any failure along the way produces
a failure report built from the first snapshot instead. A run never
raises; the outcome is recorded in the returned result.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .certbot import (
    RenewalOutcome,
    certificates_command,
    parse_certificates,
    parse_renewal_outcome,
    renew_command,
)
from .commands import CommandError, CommandRunner
from .config_loader import Config
from .helpers import format_report_date, report_subject, resolve_recipient
from .logger import StructuredLogger, get_logger
from .notification import Notifier
from .report import ReportBuilder, ReportKind
from .services import paused_web_service


HOSTNAME_COMMAND = ["hostname"]
UNKNOWN_HOST = "unknown host"


class RenewalState(Enum):
    """Stages of a renewal run, in order."""
    STARTED = "started"
    PRE_SNAPSHOT = "pre_snapshot"
    SERVICE_PAUSED = "service_paused"
    RENEWED = "renewed"
    SERVICE_RESUMED = "service_resumed"
    POST_SNAPSHOT = "post_snapshot"
    REPORTED = "reported"
    FINISHED = "finished"


class RunLog:
    """
    Ordered progress lines for one run.

    Lines added with :meth:`add` or :meth:`error` are also logged.
    Raw command output added with :meth:`record` is only kept.
    """

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self.logger = logger or get_logger()
        self.lines: List[str] = []

    def add(self, message: str) -> None:
        self.logger.info(message)
        self.lines.append(message)

    def error(self, message: str) -> None:
        self.logger.error(message)
        self.lines.append(message)

    def record(self, text: str) -> None:
        self.lines.append(text)

    def __iter__(self):
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    def __contains__(self, message: str) -> bool:
        return message in self.lines


@dataclass
class RenewalRunResult:
    """Everything one run produced."""
    success: bool = False
    state: RenewalState = RenewalState.STARTED
    pre_snapshot: str = ""
    post_snapshot: str = ""
    renew_output: str = ""
    hostname: str = ""
    timestamp: str = ""
    outcome: Optional[RenewalOutcome] = None
    stopped_service: Optional[str] = None
    error: Optional[str] = None
    report_sent: bool = False
    log: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "state": self.state.value,
            "hostname": self.hostname,
            "timestamp": self.timestamp,
            "stopped_service": self.stopped_service,
            "outcome": {
                "needed_renewal": self.outcome.needed_renewal,
                "successfully_renewed": self.outcome.successfully_renewed,
            } if self.outcome else None,
            "error": self.error,
            "report_sent": self.report_sent,
            "log": self.log,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


class RenewalOrchestrator:
    """
    Runs one renewal from first snapshot to report delivery.

    Args:
        config: Loaded configuration
        runner: Executes certbot, systemctl and hostname
        notifier: Report transport; None disables delivery
        clock: Returns the current time; used for report dates
    """

    def __init__(
        self,
        config: Config,
        runner: CommandRunner,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.runner = runner
        self.notifier = notifier
        self.clock = clock or (lambda: datetime.now().astimezone())
        self.logger = get_logger()
        self.builder = ReportBuilder(
            template_path=config.report.template_path,
            escape_html=config.report.escape_html,
        )
        self.run_log = RunLog(self.logger)
        self.result = RenewalRunResult(log=self.run_log.lines)

    def _transition(self, state: RenewalState) -> None:
        self.logger.debug(f"State: {self.result.state.value} -> {state.value}")
        self.result.state = state

    def run(self) -> RenewalRunResult:
        """
        Execute the run.

        Returns:
            RenewalRunResult describing what happened
        """
        self.run_log = RunLog(self.logger)
        self.result = RenewalRunResult(log=self.run_log.lines)

        try:
            self._renew()
        except Exception as e:
            self._fail(e)
        return self.result

    def _renew(self) -> None:
        settings = self.config.settings
        result = self.result
        log = self.run_log

        log.add("SSL Renewal script started.")

        log.add("Getting certificate status before renewal...")
        result.pre_snapshot = self.runner.run(certificates_command(settings))
        self._transition(RenewalState.PRE_SNAPSHOT)

        with paused_web_service(self.runner, settings.web_services, log.add) as service:
            result.stopped_service = service
            self._transition(RenewalState.SERVICE_PAUSED)

            log.add("Running certbot renew...")
            try:
                result.renew_output = self.runner.run(renew_command(settings))
            except CommandError as e:
                log.record(e.stderr)
                raise
            log.record(result.renew_output)
            self.logger.output("certbot renew", result.renew_output)
            self._transition(RenewalState.RENEWED)

        self._transition(RenewalState.SERVICE_RESUMED)

        log.add("Getting certificate status after renewal...")
        result.post_snapshot = self.runner.run(certificates_command(settings))
        self._transition(RenewalState.POST_SNAPSHOT)

        log.add("Building HTML report...")
        result.hostname = self.runner.run(HOSTNAME_COMMAND)
        moment = self.clock()
        result.timestamp = format_report_date(moment)
        result.outcome = parse_renewal_outcome(result.renew_output)
        listing = parse_certificates(result.post_snapshot)

        report = self.builder.build(
            ReportKind.SUCCESS,
            hostname=result.hostname,
            timestamp=result.timestamp,
            total_certificates=listing.total,
            outcome=result.outcome,
            records=listing.records,
        )
        self._transition(RenewalState.REPORTED)

        result.report_sent = self._deliver(report_subject(moment), report)

        result.success = True
        self._transition(RenewalState.FINISHED)
        log.add("SSL Renewal script finished successfully.")

    def _fail(self, error: Exception) -> None:
        result = self.result
        log = self.run_log

        result.success = False
        result.error = str(error)
        log.error(f"An error occurred: {error}")

        try:
            result.hostname = self.runner.run(HOSTNAME_COMMAND)
        except CommandError:
            result.hostname = UNKNOWN_HOST

        moment = self.clock()
        result.timestamp = format_report_date(moment)
        listing = parse_certificates(result.pre_snapshot)

        report = self.builder.build(
            ReportKind.FAILURE,
            hostname=result.hostname,
            timestamp=result.timestamp,
            total_certificates=listing.total,
            outcome=None,
            records=listing.records,
        )

        result.report_sent = self._deliver(report_subject(moment, failed=True), report)

        self._transition(RenewalState.FINISHED)
        log.error("SSL Renewal script finished with errors.")

    def _deliver(self, subject: str, report: str) -> bool:
        """
        Send a report to the configured recipient.

        Delivery problems are logged and never propagate.

        Returns:
            True if the report was sent
        """
        log = self.run_log
        recipient = resolve_recipient(self.config.mail)

        if not recipient:
            log.add("SMTP_TO_ADDRESS or SMTP_FROM_ADDRESS not set, skipping email.")
            return False
        if self.notifier is None:
            log.add("No mail transport configured, skipping email.")
            return False

        log.add(f"Sending report to {recipient}...")
        try:
            self.notifier.send(recipient, subject, report)
        except Exception as e:
            log.error(f"Failed to send report email: {e}")
            return False

        log.add("Email report sent.")
        return True
