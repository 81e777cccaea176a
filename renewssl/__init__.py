"""
Modules for single-host certbot renewal with email reporting.

This package contains:
- certbot: Certbot command lines and output parsing
- commands: External command execution
- services: Web server stop/start around the renewal
- report: HTML report rendering
- notification: Report delivery (SMTP, SendGrid)
- orchestrator: The renewal run state machine
- config_loader: Configuration loading and validation
- logger: Centralized logging setup
- helpers: Recipient selection and date formatting
"""

from .logger import setup_logger, get_logger
from .config_loader import (
    load_config,
    Config,
    Settings,
    MailConfig,
    ReportConfig,
    ConfigurationError,
)
from .commands import CommandRunner, CommandError
from .certbot import (
    CertificateRecord,
    CertificateListing,
    RenewalOutcome,
    parse_certificates,
    parse_renewal_outcome,
    count_certificates,
)
from .report import ReportBuilder, ReportKind
from .notification import (
    Notifier,
    NotificationError,
    SmtpNotifier,
    SendGridNotifier,
    create_notifier,
)
from .orchestrator import (
    RenewalOrchestrator,
    RenewalRunResult,
    RenewalState,
    RunLog,
)

__version__ = "1.0.0"

__all__ = [
    # Logger
    "setup_logger",
    "get_logger",
    # Config
    "load_config",
    "Config",
    "Settings",
    "MailConfig",
    "ReportConfig",
    "ConfigurationError",
    # Commands
    "CommandRunner",
    "CommandError",
    # Certbot
    "CertificateRecord",
    "CertificateListing",
    "RenewalOutcome",
    "parse_certificates",
    "parse_renewal_outcome",
    "count_certificates",
    # Report
    "ReportBuilder",
    "ReportKind",
    # Notifications
    "Notifier",
    "NotificationError",
    "SmtpNotifier",
    "SendGridNotifier",
    "create_notifier",
    # Orchestration
    "RenewalOrchestrator",
    "RenewalRunResult",
    "RenewalState",
    "RunLog",
]
