#!/usr/bin/env python3
"""
SSL Certificate Renewal - Main Entry Point.

Renews the certbot-managed certificates on this host and emails an HTML
report. Meant to be run periodically by cron or a systemd timer, as root.

Usage:
    # Renew and email the report
    python main.py

    # Use a specific configuration file, with debug output
    python main.py --config /etc/renew-ssl/config.yaml --verbose

    # Ask certbot for a dry run (the web server is still paused)
    python main.py --dry-run

    # Check mail settings by sending a test message
    python main.py --test-email
"""

import argparse
import sys
from typing import Optional

from renewssl.logger import setup_logger, get_logger
from renewssl.config_loader import load_config, Config, ConfigurationError
from renewssl.commands import CommandRunner
from renewssl.helpers import resolve_recipient
from renewssl.notification import Notifier, NotificationError, create_notifier
from renewssl.orchestrator import RenewalOrchestrator


TEST_EMAIL_SUBJECT = "Test Email from renew-ssl"
TEST_EMAIL_BODY = (
    "<h1>Hello World!</h1>"
    "<p>This is a test email sent from the renew-ssl application.</p>"
)


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Certbot renewal with web server pause and HTML email report",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                  # Renew and email the report
  %(prog)s --config /etc/renew-ssl/config.yaml
  %(prog)s --dry-run --verbose              # certbot --dry-run, debug output
  %(prog)s --test-email                     # Send a test message and exit
        """,
    )

    parser.add_argument(
        "--config",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml, optional)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Pass --dry-run to certbot renew",
    )
    parser.add_argument(
        "--test-email",
        action="store_true",
        help="Send a test email to MAIL_USERNAME and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write the log to this file",
    )
    parser.add_argument(
        "--json-summary",
        action="store_true",
        help="Print a machine-readable JSON summary at the end of the run",
    )

    return parser.parse_args(argv)


def send_test_email(config: Config) -> int:
    """
    Send a fixed test message to the SMTP account itself.

    Returns:
        Exit code (0 sent, 1 not sent)
    """
    logger = get_logger()
    recipient = config.mail.username
    if not recipient:
        logger.error("MAIL_USERNAME not set.")
        return 1

    notifier = create_notifier(config)
    logger.info(f"Sending test email to {recipient}...")
    try:
        notifier.send(recipient, TEST_EMAIL_SUBJECT, TEST_EMAIL_BODY)
    except NotificationError as e:
        logger.failure(f"Failed to send test email: {e}")
        return 1

    logger.success("Test email sent successfully.")
    return 0


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point.

    Exit Codes:
        0 - Run completed (renewal success or a reported failure)
        1 - Test email could not be sent
        2 - Configuration error

    Returns:
        Exit code
    """
    args = parse_arguments(argv)

    logger = setup_logger(
        verbose=args.verbose,
        use_colors=not args.no_color,
        log_file=args.log_file,
    )

    try:
        config = load_config(args.config)
        if args.dry_run:
            config.settings.dry_run = True

        if args.test_email:
            return send_test_email(config)

        # Transport settings only matter when there is someone to send to
        notifier: Optional[Notifier] = None
        if resolve_recipient(config.mail):
            notifier = create_notifier(config)

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    if config.settings.dry_run:
        logger.warning("DRY RUN MODE - certbot will not save renewed certificates")

    logger.section("SSL Certificate Renewal")

    orchestrator = RenewalOrchestrator(
        config=config,
        runner=CommandRunner(timeout=config.settings.command_timeout),
        notifier=notifier,
    )
    result = orchestrator.run()

    if result.success:
        logger.success("Renewal run completed")
    else:
        logger.failure(f"Renewal run failed: {result.error}")

    if args.json_summary:
        print(result.to_json())

    return 0


if __name__ == "__main__":
    sys.exit(main())
