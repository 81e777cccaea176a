"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone

import pytest

from renewssl.commands import CommandError, CommandRunner
from renewssl.config_loader import Config, MailConfig
from renewssl.logger import setup_logger
from renewssl.notification import NotificationError, Notifier


LIST_COMMAND = "certbot certificates"
RENEW_COMMAND = "certbot renew --agree-tos --preferred-challenges http-01 --standalone --verbose"

LISTING_ONE_CERT = """\
Saving debug log to /var/log/letsencrypt/letsencrypt.log

- - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - -
Found the following certs:
  Certificate Name: example.com
    Serial Number: 3f1c0a2b9d8e7f6a5b4c3d2e1f0a9b8c7d6
    Key Type: RSA
    Domains: example.com www.example.com
    Expiry Date: 2026-12-30 08:15:02+00:00 (VALID: 73 days)
    Certificate Path: /etc/letsencrypt/live/example.com/fullchain.pem
    Private Key Path: /etc/letsencrypt/live/example.com/privkey.pem
- - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - - -
"""

LISTING_TWO_CERTS = """\
Found the following certs:
  Certificate Name: api.example.org
    Domains: api.example.org
    Expiry Date: 2026-10-20 11:00:00+00:00 (VALID: 2 days)
  Certificate Name: shop.example.org
    Domains: shop.example.org cdn.example.org
    Expiry Date: 2026-10-10 11:00:00+00:00 (INVALID: EXPIRED)
"""

RENEW_CONGRATULATIONS = """\
Processing /etc/letsencrypt/renewal/example.com.conf
Renewing an existing certificate for example.com and www.example.com
Congratulations! Your certificate and chain have been saved at:
/etc/letsencrypt/live/example.com/fullchain.pem
"""

RENEW_NOTHING_DUE = """\
Processing /etc/letsencrypt/renewal/example.com.conf
Certificate not yet due for renewal
The following certificates are not due for renewal yet:
  /etc/letsencrypt/live/example.com/fullchain.pem expires on 2026-12-30 (skipped)
No renewals were attempted.
"""


class FakeRunner(CommandRunner):
    """
    Command runner with scripted results.

    Args:
        responses: command line -> output, or a list of outputs used in order
        failures: command line -> stderr text of a failing exit
        active: services that report as running
    """

    def __init__(self, responses=None, failures=None, active=()):
        super().__init__(timeout=5)
        self.responses = dict(responses or {})
        self.failures = dict(failures or {})
        self.active = set(active)
        self.calls = []

    def run(self, command):
        line = command if isinstance(command, str) else " ".join(command)
        self.calls.append(line)

        if line in self.failures:
            raise CommandError(line, self.failures[line], 1)

        if line.startswith("systemctl is-active"):
            if line.split()[-1] in self.active:
                return ""
            raise CommandError(line, "", 3)

        response = self.responses.get(line, "")
        if isinstance(response, list):
            return response.pop(0)
        return response


class RecordingNotifier(Notifier):
    """Notifier that keeps what it was asked to send."""

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to, subject, html_body):
        if self.fail:
            raise NotificationError("connection refused")
        self.sent.append((to, subject, html_body))
        return True


@pytest.fixture(autouse=True)
def logger():
    """Fresh logger bound to the test's captured stdout."""
    return setup_logger(verbose=True, use_colors=False)


@pytest.fixture
def config():
    return Config(mail=MailConfig(to_address="ops@example.com"))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return lambda: datetime(2026, 10, 17, 9, 5, 0, tzinfo=timezone.utc)
