"""Tests for the renewal run state machine."""

import json

from renewssl.certbot import RenewalOutcome
from renewssl.config_loader import Config, MailConfig, ReportConfig
from renewssl.orchestrator import RenewalOrchestrator, RenewalState, RunLog

from conftest import (
    LIST_COMMAND,
    LISTING_ONE_CERT,
    LISTING_TWO_CERTS,
    RENEW_COMMAND,
    RENEW_CONGRATULATIONS,
    RecordingNotifier,
    FakeRunner,
)


def happy_runner(**kwargs):
    return FakeRunner(
        responses={
            LIST_COMMAND: [LISTING_ONE_CERT, LISTING_ONE_CERT],
            RENEW_COMMAND: RENEW_CONGRATULATIONS,
            "hostname": "web01",
        },
        **kwargs,
    )


class TestSuccessfulRun:
    def test_happy_path_sends_success_report(self, config, notifier, clock):
        runner = happy_runner(active={"nginx"})

        result = RenewalOrchestrator(config, runner, notifier, clock=clock).run()

        assert result.success is True
        assert result.state is RenewalState.FINISHED
        assert result.hostname == "web01"
        assert result.outcome == RenewalOutcome(needed_renewal=1, successfully_renewed=1)
        assert result.report_sent is True

        (to, subject, body), = notifier.sent
        assert to == "ops@example.com"
        assert subject == "SSL Renewal Report - Oct 17, 2026, 9:05 AM"
        assert "<h2>SSL Renewal Report</h2>" in body
        assert "<b>Total certificates:</b> 1<br>" in body
        assert "<b>Total successfully updated:</b> 1</p>" in body
        assert "<td>example.com</td>" in body
        assert "<b>Date:</b> Sat Oct 17 2026 09:05:00 GMT+0000 (UTC)" in body

    def test_commands_run_in_order(self, config, notifier, clock):
        runner = happy_runner(active={"nginx"})

        RenewalOrchestrator(config, runner, notifier, clock=clock).run()

        assert runner.calls == [
            LIST_COMMAND,
            "systemctl is-active --quiet nginx",
            "systemctl stop nginx",
            RENEW_COMMAND,
            "systemctl start nginx",
            LIST_COMMAND,
            "hostname",
        ]

    def test_first_active_candidate_is_paused(self, config, notifier, clock):
        runner = happy_runner(active={"httpd", "apache2"})

        result = RenewalOrchestrator(config, runner, notifier, clock=clock).run()

        assert result.stopped_service == "httpd"
        assert "systemctl stop httpd" in runner.calls
        assert "systemctl start httpd" in runner.calls
        assert "systemctl stop apache2" not in runner.calls
        assert "systemctl is-active --quiet apache2" not in runner.calls

    def test_no_running_web_server(self, config, notifier, clock):
        runner = happy_runner()

        result = RenewalOrchestrator(config, runner, notifier, clock=clock).run()

        assert result.success is True
        assert result.stopped_service is None
        assert not any(c.startswith(("systemctl stop", "systemctl start")) for c in runner.calls)

    def test_report_uses_post_renewal_snapshot(self, config, notifier, clock):
        runner = FakeRunner(responses={
            LIST_COMMAND: [LISTING_ONE_CERT, LISTING_TWO_CERTS],
            RENEW_COMMAND: "1 renewed, 1 unchanged, 0 failed",
        })

        RenewalOrchestrator(config, runner, notifier, clock=clock).run()

        body = notifier.sent[0][2]
        assert "<b>Total certificates:</b> 2<br>" in body
        assert "<td>shop.example.org</td>" in body
        assert "<b>Total needing updated:</b> 1<br>" in body

    def test_renew_output_is_kept_in_run_log(self, config, notifier, clock):
        result = RenewalOrchestrator(config, happy_runner(), notifier, clock=clock).run()

        assert RENEW_CONGRATULATIONS in result.log
        assert result.log[0] == "SSL Renewal script started."
        assert result.log[-1] == "SSL Renewal script finished successfully."

    def test_missing_recipient_skips_email(self, notifier, clock):
        config = Config(mail=MailConfig())

        result = RenewalOrchestrator(config, happy_runner(), notifier, clock=clock).run()

        assert result.success is True
        assert result.report_sent is False
        assert notifier.sent == []
        assert "SMTP_TO_ADDRESS or SMTP_FROM_ADDRESS not set, skipping email." in result.log
        assert result.log[-1] == "SSL Renewal script finished successfully."

    def test_from_address_used_when_no_to_address(self, notifier, clock):
        config = Config(mail=MailConfig(from_address="certs@example.com"))

        RenewalOrchestrator(config, happy_runner(), notifier, clock=clock).run()

        assert notifier.sent[0][0] == "certs@example.com"

    def test_send_failure_does_not_fail_run(self, config, clock):
        notifier = RecordingNotifier(fail=True)

        result = RenewalOrchestrator(config, happy_runner(), notifier, clock=clock).run()

        assert result.success is True
        assert result.report_sent is False
        assert "Failed to send report email: connection refused" in result.log

    def test_no_notifier_skips_email(self, config, clock):
        result = RenewalOrchestrator(config, happy_runner(), None, clock=clock).run()

        assert result.success is True
        assert result.report_sent is False


class TestFailedRun:
    def test_renewal_failure_sends_failure_report(self, config, notifier, clock):
        runner = FakeRunner(
            responses={LIST_COMMAND: LISTING_TWO_CERTS, "hostname": "web01"},
            failures={RENEW_COMMAND: "Problem binding to port 80: Could not bind to IPv4 or IPv6."},
        )

        result = RenewalOrchestrator(config, runner, notifier, clock=clock).run()

        assert result.success is False
        assert result.state is RenewalState.FINISHED
        assert "Problem binding to port 80" in result.error
        assert result.report_sent is True

        (to, subject, body), = notifier.sent
        assert to == "ops@example.com"
        assert subject == "SSL Renewal Report - Oct 17, 2026, 9:05 AM - FAILED"
        assert "<h2>SSL Renewal Report - FAILED</h2>" in body
        assert "<b>Total certificates:</b> 2<br>" in body
        assert "<b>Total needing updated:</b> Unknown<br>" in body
        assert "<b>Total successfully updated:</b> 0</p>" in body
        assert "<td>api.example.org</td>" in body
        assert result.log[-1] == "SSL Renewal script finished with errors."

    def test_web_server_restarted_when_renewal_fails(self, config, notifier, clock):
        runner = FakeRunner(
            responses={LIST_COMMAND: LISTING_ONE_CERT},
            failures={RENEW_COMMAND: "boom"},
            active={"nginx"},
        )

        result = RenewalOrchestrator(config, runner, notifier, clock=clock).run()

        assert result.success is False
        assert runner.calls.index("systemctl start nginx") > runner.calls.index(RENEW_COMMAND)
        assert LIST_COMMAND not in runner.calls[runner.calls.index(RENEW_COMMAND):]
        assert "boom" in result.log

    def test_restart_failure_during_failed_renewal_keeps_renewal_error(self, config, notifier, clock):
        runner = FakeRunner(
            responses={LIST_COMMAND: LISTING_ONE_CERT},
            failures={RENEW_COMMAND: "renew broke", "systemctl start nginx": "unit failed"},
            active={"nginx"},
        )

        result = RenewalOrchestrator(config, runner, notifier, clock=clock).run()

        assert result.error == "renew broke"
        assert len(notifier.sent) == 1

    def test_restart_failure_after_renewal_fails_run(self, config, notifier, clock):
        runner = happy_runner(active={"nginx"}, failures={"systemctl start nginx": "unit failed"})

        result = RenewalOrchestrator(config, runner, notifier, clock=clock).run()

        assert result.success is False
        assert result.error == "unit failed"
        assert notifier.sent[0][1].endswith(" - FAILED")

    def test_pre_snapshot_failure(self, config, notifier, clock):
        runner = FakeRunner(failures={LIST_COMMAND: "certbot: command not found", "hostname": "no"})

        result = RenewalOrchestrator(config, runner, notifier, clock=clock).run()

        assert result.success is False
        assert result.hostname == "unknown host"
        assert RENEW_COMMAND not in runner.calls
        body = notifier.sent[0][2]
        assert "<b>Host:</b> unknown host<br>" in body
        assert "<b>Total certificates:</b> 0<br>" in body

    def test_failure_send_error_is_swallowed(self, config, clock):
        runner = FakeRunner(failures={RENEW_COMMAND: "boom"})

        result = RenewalOrchestrator(config, runner, RecordingNotifier(fail=True), clock=clock).run()

        assert result.success is False
        assert result.report_sent is False
        assert result.log[-1] == "SSL Renewal script finished with errors."

    def test_failure_without_recipient(self, notifier, clock):
        runner = FakeRunner(failures={RENEW_COMMAND: "boom"})

        result = RenewalOrchestrator(Config(), runner, notifier, clock=clock).run()

        assert result.success is False
        assert notifier.sent == []


def test_result_to_json(config, notifier, clock):
    result = RenewalOrchestrator(config, happy_runner(active={"nginx"}), notifier, clock=clock).run()

    data = json.loads(result.to_json())

    assert data["success"] is True
    assert data["state"] == "finished"
    assert data["stopped_service"] == "nginx"
    assert data["outcome"] == {"needed_renewal": 1, "successfully_renewed": 1}
    assert data["log"] == result.log


def test_run_log_records_raw_text_silently(logger):
    log = RunLog(logger)
    log.add("step")
    log.record("raw\noutput")

    assert list(log) == ["step", "raw\noutput"]
    assert len(log) == 2
    assert "step" in log


def test_unreadable_template_still_sends_report(notifier, clock, tmp_path):
    config = Config(
        mail=MailConfig(to_address="ops@example.com"),
        report=ReportConfig(template_path=str(tmp_path)),
    )

    result = RenewalOrchestrator(config, happy_runner(), notifier, clock=clock).run()

    assert result.success is True
    assert result.state is RenewalState.FINISHED
    assert "<h2>SSL Renewal Report</h2>" in notifier.sent[0][2]


def test_each_run_starts_with_a_fresh_result(config, notifier, clock):
    runner = FakeRunner(responses={LIST_COMMAND: LISTING_ONE_CERT, "hostname": "web01"})
    orchestrator = RenewalOrchestrator(config, runner, notifier, clock=clock)

    first = orchestrator.run()
    second = orchestrator.run()

    assert first is not second
    assert first.log == second.log
    assert second.log.count("SSL Renewal script started.") == 1
    assert len(notifier.sent) == 2
