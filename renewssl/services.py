"""
Web server control around the standalone certbot listener.

certbot's standalone authenticator binds port 80, so whichever web
server holds it is stopped for the renewal and started again afterwards.
"""

from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Sequence

from .commands import CommandError, CommandRunner
from .logger import get_logger


def is_active_command(service: str) -> List[str]:
    return ["systemctl", "is-active", "--quiet", service]


def stop_command(service: str) -> List[str]:
    return ["systemctl", "stop", service]


def start_command(service: str) -> List[str]:
    return ["systemctl", "start", service]


def stop_first_active(
    runner: CommandRunner,
    candidates: Sequence[str],
    report: Callable[[str], None],
) -> Optional[str]:
    """
    Stop the first candidate service that is running.

    Inactive or missing services are skipped without comment, and so is
    a candidate whose stop command fails.

    Args:
        runner: Command runner
        candidates: Service names in probe order
        report: Receives progress lines

    Returns:
        Name of the stopped service, or None if none was running
    """
    logger = get_logger()

    for service in candidates:
        if not runner.succeeds(is_active_command(service)):
            continue
        report(f"Stopping {service} to free port 80...")
        try:
            runner.run(stop_command(service))
        except CommandError as e:
            logger.debug(f"Could not stop {service}: {e}")
            continue
        return service

    return None


@contextmanager
def paused_web_service(
    runner: CommandRunner,
    candidates: Sequence[str],
    report: Callable[[str], None],
) -> Iterator[Optional[str]]:
    """
    Stop the running web server for the duration of the block.

    The stopped service is started again on every exit from the block.
    If the block is already failing, a failed restart is logged and the
    original error propagates.

    Yields:
        Name of the stopped service, or None
    """
    logger = get_logger()
    service = stop_first_active(runner, candidates, report)

    try:
        yield service
    except BaseException:
        if service:
            report(f"Starting {service} back up...")
            try:
                runner.run(start_command(service))
            except CommandError as e:
                logger.failure(f"Could not restart {service}: {e}")
        raise
    else:
        if service:
            report(f"Starting {service} back up...")
            runner.run(start_command(service))
