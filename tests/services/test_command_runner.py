import sys

import pytest

from iotedgequickstart.errors import QuickstartError
from iotedgequickstart.services.command_runner import CommandRunner


class RecordingLogger:
    def __init__(self):
        self.messages = []

    def debug(self, msg, *args, **_kwargs):
        self.messages.append(msg % args)

    def warning(self, msg, *args, **_kwargs):
        self.messages.append(msg % args if args else msg)


def test_command_runner_raises_with_stderr():
    runner = CommandRunner(logger=RecordingLogger())

    with pytest.raises(QuickstartError, match="boom"):
        runner.run(
            [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(1)"],
            check=True,
            capture_output=True,
        )


def test_command_runner_returns_when_check_disabled():
    runner = CommandRunner(logger=RecordingLogger())

    result = runner.run(
        [sys.executable, "-c", "import sys; sys.exit(1)"],
        check=False,
        capture_output=True,
    )

    assert result.returncode == 1


def test_command_runner_timeout_raises_error():
    runner = CommandRunner(logger=RecordingLogger())

    with pytest.raises(QuickstartError, match="timed out"):
        runner.run(
            [sys.executable, "-c", "import time; time.sleep(2)"],
            check=True,
            capture_output=True,
            timeout=0.1,
        )


def test_command_runner_missing_binary_is_reported():
    runner = CommandRunner(logger=RecordingLogger())

    with pytest.raises(QuickstartError, match="Required command not found"):
        runner.run(["definitely-not-a-real-binary-xyz"])


def test_command_runner_redacts_secrets_from_logs_and_errors():
    logger = RecordingLogger()
    runner = CommandRunner(logger=logger)

    with pytest.raises(QuickstartError) as exc_info:
        runner.run(
            [sys.executable, "-c", "import sys; sys.stderr.write(sys.argv[1]); sys.exit(3)", "hunter2"],
            check=True,
            capture_output=True,
            redact=["hunter2"],
        )

    assert "hunter2" not in str(exc_info.value)
    assert "***" in str(exc_info.value)
    assert all("hunter2" not in message for message in logger.messages)
