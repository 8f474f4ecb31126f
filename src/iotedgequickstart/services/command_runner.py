"""Subprocess execution service for iotedge-quickstart."""

import subprocess
from typing import Iterable, List, Optional

from iotedgequickstart.errors import QuickstartError

REDACTED = "***"


class CommandRunner:
    """Runs external commands with consistent error handling and secret redaction."""

    def __init__(self, logger, default_timeout: Optional[float] = None):
        self.logger = logger
        self.default_timeout = default_timeout

    @staticmethod
    def mask(text: str, redact: Iterable[str]) -> str:
        for secret in redact:
            if secret:
                text = text.replace(secret, REDACTED)
        return text

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        redact: Optional[Iterable[str]] = None,
    ) -> subprocess.CompletedProcess:
        secrets = [value for value in (redact or []) if value]
        cmd_str = self.mask(" ".join(cmd), secrets)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            result = subprocess.run(
                cmd,
                text=True,
                capture_output=capture_output,
                timeout=effective_timeout,
            )
        except FileNotFoundError as exc:
            raise QuickstartError(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise QuickstartError(f"Command timed out after {effective_timeout}s: {cmd_str}") from exc
        except Exception as exc:
            raise QuickstartError(
                f"Failed to execute command: {cmd_str}. {self.mask(str(exc), secrets)}"
            ) from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", self.mask(result.stdout.strip(), secrets))

        if result.returncode == 0:
            return result

        stderr = (result.stderr or "").strip() if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{self.mask(stderr, secrets)}"

        if check:
            raise QuickstartError(message)

        self.logger.warning(message)
        return result
