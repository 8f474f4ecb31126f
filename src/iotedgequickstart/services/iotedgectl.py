"""iotedgectl bootstrapper: the legacy pip-installed runtime control script."""

import sys
from typing import List, Optional, Set

from iotedgequickstart.models import RegistryCredentials, Transport
from iotedgequickstart.services.bootstrapper import Bootstrapper
from iotedgequickstart.services.deployment import EDGE_AGENT, image_name

PACKAGE_NAME = "azure-iot-edge-runtime-ctl"


class IotedgectlBootstrapper(Bootstrapper):
    name = "iotedgectl"

    def _pip(self, *args: str) -> List[str]:
        return [sys.executable, "-m", "pip"] + list(args)

    def _install(self):
        self._run(["docker", "--version"], capture_output=True)
        target = self.archive_path or PACKAGE_NAME
        self.logger.info("Installing iotedgectl from %s", target)
        self._run(self._pip("install", "--upgrade", target), capture_output=True)

    def _configure(
        self,
        credentials: Optional[RegistryCredentials],
        device_connection_string: str,
        edge_hostname: str,
        transport: Optional[Transport],
    ):
        if transport is not None and transport.is_http:
            self.logger.warning("iotedgectl does not support --use-http; the transport setting is ignored.")

        cmd = [
            "iotedgectl",
            "setup",
            "--connection-string",
            device_connection_string,
            "--nopass",
            "--edge-hostname",
            edge_hostname,
            "--image",
            image_name(EDGE_AGENT, self.image_tag, credentials),
        ]
        redact = [device_connection_string]
        if credentials is not None:
            cmd += ["--docker-registries", credentials.address, credentials.user, credentials.password]
            redact.append(credentials.password)

        self._run(cmd, capture_output=True, redact=redact)

    def _start(self):
        self._run(["iotedgectl", "start"], capture_output=True)

    def _stop(self):
        self._run(["iotedgectl", "stop"], capture_output=True)

    def _uninstall(self):
        self._run(["iotedgectl", "uninstall"], capture_output=True)
        self._run(self._pip("uninstall", "--yes", PACKAGE_NAME), capture_output=True)

    def _running_modules(self) -> Set[str]:
        result = self._run(
            ["docker", "ps", "--filter", "status=running", "--format", "{{.Names}}"],
            check=False,
            capture_output=True,
        )
        if result.returncode != 0:
            return set()
        return {line.strip() for line in (result.stdout or "").splitlines() if line.strip()}
