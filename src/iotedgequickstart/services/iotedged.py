"""iotedged bootstrapper: apt/dpkg packages, systemd service and config.yaml."""

import glob
import os
import socket
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import yaml

from iotedgequickstart.errors import QuickstartError
from iotedgequickstart.models import RegistryCredentials, Transport
from iotedgequickstart.services.bootstrapper import Bootstrapper
from iotedgequickstart.services.deployment import EDGE_AGENT, image_name

DEFAULT_CONFIG_PATH = "/etc/iotedge/config.yaml"
MANAGEMENT_PORT = 15580
WORKLOAD_PORT = 15581
MANAGEMENT_SOCKET = "unix:///var/run/iotedge/mgmt.sock"
WORKLOAD_SOCKET = "unix:///var/run/iotedge/workload.sock"


def local_ip_address() -> str:
    """Best guess at the address other hosts reach us on."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            # No packet is sent; connecting a UDP socket only selects a route.
            sock.connect(("10.255.255.255", 1))
            return sock.getsockname()[0]
        except OSError:
            return socket.gethostbyname(socket.gethostname())


def runtime_uris(transport: Optional[Transport]) -> Dict[str, Dict[str, str]]:
    if transport is None or not transport.is_http:
        sockets = {"management_uri": MANAGEMENT_SOCKET, "workload_uri": WORKLOAD_SOCKET}
        return {"connect": dict(sockets), "listen": dict(sockets)}

    host = transport.hostname or local_ip_address()
    return {
        "connect": {
            "management_uri": f"http://{host}:{MANAGEMENT_PORT}",
            "workload_uri": f"http://{host}:{WORKLOAD_PORT}",
        },
        "listen": {
            "management_uri": f"http://0.0.0.0:{MANAGEMENT_PORT}",
            "workload_uri": f"http://0.0.0.0:{WORKLOAD_PORT}",
        },
    }


def parse_iotedge_list(output: str) -> Set[str]:
    """Returns names of modules whose STATUS column is `running`."""
    running = set()
    for line in output.splitlines():
        columns = line.split()
        if len(columns) < 2 or columns[0] == "NAME":
            continue
        if columns[1].lower() == "running":
            running.add(columns[0])
    return running


class IotedgedBootstrapper(Bootstrapper):
    name = "iotedged"
    PACKAGES = ["libiothsm", "iotedge"]

    def __init__(self, *args, config_path: str = DEFAULT_CONFIG_PATH, **kwargs):
        super().__init__(*args, **kwargs)
        self.config_path = config_path

    def _archive_packages(self) -> List[str]:
        if os.path.isdir(self.archive_path):
            packages = sorted(glob.glob(os.path.join(self.archive_path, "*.deb")))
            if not packages:
                raise QuickstartError(f"No .deb packages found in archive directory: {self.archive_path}")
            return packages
        if not os.path.isfile(self.archive_path):
            raise QuickstartError(f"Bootstrapper archive not found: {self.archive_path}")
        return [self.archive_path]

    def _install(self):
        self._run(["docker", "--version"], capture_output=True)

        if self.archive_path:
            self.logger.info("Installing iotedged from archive %s", self.archive_path)
            self._run(["dpkg", "--force-confnew", "-i"] + self._archive_packages(), capture_output=True)
            return

        self.logger.info("Installing iotedged from the package feed")
        self._run(["apt-get", "update"], capture_output=True)
        self._run(["apt-get", "install", "--yes", "iotedge"], capture_output=True)

    def _load_config(self) -> Dict[str, Any]:
        path = Path(self.config_path)
        if not path.exists():
            return {}
        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise QuickstartError(f"Could not read {self.config_path}: {exc}") from exc
        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise QuickstartError(f"{self.config_path} must contain a YAML mapping.")
        return parsed

    def _configure(
        self,
        credentials: Optional[RegistryCredentials],
        device_connection_string: str,
        edge_hostname: str,
        transport: Optional[Transport],
    ):
        config = self._load_config()
        config["provisioning"] = {
            "source": "manual",
            "device_connection_string": device_connection_string,
        }

        agent_config: Dict[str, Any] = {"image": image_name(EDGE_AGENT, self.image_tag, credentials)}
        if credentials is not None:
            agent_config["auth"] = {
                "serveraddress": credentials.address,
                "username": credentials.user,
                "password": credentials.password,
            }
        config["agent"] = {"name": EDGE_AGENT, "type": "docker", "env": {}, "config": agent_config}
        config["hostname"] = edge_hostname
        config.update(runtime_uris(transport))

        if transport is not None and transport.is_http:
            self.logger.info("Modules will reach iotedged over HTTP at %s", config["connect"]["management_uri"])

        try:
            path = Path(self.config_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8", newline="\n") as file_obj:
                yaml.safe_dump(config, file_obj, default_flow_style=False, sort_keys=False)
        except OSError as exc:
            raise QuickstartError(f"Could not write {self.config_path}: {exc}") from exc

    def _start(self):
        self._run(["systemctl", "restart", "iotedge"], capture_output=True)

    def _stop(self):
        self._run(["systemctl", "stop", "iotedge"], capture_output=True)

    def _uninstall(self):
        self._run(["apt-get", "purge", "--yes"] + self.PACKAGES, capture_output=True)

    def _running_modules(self) -> Set[str]:
        result = self._run(["iotedge", "list"], check=False, capture_output=True)
        if result.returncode != 0:
            return set()
        return parse_iotedge_list(result.stdout or "")
