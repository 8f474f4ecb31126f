"""Bootstrapper capability shared by the iotedged and iotedgectl variants."""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterable, Optional, Set

from iotedgequickstart.errors import BootstrapError, QuickstartError
from iotedgequickstart.models import ConnectionMaterial, RegistryCredentials, Transport
from iotedgequickstart.services.deployment import CORE_MODULES, WORKLOAD_MODULES, build_modules_content
from iotedgequickstart.services.polling import wait_until


class Bootstrapper(ABC):
    """Installs, configures and drives one edge runtime.

    Subclasses implement the host-side steps (`_install`, `_configure`, ...);
    the cloud-side steps (device identity, deployment) live here because
    they are the same for both variants.
    """

    name = "bootstrapper"

    def __init__(
        self,
        archive_path: Optional[str],
        image_tag: str,
        iothub_factory,
        command_runner,
        logger,
        console,
    ):
        self.archive_path = archive_path
        self.image_tag = image_tag
        self.iothub_factory = iothub_factory
        self.iothub = None
        self.command_runner = command_runner
        self.logger = logger
        self.console = console
        self.device_id: Optional[str] = None
        self.registry: Optional[RegistryCredentials] = None

    @contextmanager
    def _stage(self, stage: str):
        try:
            yield
        except BootstrapError:
            raise
        except QuickstartError as exc:
            raise BootstrapError(stage, str(exc)) from exc

    def _run(self, cmd, **kwargs):
        return self.command_runner.run(cmd, **kwargs)

    def install(self):
        self.console.print(f"[blue]Installing {self.name}...[/blue]")
        with self._stage("install"):
            self._install()
        self.console.print(f"[green]{self.name} installed.[/green]")

    def configure(
        self,
        credentials: Optional[RegistryCredentials],
        connection: ConnectionMaterial,
        device_id: str,
        edge_hostname: str,
        transport: Optional[Transport] = None,
    ):
        self.console.print(f"[blue]Configuring {self.name} for device '{device_id}'...[/blue]")
        with self._stage("configure"):
            self.iothub = self.iothub_factory(connection.iothub_connection_string)
            device = self.iothub.get_or_create_edge_device(device_id)
            self.device_id = device_id
            self.registry = credentials
            device_connection_string = self.iothub.device_connection_string(device)
            self._configure(credentials, device_connection_string, edge_hostname, transport)

    def start(self):
        self.console.print(f"[blue]Starting {self.name}...[/blue]")
        with self._stage("start"):
            self._start()

    def stop(self):
        self.logger.info("Stopping %s", self.name)
        with self._stage("stop"):
            self._stop()

    def reset(self):
        self.logger.info("Removing module containers")
        with self._stage("reset"):
            self._reset()

    def uninstall(self):
        self.logger.info("Uninstalling %s", self.name)
        with self._stage("uninstall"):
            self._uninstall()

    def deploy_modules(self, tag: str):
        self.console.print(f"[blue]Deploying edgeHub and tempSensor (tag {tag})...[/blue]")
        with self._stage("deploy"):
            device_id = self._require_device()
            self.iothub.apply_configuration(
                device_id, build_modules_content(tag, self.registry, include_workload=True)
            )

    def remove_modules(self):
        """Drops the workload modules and their cloud identities; edgeAgent and edgeHub stay."""
        with self._stage("remove_modules"):
            device_id = self._require_device()
            self.iothub.apply_configuration(
                device_id, build_modules_content(self.image_tag, self.registry, include_workload=False)
            )
            for module in WORKLOAD_MODULES:
                self.iothub.delete_module(device_id, module)

    def delete_identity(self):
        with self._stage("delete_identity"):
            self.iothub.delete_device(self._require_device())

    def verify_running(self, modules: Iterable[str], timeout: float, interval: float) -> bool:
        expected = set(modules)
        self.logger.info("Waiting up to %ss for modules: %s", timeout, ", ".join(sorted(expected)))

        def probe() -> bool:
            running = self._running_modules()
            self.logger.debug("Running modules: %s", ", ".join(sorted(running)) or "<none>")
            return expected <= running

        with self._stage("verify"):
            return wait_until(probe, timeout, interval)

    def wait_for_module_connected(self, module: str, timeout: float, interval: float) -> bool:
        with self._stage("verify"):
            device_id = self._require_device()
            return self.iothub.wait_for_module_connected(device_id, module, timeout, interval)

    def _require_device(self) -> str:
        if not self.device_id or self.iothub is None:
            raise QuickstartError("The edge device identity has not been configured yet.")
        return self.device_id

    @abstractmethod
    def _install(self):
        ...

    @abstractmethod
    def _configure(
        self,
        credentials: Optional[RegistryCredentials],
        device_connection_string: str,
        edge_hostname: str,
        transport: Optional[Transport],
    ):
        ...

    @abstractmethod
    def _start(self):
        ...

    @abstractmethod
    def _stop(self):
        ...

    def _reset(self):
        self._run(
            ["docker", "rm", "--force"] + list(CORE_MODULES + WORKLOAD_MODULES),
            check=False,
            capture_output=True,
        )

    @abstractmethod
    def _uninstall(self):
        ...

    @abstractmethod
    def _running_modules(self) -> Set[str]:
        ...
