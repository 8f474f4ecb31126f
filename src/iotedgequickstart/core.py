import logging
import sys
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

import requests
from rich.console import Console

from .errors import (
    BootstrapError,
    CleanupFailed,
    ConfigurationError,
    QuickstartError,
    UnsupportedPlatformCombination,
    VerificationTimedOut,
)
from .errors_catalog import actionable_error
from .models import (
    BootstrapperType,
    ConnectionOverrides,
    LeaveRunning,
    RegistryOverrides,
    ResolvedConfig,
    ResolvedCredentials,
    RunFailure,
    Stage,
)
from .services.bootstrapper import Bootstrapper
from .services.command_runner import CommandRunner
from .services.credentials import CredentialAssembler
from .services.deployment import EDGE_AGENT, EDGE_HUB, TEMP_SENSOR
from .services.iotedgectl import IotedgectlBootstrapper
from .services.iotedged import IotedgedBootstrapper
from .services.iothub import IotHubClient
from .services.manifest import ManifestService
from .services.secrets import SecretResolver

console = Console()
logger = logging.getLogger("iotedgequickstart")

# (device_id, module_id, timeout, interval) -> True once the module is confirmed working in the cloud.
TelemetryVerifier = Callable[[str, str, float, float], bool]


class QuickstartOrchestrator:
    """Drives one edge device through install, deploy, verify and cleanup."""

    def __init__(
        self,
        config: ResolvedConfig,
        secret_resolver: SecretResolver,
        registry: Optional[RegistryOverrides] = None,
        connection: Optional[ConnectionOverrides] = None,
        manifest_file: Optional[str] = None,
        platform_name: Optional[str] = None,
        telemetry_verifier: Optional[TelemetryVerifier] = None,
    ):
        self.config = config
        self.registry_overrides = registry or RegistryOverrides()
        self.connection_overrides = connection or ConnectionOverrides()
        self.platform_name = platform_name or sys.platform
        self.telemetry_verifier = telemetry_verifier

        self.secret_resolver = secret_resolver
        self.credential_assembler = CredentialAssembler(secret_resolver=secret_resolver, logger=logger)
        self.command_runner = CommandRunner(logger=logger)
        self.manifest_service = ManifestService(manifest_file=manifest_file, logger=logger)

        self.run_id = uuid.uuid4().hex[:10]
        self.stage = Stage.INIT
        self.failure: Optional[RunFailure] = None
        self.cleanup_errors: List[CleanupFailed] = []
        self.bootstrapper: Optional[Bootstrapper] = None
        self._cleanup_armed = False
        self._cleanup_done = False

    def _build_manifest_metadata(self) -> Dict[str, Any]:
        return {
            "device_id": self.config.device_id,
            "edge_hostname": self.config.edge_hostname,
            "bootstrapper": self.config.bootstrapper.value,
            "transport": self.config.transport.kind.value,
            "image_tag": self.config.image_tag,
            "no_deployment": self.config.no_deployment,
            "leave_running": self.config.leave_running.value,
            "platform": self.platform_name,
        }

    def _run_stage(self, stage: Stage, callback, *args, **kwargs):
        """Runs the work that leads to `stage` and records the transition."""
        self.manifest_service.stage_started(stage.value)
        try:
            result = callback(*args, **kwargs)
        except QuickstartError as exc:
            self.manifest_service.stage_finished(stage.value, "failed", error=str(exc))
            self.failure = RunFailure(stage=stage, cause=exc)
            raise
        except Exception as exc:
            error = BootstrapError(stage.value, str(exc))
            self.manifest_service.stage_finished(stage.value, "failed", error=str(error))
            self.failure = RunFailure(stage=stage, cause=error)
            raise error from exc

        self.manifest_service.stage_finished(stage.value, "success")
        logger.debug("Stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage
        return result

    def check_platform(self):
        if self.config.bootstrapper is BootstrapperType.IOTEDGED and not self.platform_name.startswith("linux"):
            raise UnsupportedPlatformCombination(
                actionable_error(
                    "unsupported_platform",
                    bootstrapper=self.config.bootstrapper.value,
                    platform=self.platform_name,
                )
            )

    def resolve_credentials(self) -> ResolvedCredentials:
        console.print("[blue]Resolving credentials...[/blue]")
        credentials = self.credential_assembler.assemble(
            registry=self.registry_overrides,
            connection=self.connection_overrides,
            image_tag=self.config.image_tag,
        )
        if credentials.registry is not None:
            logger.info("Using registry %s as %s", credentials.registry.address, credentials.registry.user)
        logger.info("Using image tag %s", credentials.image_tag)
        self.manifest_service.update_metadata(image_tag=credentials.image_tag)
        return credentials

    def _iothub_factory(self, connection_string: str) -> IotHubClient:
        return IotHubClient(connection_string, logger=logger, requests_module=requests)

    def select_bootstrapper(self, credentials: ResolvedCredentials) -> Bootstrapper:
        common = dict(
            archive_path=self.config.bootstrapper_archive,
            image_tag=credentials.image_tag,
            iothub_factory=self._iothub_factory,
            command_runner=self.command_runner,
            logger=logger,
            console=console,
        )
        if self.config.bootstrapper is BootstrapperType.IOTEDGED:
            return IotedgedBootstrapper(**common)
        if self.config.bootstrapper is BootstrapperType.IOTEDGECTL:
            return IotedgectlBootstrapper(**common)
        raise ConfigurationError(f"Unknown bootstrapper: {self.config.bootstrapper}")

    def verify(self, bootstrapper: Bootstrapper):
        timeout = self.config.verify_timeout
        interval = self.config.verify_interval
        # One deadline covers both the runtime check and the telemetry check.
        deadline = time.monotonic() + timeout

        if self.config.no_deployment:
            modules = [EDGE_AGENT]
        else:
            modules = [EDGE_AGENT, EDGE_HUB, TEMP_SENSOR]

        console.print("[yellow]Waiting for modules to report running...[/yellow]")
        if not bootstrapper.verify_running(modules, timeout, interval):
            raise VerificationTimedOut(
                actionable_error("verification_timed_out", modules=", ".join(modules), timeout=str(timeout))
            )

        if self.config.no_deployment:
            console.print("[green]Edge runtime is running (deployment skipped).[/green]")
            return

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise VerificationTimedOut(
                actionable_error("verification_timed_out", modules=TEMP_SENSOR, timeout=str(timeout))
            )

        if self.telemetry_verifier is not None:
            connected = self.telemetry_verifier(self.config.device_id, TEMP_SENSOR, remaining, interval)
        else:
            connected = bootstrapper.wait_for_module_connected(TEMP_SENSOR, remaining, interval)
        if not connected:
            raise VerificationTimedOut(
                actionable_error("verification_timed_out", modules=TEMP_SENSOR, timeout=str(timeout))
            )
        console.print("[green]tempSensor is connected to IoT Hub.[/green]")

    def _teardown_actions(self, bootstrapper: Bootstrapper):
        policy = self.config.leave_running
        if policy is LeaveRunning.ALL:
            return []
        if policy is LeaveRunning.CORE:
            return [("remove_modules", bootstrapper.remove_modules)]
        return [
            ("stop", bootstrapper.stop),
            ("reset", bootstrapper.reset),
            ("uninstall", bootstrapper.uninstall),
            ("delete_identity", bootstrapper.delete_identity),
        ]

    def cleanup(self):
        """Applies the leave-running policy once. Failures are logged, never raised."""
        if self._cleanup_done or self.bootstrapper is None:
            return
        self._cleanup_done = True

        actions = self._teardown_actions(self.bootstrapper)
        if not actions:
            logger.info("Leaving the edge runtime and all modules running.")
            return

        console.print(f"[dim]Cleaning up (leave running: {self.config.leave_running.value})...[/dim]")
        for name, action in actions:
            try:
                action()
            except Exception as exc:
                failure = CleanupFailed(f"Cleanup step '{name}' failed: {exc}")
                self.cleanup_errors.append(failure)
                logger.warning(str(failure))
                self.manifest_service.cleanup_action(name, "failed", error=str(exc))
            else:
                self.manifest_service.cleanup_action(name, "success")

    def _lifecycle(self):
        self.check_platform()
        credentials = self._run_stage(Stage.CREDENTIALS_RESOLVED, self.resolve_credentials)
        bootstrapper = self._run_stage(Stage.BOOTSTRAPPER_SELECTED, self.select_bootstrapper, credentials)
        self.bootstrapper = bootstrapper

        self._run_stage(Stage.INSTALLED, bootstrapper.install)
        self._run_stage(
            Stage.CONFIGURED,
            bootstrapper.configure,
            credentials.registry,
            credentials.connection,
            self.config.device_id,
            self.config.edge_hostname,
            self.config.transport,
        )

        # From here on a failure leaves processes behind, so teardown applies.
        self._cleanup_armed = True
        self._run_stage(Stage.STARTED, bootstrapper.start)

        if self.config.no_deployment:
            logger.info("Deployment suppressed; skipping module deployment.")
            self.manifest_service.stage_skipped(Stage.MODULES_DEPLOYED.value, "no_deployment")
        else:
            self._run_stage(Stage.MODULES_DEPLOYED, bootstrapper.deploy_modules, credentials.image_tag)

        self._run_stage(Stage.VERIFIED, self.verify, bootstrapper)
        self._run_stage(Stage.CLEANED_UP, self.cleanup)

    def run(self) -> int:
        exit_code = 1
        manifest_status = "failed"
        manifest_error: Optional[str] = None

        try:
            logger.info("Starting iotedge-quickstart for device '%s'...", self.config.device_id)
            self.manifest_service.start_run(run_id=self.run_id, metadata=self._build_manifest_metadata())
            self._lifecycle()
            console.print("[bold green]Success![/bold green]")
            manifest_status = "success"
            exit_code = 0
            return exit_code

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            manifest_status = "aborted"
            manifest_error = "Operation cancelled by user."
            return exit_code
        except QuickstartError as exc:
            if self.failure is None:
                self.failure = RunFailure(stage=self.stage, cause=exc)
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            manifest_error = str(exc)
            return exit_code
        except Exception as exc:
            if self.failure is None:
                self.failure = RunFailure(stage=self.stage, cause=exc)
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            manifest_error = str(exc)
            return exit_code
        finally:
            if exit_code != 0:
                self.stage = Stage.FAILED
                if self._cleanup_armed:
                    self.cleanup()
            self.manifest_service.finalize(manifest_status, error=manifest_error)
