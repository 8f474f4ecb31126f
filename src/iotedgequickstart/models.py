"""Shared domain models for iotedge-quickstart."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

DEFAULT_IMAGE_TAG = "1.0"
DEFAULT_EDGE_HOSTNAME = "quickstart"
DEFAULT_VERIFY_TIMEOUT = 300.0
DEFAULT_VERIFY_INTERVAL = 5.0


class BootstrapperType(str, Enum):
    IOTEDGED = "iotedged"
    IOTEDGECTL = "iotedgectl"


class LeaveRunning(str, Enum):
    """Cleanup directive applied once at the end of a run."""

    ALL = "all"  # skip cleanup entirely
    CORE = "core"  # remove workload modules and identities, keep the runtime
    NONE = "none"  # stop, uninstall and delete the device identity

    @classmethod
    def parse(cls, value: str) -> "LeaveRunning":
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            choices = ", ".join(member.name.title() for member in cls)
            raise ValueError(f"Invalid leave-running value '{value}'. Choose one of: {choices}.") from exc


class TransportKind(str, Enum):
    UNIX_SOCKET = "unix_socket"
    HTTP = "http"


@dataclass(frozen=True)
class Transport:
    """How modules reach the runtime's management and workload APIs.

    An HTTP transport with an empty hostname means "use this host's IP address".
    """

    kind: TransportKind
    hostname: str = ""

    @classmethod
    def unix_socket(cls) -> "Transport":
        return cls(kind=TransportKind.UNIX_SOCKET)

    @classmethod
    def http(cls, hostname: str = "") -> "Transport":
        return cls(kind=TransportKind.HTTP, hostname=hostname)

    @property
    def is_http(self) -> bool:
        return self.kind is TransportKind.HTTP


class Stage(str, Enum):
    INIT = "init"
    CREDENTIALS_RESOLVED = "credentials_resolved"
    BOOTSTRAPPER_SELECTED = "bootstrapper_selected"
    INSTALLED = "installed"
    CONFIGURED = "configured"
    STARTED = "started"
    MODULES_DEPLOYED = "modules_deployed"
    VERIFIED = "verified"
    CLEANED_UP = "cleaned_up"
    FAILED = "failed"


@dataclass(frozen=True)
class ResolvedConfig:
    """Fully merged CLI/env/config input for a single run."""

    device_id: str
    edge_hostname: str = DEFAULT_EDGE_HOSTNAME
    image_tag: Optional[str] = None
    bootstrapper: BootstrapperType = BootstrapperType.IOTEDGED
    transport: Transport = field(default_factory=Transport.unix_socket)
    no_deployment: bool = False
    leave_running: LeaveRunning = LeaveRunning.NONE
    bootstrapper_archive: Optional[str] = None
    verify_timeout: float = DEFAULT_VERIFY_TIMEOUT
    verify_interval: float = DEFAULT_VERIFY_INTERVAL


@dataclass(frozen=True)
class RegistryOverrides:
    address: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None


@dataclass(frozen=True)
class ConnectionOverrides:
    iothub_connection_string: Optional[str] = None
    eventhub_endpoint: Optional[str] = None


@dataclass(frozen=True)
class RegistryCredentials:
    """Container registry login. Absent credentials (None) mean anonymous pulls."""

    address: str
    user: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class ConnectionMaterial:
    iothub_connection_string: str = field(repr=False)
    eventhub_endpoint: str = field(repr=False)


@dataclass(frozen=True)
class ResolvedCredentials:
    registry: Optional[RegistryCredentials]
    connection: ConnectionMaterial
    image_tag: str


@dataclass(frozen=True)
class RunFailure:
    stage: Stage
    cause: Exception
