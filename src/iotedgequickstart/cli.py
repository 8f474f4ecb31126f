import logging
import os
import uuid

import click
from rich.logging import RichHandler

from .core import QuickstartOrchestrator
from .errors import QuickstartError
from .models import (
    DEFAULT_EDGE_HOSTNAME,
    DEFAULT_VERIFY_INTERVAL,
    DEFAULT_VERIFY_TIMEOUT,
    BootstrapperType,
    ConnectionOverrides,
    LeaveRunning,
    RegistryOverrides,
    ResolvedConfig,
    Transport,
)
from .services.config_loader import ConfigLoader
from .services.secrets import KeyVaultSecretStore, SecretResolver

EPILOG = """
Options that name an environment variable fall back to it, then to the
configuration file, then to the default.

\b
Option                    Environment variable
--bootstrapper-archive    bootstrapperArchivePath
--connection-string       iothubConnectionString
--eventhub-endpoint       eventhubCompatibleEndpointWithEntityPath
--password                registryPassword
--registry                registryAddress
--tag                     imageTag
--username                registryUser
--keyvault-url            keyVaultUrl
"""


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


def _resolve_transport(value) -> Transport:
    if value is None or value is False:
        return Transport.unix_socket()
    if value is True:
        return Transport.http()
    return Transport.http(str(value).strip())


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command(epilog=EPILOG)
@click.option(
    "-a",
    "--bootstrapper-archive",
    envvar="bootstrapperArchivePath",
    type=click.Path(),
    help="Path to a bootstrapper archive. Defaults to installing from apt or PyPI.",
)
@click.option(
    "-b",
    "--bootstrapper",
    type=click.Choice([member.value for member in BootstrapperType], case_sensitive=False),
    default=None,
    help="Which bootstrapper to use (default: iotedged).",
)
@click.option(
    "-c",
    "--connection-string",
    envvar="iothubConnectionString",
    help="IoT Hub connection string (hub-scoped, e.g. iothubowner). Defaults to Key Vault.",
)
@click.option("-d", "--device-id", help="Edge device identifier (default: auto-generated).")
@click.option(
    "-e",
    "--eventhub-endpoint",
    envvar="eventhubCompatibleEndpointWithEntityPath",
    help="Event Hub-compatible endpoint for IoT Hub, including EntityPath. Defaults to Key Vault.",
)
@click.option(
    "-h",
    "--use-http",
    is_flag=False,
    flag_value="",
    default=None,
    help="Modules talk to iotedged over HTTP at HOSTNAME (switch form uses the local IP address).",
)
@click.option("-n", "--edge-hostname", help="Edge device's hostname (default: quickstart).")
@click.option("-p", "--password", envvar="registryPassword", help="Docker registry password.")
@click.option("-r", "--registry", envvar="registryAddress", help="Hostname of the Docker registry.")
@click.option("-t", "--tag", envvar="imageTag", help="Tag to append when pulling images (default: 1.0).")
@click.option("-u", "--username", envvar="registryUser", help="Docker registry username.")
@click.option(
    "--leave-running",
    type=click.Choice([member.value for member in LeaveRunning], case_sensitive=False),
    is_flag=False,
    flag_value=LeaveRunning.ALL.value,
    default=None,
    help="Leave IoT Edge running when finished: all, core or none (default: none; switch form: all).",
)
@click.option(
    "--no-deployment",
    is_flag=True,
    default=None,
    help="Don't deploy the Edge Hub and temperature sensor modules.",
)
@click.option(
    "--verify-timeout",
    type=float,
    default=None,
    help=f"Seconds to wait for modules to report healthy (default: {DEFAULT_VERIFY_TIMEOUT:g}).",
)
@click.option(
    "--verify-interval",
    type=float,
    default=None,
    help=f"Seconds between verification probes (default: {DEFAULT_VERIFY_INTERVAL:g}).",
)
@click.option(
    "--config",
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {ConfigLoader.DEFAULT_FILE_NAME} if present.",
)
@click.option("--keyvault-url", envvar="keyVaultUrl", help="Key Vault URL used for secret lookups.")
@click.option("--tenant-id", envvar="AZURE_TENANT_ID", help="Azure AD tenant for Key Vault access.")
@click.option("--client-id", envvar="AZURE_CLIENT_ID", help="Service principal id for Key Vault access.")
@click.option(
    "--client-secret",
    envvar="AZURE_CLIENT_SECRET",
    help="Service principal secret for Key Vault access.",
)
@click.option("--manifest-file", type=click.Path(), help="Write a JSON run manifest to this path.")
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
def main(
    bootstrapper_archive,
    bootstrapper,
    connection_string,
    device_id,
    eventhub_endpoint,
    use_http,
    edge_hostname,
    password,
    registry,
    tag,
    username,
    leave_running,
    no_deployment,
    verify_timeout,
    verify_interval,
    config,
    keyvault_url,
    tenant_id,
    client_id,
    client_secret,
    manifest_file,
    verbose,
    log_file,
):
    """Automates the IoT Edge quickstart: install, deploy, verify and clean up."""
    logger = logging.getLogger("iotedgequickstart")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), ConfigLoader.DEFAULT_FILE_NAME)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except QuickstartError as exc:
        raise click.ClickException(str(exc)) from exc

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    try:
        bootstrapper_type = BootstrapperType(
            str(_resolve_option(bootstrapper, config_values, "bootstrapper", default="iotedged")).lower()
        )
        leave_running_policy = LeaveRunning.parse(
            str(_resolve_option(leave_running, config_values, "leave_running", default="none"))
        )
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    resolved = ResolvedConfig(
        device_id=_resolve_option(
            device_id, config_values, "device_id", default=f"iot-edge-quickstart-{uuid.uuid4()}"
        ),
        edge_hostname=_resolve_option(
            edge_hostname, config_values, "edge_hostname", default=DEFAULT_EDGE_HOSTNAME
        ),
        image_tag=_resolve_option(tag, config_values, "tag"),
        bootstrapper=bootstrapper_type,
        transport=_resolve_transport(_resolve_option(use_http, config_values, "use_http")),
        no_deployment=bool(_resolve_option(no_deployment, config_values, "no_deployment", default=False)),
        leave_running=leave_running_policy,
        bootstrapper_archive=_resolve_option(bootstrapper_archive, config_values, "bootstrapper_archive"),
        verify_timeout=float(
            _resolve_option(verify_timeout, config_values, "verify_timeout", default=DEFAULT_VERIFY_TIMEOUT)
        ),
        verify_interval=float(
            _resolve_option(verify_interval, config_values, "verify_interval", default=DEFAULT_VERIFY_INTERVAL)
        ),
    )

    registry_overrides = RegistryOverrides(
        address=_resolve_option(registry, config_values, "registry"),
        user=_resolve_option(username, config_values, "username"),
        password=_resolve_option(password, config_values, "password"),
    )
    connection_overrides = ConnectionOverrides(
        iothub_connection_string=_resolve_option(connection_string, config_values, "connection_string"),
        eventhub_endpoint=_resolve_option(eventhub_endpoint, config_values, "eventhub_endpoint"),
    )

    keyvault_url = _resolve_option(keyvault_url, config_values, "keyvault_url")
    secret_store = None
    if keyvault_url:
        principal = {
            "tenant_id": _resolve_option(tenant_id, config_values, "tenant_id"),
            "client_id": _resolve_option(client_id, config_values, "client_id"),
            "client_secret": _resolve_option(client_secret, config_values, "client_secret"),
        }
        missing = [key for key, value in principal.items() if not value]
        if missing:
            raise click.ClickException(
                f"Key Vault access needs {', '.join(missing)} (options or environment variables)."
            )
        secret_store = KeyVaultSecretStore(vault_url=keyvault_url, logger=logger, **principal)

    secret_resolver = SecretResolver(
        store=secret_store,
        logger=logger,
        secret_names=config_values.get("secret_names"),
    )

    orchestrator = QuickstartOrchestrator(
        config=resolved,
        secret_resolver=secret_resolver,
        registry=registry_overrides,
        connection=connection_overrides,
        manifest_file=_resolve_option(manifest_file, config_values, "manifest_file"),
    )

    raise SystemExit(orchestrator.run())


if __name__ == "__main__":
    main()
