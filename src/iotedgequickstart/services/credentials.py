"""Credential precedence rules for iotedge-quickstart."""

from typing import Optional

from iotedgequickstart.errors import ConfigurationError
from iotedgequickstart.errors_catalog import actionable_error
from iotedgequickstart.models import (
    DEFAULT_IMAGE_TAG,
    ConnectionMaterial,
    ConnectionOverrides,
    RegistryCredentials,
    RegistryOverrides,
    ResolvedCredentials,
)
from iotedgequickstart.services.secrets import (
    EVENTHUB_CONN_STR_KEY,
    IOTHUB_CONN_STR_KEY,
    SecretResolver,
)


class CredentialAssembler:
    """Turns raw overrides into the credentials used for the run.

    Each field falls back independently from its explicit value to the
    secret store. Environment variables are already folded into the
    explicit values by the CLI.
    """

    def __init__(self, secret_resolver: SecretResolver, logger):
        self.secret_resolver = secret_resolver
        self.logger = logger

    def resolve_registry(self, overrides: RegistryOverrides) -> Optional[RegistryCredentials]:
        address = overrides.address
        if not address:
            self.logger.info("No registry given; images will be pulled anonymously.")
            return None

        user, password = overrides.user, overrides.password
        if user is None and password is None:
            user, password = self.secret_resolver.registry_credentials_from_secret(address)
        elif user is None or password is None:
            raise ConfigurationError(actionable_error("partial_registry_credentials", address=address))

        return RegistryCredentials(address=address, user=user, password=password)

    def resolve_connection(self, overrides: ConnectionOverrides) -> ConnectionMaterial:
        connection_string = overrides.iothub_connection_string
        if connection_string is None:
            connection_string = self.secret_resolver.get_secret_from_config_key(IOTHUB_CONN_STR_KEY)

        endpoint = overrides.eventhub_endpoint
        if endpoint is None:
            endpoint = self.secret_resolver.get_secret_from_config_key(EVENTHUB_CONN_STR_KEY)

        return ConnectionMaterial(iothub_connection_string=connection_string, eventhub_endpoint=endpoint)

    def assemble(
        self,
        registry: RegistryOverrides,
        connection: ConnectionOverrides,
        image_tag: Optional[str] = None,
    ) -> ResolvedCredentials:
        return ResolvedCredentials(
            registry=self.resolve_registry(registry),
            connection=self.resolve_connection(connection),
            image_tag=image_tag or DEFAULT_IMAGE_TAG,
        )
