"""Secret lookup against Azure Key Vault."""

from typing import Dict, Optional, Tuple
from urllib.parse import quote

import requests

from iotedgequickstart.errors import (
    ConfigurationError,
    MalformedSecretValue,
    QuickstartError,
    SecretNotFound,
)
from iotedgequickstart.errors_catalog import actionable_error

IOTHUB_CONN_STR_KEY = "iotHubConnStrKey"
EVENTHUB_CONN_STR_KEY = "eventHubConnStrKey"

DEFAULT_SECRET_NAMES: Dict[str, str] = {
    IOTHUB_CONN_STR_KEY: "IotHubConnStr2",
    EVENTHUB_CONN_STR_KEY: "EventHubConnStr2",
}


class KeyVaultSecretStore:
    """Fetches secrets from the Key Vault REST API with a service principal.

    Nothing is cached: every lookup requests a fresh token and a fresh secret.
    """

    API_VERSION = "7.4"
    SCOPE = "https://vault.azure.net/.default"
    LOGIN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"

    def __init__(
        self,
        vault_url: str,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        logger,
        requests_module=requests,
        timeout: float = 30.0,
    ):
        self.vault_url = vault_url.rstrip("/")
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.logger = logger
        self.requests = requests_module
        self.timeout = timeout

    def _access_token(self) -> str:
        try:
            response = self.requests.post(
                self.LOGIN_URL.format(tenant_id=self.tenant_id),
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scope": self.SCOPE,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()["access_token"]
        except self.requests.RequestException as exc:
            raise QuickstartError(f"Could not authenticate to Key Vault: {exc}") from exc
        except (KeyError, ValueError) as exc:
            raise QuickstartError("Key Vault token response did not contain an access token.") from exc

    def get_secret(self, name: str) -> str:
        self.logger.debug("Fetching secret '%s' from %s", name, self.vault_url)
        token = self._access_token()
        url = f"{self.vault_url}/secrets/{quote(name, safe='')}"

        try:
            response = self.requests.get(
                url,
                params={"api-version": self.API_VERSION},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
            if response.status_code == 404:
                raise SecretNotFound(name, actionable_error("secret_not_found", name=name))
            response.raise_for_status()
            return response.json()["value"]
        except self.requests.RequestException as exc:
            raise QuickstartError(f"Could not read secret '{name}' from Key Vault: {exc}") from exc
        except (KeyError, ValueError) as exc:
            raise QuickstartError(f"Key Vault returned an invalid payload for secret '{name}'.") from exc


class SecretResolver:
    """Resolves named secrets and the values derived from them."""

    def __init__(self, store: Optional[KeyVaultSecretStore], logger, secret_names: Optional[Dict[str, str]] = None):
        self.store = store
        self.logger = logger
        self.secret_names = dict(DEFAULT_SECRET_NAMES)
        if secret_names:
            self.secret_names.update(secret_names)

    def get_secret(self, name: str) -> str:
        if self.store is None:
            raise ConfigurationError(actionable_error("secret_store_unconfigured", name=name))
        return self.store.get_secret(name)

    def get_secret_from_config_key(self, config_key: str) -> str:
        name = self.secret_names.get(config_key)
        if not name:
            raise ConfigurationError(actionable_error("unknown_secret_key", config_key=config_key))
        return self.get_secret(name)

    @staticmethod
    def registry_secret_name(address: str) -> str:
        # edgerelease.azurecr.io => edgerelease-azurecr-io
        return address.replace(".", "-")

    def registry_credentials_from_secret(self, address: str) -> Tuple[str, str]:
        """Reads `<user> <password>` for a registry from the secret named after its address."""
        name = self.registry_secret_name(address)
        self.logger.info("Reading credentials for registry %s from secret '%s'", address, name)
        tokens = self.get_secret(name).split()
        if len(tokens) != 2:
            raise MalformedSecretValue(actionable_error("malformed_registry_secret", name=name))
        return tokens[0], tokens[1]
