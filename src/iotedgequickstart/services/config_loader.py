"""Configuration loader for iotedge-quickstart."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from iotedgequickstart.errors import ConfigurationError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    DEFAULT_FILE_NAME = ".iotedge-quickstart.yml"

    SUPPORTED_KEYS = {
        "bootstrapper",
        "bootstrapper_archive",
        "connection_string",
        "device_id",
        "edge_hostname",
        "eventhub_endpoint",
        "use_http",
        "leave_running",
        "no_deployment",
        "registry",
        "username",
        "password",
        "tag",
        "verify_timeout",
        "verify_interval",
        "verbose",
        "log_file",
        "manifest_file",
        "keyvault_url",
        "tenant_id",
        "client_id",
        "client_secret",
        "secret_names",
    }

    # YAML turns unquoted `1.10` into 1.1; these must stay verbatim.
    STRING_KEYS = {
        "bootstrapper",
        "bootstrapper_archive",
        "connection_string",
        "device_id",
        "edge_hostname",
        "eventhub_endpoint",
        "leave_running",
        "registry",
        "username",
        "password",
        "tag",
        "log_file",
        "manifest_file",
        "keyvault_url",
        "tenant_id",
        "client_id",
        "client_secret",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigurationError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ConfigurationError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ConfigurationError(f"Unknown configuration keys: {unknown_list}")

        for key in sorted(self.STRING_KEYS & set(parsed.keys())):
            value = parsed[key]
            if value is not None and not isinstance(value, str):
                raise ConfigurationError(
                    f"Config value for `{key}` must be a string, got {value!r}. "
                    f"Quote it in the YAML file (for example `{key}: '{value}'`)."
                )

        use_http = parsed.get("use_http")
        if use_http is not None and not isinstance(use_http, (bool, str)):
            raise ConfigurationError("`use_http` must be true, false or a hostname string.")

        secret_names = parsed.get("secret_names")
        if secret_names is not None and not (
            isinstance(secret_names, dict)
            and all(isinstance(k, str) and isinstance(v, str) for k, v in secret_names.items())
        ):
            raise ConfigurationError("`secret_names` must map configuration keys to secret names.")

        return parsed
