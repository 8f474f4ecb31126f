"""Actionable error catalog for iotedge-quickstart."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "unsupported_platform": {
        "what": "Bootstrapper '{bootstrapper}' is not supported on platform '{platform}'.",
        "next": "Run on a Linux host or pass `--bootstrapper iotedgectl` instead.",
    },
    "secret_not_found": {
        "what": "Secret '{name}' was not found in the secret store.",
        "next": "Create the secret in Key Vault or pass the value explicitly on the command line.",
    },
    "secret_store_unconfigured": {
        "what": "A secret lookup for '{name}' was needed but no secret store is configured.",
        "next": "Pass `--keyvault-url` with service principal credentials, or provide the value explicitly.",
    },
    "malformed_registry_secret": {
        "what": "Secret '{name}' must contain exactly two values: `<user> <password>`.",
        "next": "Update the secret value, or pass `--username` and `--password` explicitly.",
    },
    "partial_registry_credentials": {
        "what": "Registry '{address}' was given with only one of username/password.",
        "next": "Pass both `--username` and `--password`, or neither to read them from Key Vault.",
    },
    "unknown_secret_key": {
        "what": "No secret name is mapped to configuration key '{config_key}'.",
        "next": "Add the key under `secret_names` in the configuration file.",
    },
    "verification_timed_out": {
        "what": "Modules {modules} were not confirmed running within {timeout}s.",
        "next": "Inspect the runtime logs (`iotedge logs edgeAgent` or `docker logs edgeAgent`) "
        "or raise `--verify-timeout`.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
