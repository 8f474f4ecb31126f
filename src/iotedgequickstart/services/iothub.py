"""IoT Hub registry operations over the service REST API."""

import base64
import hashlib
import hmac
import time
from typing import Any, Dict, Optional
from urllib.parse import quote, quote_plus

import requests

from iotedgequickstart.errors import ConfigurationError, QuickstartError
from iotedgequickstart.services.polling import wait_until

API_VERSION = "2021-04-12"


def parse_connection_string(connection_string: str) -> Dict[str, str]:
    """Splits `Key=Value;Key=Value` pairs. Values may themselves contain '='."""
    parts: Dict[str, str] = {}
    for segment in connection_string.strip().split(";"):
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        if not sep:
            raise ConfigurationError("IoT Hub connection string is malformed.")
        parts[key.strip()] = value.strip()

    missing = [
        key for key in ("HostName", "SharedAccessKeyName", "SharedAccessKey") if not parts.get(key)
    ]
    if missing:
        raise ConfigurationError(
            f"IoT Hub connection string is missing: {', '.join(missing)}. "
            "Use a hub-scoped policy such as iothubowner."
        )
    return parts


def generate_sas_token(
    resource_uri: str,
    key: str,
    policy_name: Optional[str] = None,
    ttl_seconds: int = 3600,
    now: Optional[float] = None,
) -> str:
    expiry = int((now if now is not None else time.time()) + ttl_seconds)
    encoded_uri = quote_plus(resource_uri)
    to_sign = f"{encoded_uri}\n{expiry}".encode("utf-8")
    digest = hmac.new(base64.b64decode(key), to_sign, hashlib.sha256).digest()
    signature = quote_plus(base64.b64encode(digest).decode("utf-8"))

    token = f"SharedAccessSignature sr={encoded_uri}&sig={signature}&se={expiry}"
    if policy_name:
        token = f"{token}&skn={policy_name}"
    return token


class IotHubClient:
    """Device and module identity management for a single hub."""

    def __init__(self, connection_string: str, logger, requests_module=requests, timeout: float = 30.0):
        parts = parse_connection_string(connection_string)
        self.hostname = parts["HostName"]
        self.policy_name = parts["SharedAccessKeyName"]
        self.key = parts["SharedAccessKey"]
        self.logger = logger
        self.requests = requests_module
        self.timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        if_match: bool = False,
        allow_not_found: bool = False,
    ):
        headers = {
            "Authorization": generate_sas_token(self.hostname, self.key, self.policy_name),
            "Content-Type": "application/json",
        }
        if if_match:
            headers["If-Match"] = "*"

        url = f"https://{self.hostname}{path}"
        self.logger.debug("IoT Hub request: %s %s", method, url)
        try:
            response = self.requests.request(
                method,
                url,
                params={"api-version": API_VERSION},
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
            if allow_not_found and response.status_code == 404:
                return None
            response.raise_for_status()
            return response
        except self.requests.RequestException as exc:
            raise QuickstartError(f"IoT Hub request {method} {path} failed: {exc}") from exc

    @staticmethod
    def _device_path(device_id: str) -> str:
        return f"/devices/{quote(device_id, safe='')}"

    def get_device(self, device_id: str) -> Optional[Dict[str, Any]]:
        response = self._request("GET", self._device_path(device_id), allow_not_found=True)
        return response.json() if response is not None else None

    def create_edge_device(self, device_id: str) -> Dict[str, Any]:
        self.logger.info("Registering edge device '%s' in %s", device_id, self.hostname)
        payload = {
            "deviceId": device_id,
            "status": "enabled",
            "capabilities": {"iotEdge": True},
            "authentication": {"type": "sas", "symmetricKey": {"primaryKey": None, "secondaryKey": None}},
        }
        return self._request("PUT", self._device_path(device_id), payload=payload).json()

    def get_or_create_edge_device(self, device_id: str) -> Dict[str, Any]:
        device = self.get_device(device_id)
        if device is None:
            return self.create_edge_device(device_id)

        self.logger.info("Edge device '%s' already registered; reusing it.", device_id)
        if not device.get("capabilities", {}).get("iotEdge"):
            raise QuickstartError(
                f"Device '{device_id}' exists but is not an IoT Edge device. Choose another --device-id."
            )
        return device

    def device_connection_string(self, device: Dict[str, Any]) -> str:
        try:
            key = device["authentication"]["symmetricKey"]["primaryKey"]
        except (KeyError, TypeError) as exc:
            raise QuickstartError("Device identity does not use symmetric key authentication.") from exc
        return f"HostName={self.hostname};DeviceId={device['deviceId']};SharedAccessKey={key}"

    def delete_device(self, device_id: str):
        self.logger.info("Deleting device identity '%s'", device_id)
        self._request("DELETE", self._device_path(device_id), if_match=True, allow_not_found=True)

    def apply_configuration(self, device_id: str, modules_content: Dict[str, Any]):
        self._request(
            "POST",
            f"{self._device_path(device_id)}/applyConfigurationContent",
            payload={"modulesContent": modules_content},
        )

    def get_module(self, device_id: str, module_id: str) -> Optional[Dict[str, Any]]:
        response = self._request(
            "GET",
            f"{self._device_path(device_id)}/modules/{quote(module_id, safe='')}",
            allow_not_found=True,
        )
        return response.json() if response is not None else None

    def delete_module(self, device_id: str, module_id: str):
        self.logger.info("Deleting module identity '%s' on '%s'", module_id, device_id)
        self._request(
            "DELETE",
            f"{self._device_path(device_id)}/modules/{quote(module_id, safe='')}",
            if_match=True,
            allow_not_found=True,
        )

    def is_module_connected(self, device_id: str, module_id: str) -> bool:
        module = self.get_module(device_id, module_id)
        return bool(module) and module.get("connectionState") == "Connected"

    def wait_for_module_connected(self, device_id: str, module_id: str, timeout: float, interval: float) -> bool:
        self.logger.info("Waiting for module '%s' to connect to %s", module_id, self.hostname)
        return wait_until(lambda: self.is_module_connected(device_id, module_id), timeout, interval)
