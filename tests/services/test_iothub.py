import base64

import pytest

from iotedgequickstart.errors import ConfigurationError, QuickstartError
from iotedgequickstart.services.iothub import IotHubClient, generate_sas_token, parse_connection_string

KEY = base64.b64encode(b"super-secret-key").decode("utf-8")
HUB_CONNECTION_STRING = f"HostName=myhub.azure-devices.net;SharedAccessKeyName=iothubowner;SharedAccessKey={KEY}"


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.payload = payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise FakeRequestsModule.RequestException(f"HTTP {self.status_code}")

    def json(self):
        return self.payload


class FakeRequestsModule:
    class RequestException(Exception):
        pass

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.responses.pop(0)


def _client(responses):
    requests_module = FakeRequestsModule(responses)
    return IotHubClient(HUB_CONNECTION_STRING, logger=DummyLogger(), requests_module=requests_module), requests_module


def test_parse_connection_string_keeps_padding_in_values():
    parts = parse_connection_string(HUB_CONNECTION_STRING)

    assert parts["HostName"] == "myhub.azure-devices.net"
    assert parts["SharedAccessKey"] == KEY


def test_parse_connection_string_requires_hub_policy():
    with pytest.raises(ConfigurationError, match="SharedAccessKeyName"):
        parse_connection_string(f"HostName=myhub.azure-devices.net;DeviceId=d;SharedAccessKey={KEY}")


def test_generate_sas_token_shape():
    token = generate_sas_token("myhub.azure-devices.net", KEY, "iothubowner", ttl_seconds=60, now=1000)

    assert token.startswith("SharedAccessSignature sr=myhub.azure-devices.net&sig=")
    assert token.endswith("&se=1060&skn=iothubowner")


def test_get_or_create_creates_missing_edge_device():
    created = {
        "deviceId": "dev-1",
        "capabilities": {"iotEdge": True},
        "authentication": {"symmetricKey": {"primaryKey": "cHJpbWFyeQ=="}},
    }
    client, requests_module = _client([FakeResponse(404), FakeResponse(200, created)])

    device = client.get_or_create_edge_device("dev-1")

    assert [call[0] for call in requests_module.calls] == ["GET", "PUT"]
    put_kwargs = requests_module.calls[1][2]
    assert put_kwargs["json"]["capabilities"] == {"iotEdge": True}
    assert put_kwargs["params"] == {"api-version": "2021-04-12"}
    assert put_kwargs["headers"]["Authorization"].startswith("SharedAccessSignature ")
    assert client.device_connection_string(device) == (
        "HostName=myhub.azure-devices.net;DeviceId=dev-1;SharedAccessKey=cHJpbWFyeQ=="
    )


def test_get_or_create_rejects_non_edge_device():
    client, _ = _client([FakeResponse(200, {"deviceId": "dev-1", "capabilities": {"iotEdge": False}})])

    with pytest.raises(QuickstartError, match="not an IoT Edge device"):
        client.get_or_create_edge_device("dev-1")


def test_delete_device_sends_if_match_and_tolerates_missing():
    client, requests_module = _client([FakeResponse(404)])

    client.delete_device("dev-1")

    method, url, kwargs = requests_module.calls[0]
    assert method == "DELETE"
    assert url == "https://myhub.azure-devices.net/devices/dev-1"
    assert kwargs["headers"]["If-Match"] == "*"


def test_apply_configuration_posts_modules_content():
    client, requests_module = _client([FakeResponse(200)])

    client.apply_configuration("dev-1", {"$edgeAgent": {}})

    method, url, kwargs = requests_module.calls[0]
    assert method == "POST"
    assert url.endswith("/devices/dev-1/applyConfigurationContent")
    assert kwargs["json"] == {"modulesContent": {"$edgeAgent": {}}}


def test_request_errors_become_quickstart_errors():
    client, _ = _client([FakeResponse(500)])

    with pytest.raises(QuickstartError, match="HTTP 500"):
        client.apply_configuration("dev-1", {})


def test_wait_for_module_connected_polls_until_connected():
    client, requests_module = _client(
        [
            FakeResponse(404),
            FakeResponse(200, {"moduleId": "tempSensor", "connectionState": "Disconnected"}),
            FakeResponse(200, {"moduleId": "tempSensor", "connectionState": "Connected"}),
        ]
    )

    assert client.wait_for_module_connected("dev-1", "tempSensor", timeout=5, interval=0) is True
    assert len(requests_module.calls) == 3


def test_wait_for_module_connected_gives_up_after_timeout():
    client, _ = _client([FakeResponse(404)])

    assert client.wait_for_module_connected("dev-1", "tempSensor", timeout=0, interval=0) is False
