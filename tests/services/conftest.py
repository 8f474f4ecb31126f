import subprocess

import pytest


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, msg, *args, **_kwargs):
        self.warnings.append(msg % args if args else msg)


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakeCommandRunner:
    """Records commands; `outputs` maps a command's first two words to (returncode, stdout)."""

    def __init__(self, outputs=None):
        self.outputs = outputs or {}
        self.calls = []

    def run(self, cmd, check=True, capture_output=False, timeout=None, redact=None):
        self.calls.append({"cmd": list(cmd), "check": check, "redact": list(redact or [])})
        returncode, stdout = self.outputs.get(" ".join(cmd[:2]), (0, ""))
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="")

    @property
    def commands(self):
        return [call["cmd"] for call in self.calls]


class FakeIotHub:
    def __init__(self):
        self.calls = []

    def get_or_create_edge_device(self, device_id):
        self.calls.append(("get_or_create_edge_device", device_id))
        return {"deviceId": device_id, "authentication": {"symmetricKey": {"primaryKey": "a2V5"}}}

    def device_connection_string(self, device):
        return f"HostName=hub.azure-devices.net;DeviceId={device['deviceId']};SharedAccessKey=a2V5"

    def apply_configuration(self, device_id, modules_content):
        self.calls.append(("apply_configuration", device_id, modules_content))

    def delete_module(self, device_id, module_id):
        self.calls.append(("delete_module", device_id, module_id))

    def delete_device(self, device_id):
        self.calls.append(("delete_device", device_id))

    def wait_for_module_connected(self, device_id, module_id, timeout, interval):
        self.calls.append(("wait_for_module_connected", device_id, module_id))
        return True


@pytest.fixture
def logger():
    return DummyLogger()


@pytest.fixture
def console():
    return DummyConsole()


@pytest.fixture
def iothub():
    return FakeIotHub()


@pytest.fixture
def make_bootstrapper(logger, console, iothub):
    def factory(cls, runner=None, archive_path=None, image_tag="1.0", **kwargs):
        hub_connection_strings = []

        def iothub_factory(connection_string):
            hub_connection_strings.append(connection_string)
            return iothub

        bootstrapper = cls(
            archive_path,
            image_tag,
            iothub_factory,
            runner or FakeCommandRunner(),
            logger,
            console,
            **kwargs,
        )
        bootstrapper.hub_connection_strings = hub_connection_strings
        return bootstrapper

    return factory


@pytest.fixture
def make_runner():
    return FakeCommandRunner
