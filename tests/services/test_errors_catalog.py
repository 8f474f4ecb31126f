import pytest

from iotedgequickstart.errors_catalog import actionable_error


def test_actionable_error_formats_message_with_suggested_action():
    message = actionable_error("unsupported_platform", bootstrapper="iotedged", platform="win32")

    assert "'iotedged' is not supported on platform 'win32'" in message
    assert "Suggested action:" in message
    assert "iotedgectl" in message


def test_actionable_error_rejects_unknown_code():
    with pytest.raises(KeyError):
        actionable_error("nope")
