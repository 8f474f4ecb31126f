import json

from iotedgequickstart.services.manifest import ManifestService


class DummyLogger:
    def warning(self, *_args, **_kwargs):
        return None


def test_manifest_service_writes_stage_history(tmp_path):
    manifest_file = tmp_path / "run-manifest.json"
    service = ManifestService(str(manifest_file), logger=DummyLogger())

    service.start_run("run-123", {"device_id": "dev-1", "bootstrapper": "iotedged"})
    service.stage_started("installed")
    service.stage_finished("installed", "success")
    service.stage_skipped("modules_deployed", "no_deployment")
    service.cleanup_action("uninstall", "failed", error="apt-get exploded")
    service.finalize("success")

    data = json.loads(manifest_file.read_text(encoding="utf-8"))

    assert data["run_id"] == "run-123"
    assert data["status"] == "success"
    assert data["metadata"]["device_id"] == "dev-1"
    assert [stage["name"] for stage in data["stages"]] == ["installed", "modules_deployed"]
    assert data["stages"][0]["status"] == "success"
    assert data["stages"][1]["status"] == "skipped"
    assert data["cleanup"] == [{"action": "uninstall", "status": "failed", "error": "apt-get exploded"}]


def test_manifest_service_without_file_keeps_history_in_memory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    service = ManifestService(None, logger=DummyLogger())

    service.start_run("run-1", {})
    service.stage_started("started")
    service.stage_finished("started", "failed", error="boom")

    assert service.stages == ["started"]
    assert service.manifest["stages"][0]["error"] == "boom"
    assert list(tmp_path.iterdir()) == []


def test_manifest_service_updates_metadata(tmp_path):
    manifest_file = tmp_path / "run-manifest.json"
    service = ManifestService(str(manifest_file), logger=DummyLogger())

    service.start_run("run-123", {"device_id": "dev-1", "image_tag": None})
    service.update_metadata(image_tag="1.0")

    data = json.loads(manifest_file.read_text(encoding="utf-8"))
    assert data["metadata"] == {"device_id": "dev-1", "image_tag": "1.0"}
