"""Run manifest recording the orchestrator's stage history."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ManifestService:
    """Collects stage transitions and, when a path is given, writes them as JSON.

    Only non-secret metadata belongs here; connection strings and registry
    passwords must never be passed in.
    """

    def __init__(self, manifest_file: Optional[str], logger):
        self.manifest_file = manifest_file
        self.logger = logger
        self.manifest: Dict[str, Any] = {
            "run_id": None,
            "status": "running",
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "metadata": {},
            "stages": [],
            "cleanup": [],
            "error": None,
        }

    @property
    def stages(self):
        return [entry["name"] for entry in self.manifest["stages"]]

    def start_run(self, run_id: str, metadata: Dict[str, Any]):
        self.manifest["run_id"] = run_id
        self.manifest["status"] = "running"
        self.manifest["started_at"] = self._now()
        self.manifest["metadata"] = metadata
        self.write()

    def update_metadata(self, **values: Any):
        self.manifest["metadata"].update(values)
        self.write()

    def stage_started(self, stage: str):
        self.manifest["stages"].append(
            {
                "name": stage,
                "status": "running",
                "started_at": self._now(),
                "finished_at": None,
                "duration_seconds": None,
                "error": None,
            }
        )
        self.write()

    def stage_finished(self, stage: str, status: str, error: Optional[str] = None):
        for entry in reversed(self.manifest["stages"]):
            if entry["name"] == stage and entry["status"] == "running":
                entry["status"] = status
                entry["finished_at"] = self._now()
                entry["error"] = error
                entry["duration_seconds"] = self._elapsed(entry["started_at"], entry["finished_at"])
                break
        self.write()

    def stage_skipped(self, stage: str, reason: str):
        now = self._now()
        self.manifest["stages"].append(
            {
                "name": stage,
                "status": "skipped",
                "started_at": now,
                "finished_at": now,
                "duration_seconds": 0.0,
                "error": None,
                "reason": reason,
            }
        )
        self.write()

    def cleanup_action(self, action: str, status: str, error: Optional[str] = None):
        self.manifest["cleanup"].append({"action": action, "status": status, "error": error})
        self.write()

    def finalize(self, status: str, error: Optional[str] = None):
        self.manifest["status"] = status
        self.manifest["finished_at"] = self._now()
        if self.manifest.get("started_at"):
            self.manifest["duration_seconds"] = self._elapsed(
                self.manifest["started_at"], self.manifest["finished_at"]
            )
        self.manifest["error"] = error
        self.write()

    def write(self):
        if not self.manifest_file:
            return

        os.makedirs(os.path.dirname(self.manifest_file) or ".", exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            prefix="run-manifest-", suffix=".json", dir=os.path.dirname(self.manifest_file) or "."
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self.manifest, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.manifest_file)
        except OSError as exc:
            self.logger.warning("Could not write manifest file '%s': %s", self.manifest_file, exc)
            try:
                os.remove(temp_path)
            except OSError:
                pass

    @staticmethod
    def _elapsed(started_at: str, finished_at: str) -> float:
        return (datetime.fromisoformat(finished_at) - datetime.fromisoformat(started_at)).total_seconds()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
