"""JSONL event log for workflow runs."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .results import StageOutcome, WorkflowResult

log = logging.getLogger(__name__)


class StructuredLogger:
    """Writes one JSON line per stage outcome plus a closing run summary."""

    def __init__(self, run_id: str, events_path: Path) -> None:
        self.run_id = run_id
        self.events_path = events_path
        self._step = 0
        self._events_file = events_path.open("a", encoding="utf-8")

    def __enter__(self) -> "StructuredLogger":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _write(self, payload: Dict[str, Any]) -> None:
        self._events_file.write(json.dumps(payload, ensure_ascii=False) + "\n")
        self._events_file.flush()

    def log_stage(
        self,
        index: int,
        outcome: StageOutcome,
        *,
        checkpoint: Optional[str] = None,
        artifact: Optional[str] = None,
    ) -> int:
        self._step += 1
        self._write(
            {
                "ts": time.time(),
                "run_id": self.run_id,
                "step": self._step,
                "event": "stage",
                "stage_index": index,
                "outcome": outcome.as_dict(),
                "states": [state.value for state in outcome.states],
                "checkpoint": checkpoint,
                "artifact": artifact,
            }
        )
        return self._step

    def log_result(self, result: WorkflowResult) -> None:
        self._write(
            {
                "ts": time.time(),
                "run_id": self.run_id,
                "event": "result",
                "succeeded": result.succeeded,
                "halted_at_stage": result.halted_at_stage,
                "final_url": result.final_url,
                "error": result.error,
            }
        )

    def close(self) -> None:
        try:
            self._events_file.close()
        except OSError as exc:
            log.debug("Closing %s failed: %s", self.events_path, exc)
