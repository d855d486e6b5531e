"""Run directories and the screenshot artifact sink."""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

from workflow.session import SessionContext

log = logging.getLogger(__name__)

_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(slots=True)
class RunPaths:
    run_id: str
    base: Path
    shots: Path
    events: Path


def new_run_id(today: Optional[date] = None) -> str:
    """``YYYY-MM-DD_xxxxxx`` with a random lowercase alphanumeric suffix."""

    stamp = (today or date.today()).isoformat()
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"{stamp}_{suffix}"


def create_run_dir(root: Path, run_id: Optional[str] = None) -> RunPaths:
    run_id = run_id or new_run_id()
    base = Path(root) / run_id
    shots = base / "shots"
    shots.mkdir(parents=True, exist_ok=True)
    return RunPaths(run_id=run_id, base=base, shots=shots, events=base / "events.jsonl")


class ScreenshotSink:
    """Artifact sink writing ``<checkpoint>.png`` files into one directory."""

    def __init__(self, shots_dir: Path) -> None:
        self.shots_dir = Path(shots_dir)

    async def store(self, name: str, session: SessionContext) -> str:
        path = self.shots_dir / f"{name}.png"
        await session.browser.screenshot(path)
        log.debug("Stored checkpoint %s at %s", name, path)
        return str(path)
