"""JSON artifacts holding every row error of one import."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable, Sequence
from pathlib import Path

from asin_tracker.domain.imports import ImportRowError

logger = logging.getLogger(__name__)


class ImportErrorArtifactStore:
    """Write and locate `errors_{import_id}_{millis}.json` files."""

    def __init__(
        self,
        directory: str | Path,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._directory = Path(directory)
        self._clock = clock

    async def write(self, import_file_id: int, errors: Sequence[ImportRowError]) -> str:
        """Persist all row errors and return the artifact path."""

        path = self._directory / f"errors_{import_file_id}_{int(self._clock() * 1000)}.json"
        payload = json.dumps([error.to_dict() for error in errors], indent=2, ensure_ascii=False)
        await asyncio.to_thread(self._write_file, path, payload)
        logger.warning("Saved %s import errors to %s.", len(errors), path)
        return str(path)

    def resolve(self, artifact_path: str) -> Path | None:
        """Return an existing artifact path located inside the artifact directory."""

        candidate = Path(artifact_path).resolve()
        root = self._directory.resolve()
        if root not in candidate.parents or not candidate.is_file():
            return None
        return candidate

    def _write_file(self, path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(payload, encoding="utf-8")


__all__ = ["ImportErrorArtifactStore"]
