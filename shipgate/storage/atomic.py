"""Write-temp-then-rename publishing for JSON state files."""

from __future__ import annotations

import json
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


def atomic_write_json(path: Path, payload: object) -> None:
    """Publish JSON to `path` so readers never observe a partial document."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temporary_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    if temporary_path.exists():
        temporary_path.unlink()

    try:
        with temporary_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, sort_keys=False)
            _ = handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        _ = temporary_path.replace(path)
    except Exception:
        if temporary_path.exists():
            temporary_path.unlink()
        raise


def read_json(path: Path) -> object:
    """Read one JSON document; callers handle missing and malformed files."""
    return json.loads(path.read_text(encoding="utf-8"))
