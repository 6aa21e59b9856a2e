"""Last-known position cache persisted as a small JSON file."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import Any, Dict, Optional

from nearcast.client.location.models import Position

logger = logging.getLogger(__name__)


class LastKnownPositionStore:
    """Maps device id to its last fix.

    Only one fix per device is kept; it is overwritten, never historized. I/O
    failures are logged and swallowed so a broken cache never blocks tracking.
    """

    def __init__(self, path: str | os.PathLike[str], device_id: str) -> None:
        self.path = Path(path)
        self.device_id = device_id

    def _read_all(self) -> Dict[str, Any]:
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.warning("failed to read last known position cache path=%s", self.path, exc_info=True)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> Optional[Position]:
        raw = self._read_all().get(self.device_id)
        if not isinstance(raw, dict):
            return None
        try:
            return Position.from_mapping(raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("discarding malformed cached position device=%s", self.device_id)
            return None

    def save(self, position: Position) -> None:
        data = self._read_all()
        data[self.device_id] = position.to_mapping()
        self._write_all(data, action="persist")

    def clear(self) -> None:
        data = self._read_all()
        if data.pop(self.device_id, None) is None:
            return
        self._write_all(data, action="clear")

    def _write_all(self, data: Dict[str, Any], *, action: str) -> None:
        # Write beside the target and swap it in, so a reader never sees a torn file.
        tmp: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".lastpos-")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp, self.path)
            tmp = None
        except (OSError, TypeError, ValueError):
            logger.warning("failed to %s last known position path=%s", action, self.path, exc_info=True)
        finally:
            if tmp is not None:
                with suppress(OSError):
                    os.unlink(tmp)


__all__ = ["LastKnownPositionStore"]
