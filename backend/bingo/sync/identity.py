"""Remembering which player this client is, per join code.

The scope is one client profile: a page reload (or a new process using the
same file) resolves the same player without joining again. Nothing here is
shared between profiles or devices.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Protocol

import structlog

logger = structlog.get_logger()

_FILE_PERMISSIONS = 0o600


class IdentityStore(Protocol):
    def get(self, code: str) -> str | None: ...

    def remember(self, code: str, player_id: str) -> None: ...

    def forget(self, code: str) -> None: ...


class MemoryIdentityStore:
    """Process-local identity store."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._players: dict[str, str] = dict(initial or {})

    def get(self, code: str) -> str | None:
        return self._players.get(code)

    def remember(self, code: str, player_id: str) -> None:
        self._players[code] = player_id

    def forget(self, code: str) -> None:
        self._players.pop(code, None)


class FileIdentityStore:
    """Identity store persisted as one JSON object (code -> player id) per profile.

    The file is read on first access and rewritten atomically on every change
    with owner-only permissions.
    """

    def __init__(self, file_path: str | Path) -> None:
        self._file_path = Path(file_path)
        self._players: dict[str, str] | None = None

    def get(self, code: str) -> str | None:
        return self._load().get(code)

    def remember(self, code: str, player_id: str) -> None:
        players = self._load()
        if players.get(code) == player_id:
            return
        players[code] = player_id
        self._save(players)

    def forget(self, code: str) -> None:
        players = self._load()
        if players.pop(code, None) is not None:
            self._save(players)

    def _load(self) -> dict[str, str]:
        """Read the file once. A missing file is an empty profile; a corrupt one is an error."""
        if self._players is not None:
            return self._players
        if not self._file_path.exists():
            self._players = {}
            return self._players
        try:
            data = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            msg = f"Failed to load identities from {self._file_path}"
            raise OSError(msg) from exc
        if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
            msg = f"Expected a JSON object of strings in {self._file_path}"
            raise OSError(msg)
        self._players = data
        return self._players

    def _save(self, players: dict[str, str]) -> None:
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self._file_path.parent), suffix=".tmp", prefix=".identity_")
        fd_owned = True
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                fd_owned = False
                json.dump(players, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, _FILE_PERMISSIONS)  # noqa: PTH101
            Path(tmp_path).replace(self._file_path)
        except BaseException:
            if fd_owned:
                with contextlib.suppress(OSError):
                    os.close(fd)
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise
        logger.debug("identity file written", path=str(self._file_path), entries=len(players))
