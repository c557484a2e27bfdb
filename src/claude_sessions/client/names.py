"""Persistent user-chosen display names for sessions and windows."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

_NAMES_ADAPTER = TypeAdapter(dict[str, str])


class NameStore:
    """A string to string mapping loaded once and rewritten in full on every change."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._names: dict[str, str] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            return _NAMES_ADAPTER.validate_json(self._path.read_bytes())
        except (OSError, ValidationError) as exc:
            logger.warning(
                "Ignoring unreadable name store",
                extra={"path": str(self._path), "error": str(exc)},
            )
            return {}

    def _save(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(self._names, indent=2, sort_keys=True), encoding="utf-8")
        except OSError as exc:
            logger.warning(
                "Failed to write name store",
                extra={"path": str(self._path), "error": str(exc)},
            )

    def get_name(self, key: str) -> str | None:
        return self._names.get(key)

    def set_name(self, key: str, name: str | None) -> None:
        """Store ``name`` for ``key``; an empty or whitespace-only name clears it."""

        if name is not None and name.strip():
            self._names[key] = name
        else:
            self._names.pop(key, None)
        self._save()

    def clear_name(self, key: str) -> None:
        self.set_name(key, None)

    def get_all_names(self) -> dict[str, str]:
        return dict(self._names)


__all__ = ["NameStore"]
