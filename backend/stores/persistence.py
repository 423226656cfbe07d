from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Literal

from pydantic import ValidationError

from domain import Character
from rules.maps import now_ms

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = 1

ConflictMode = Literal["keep", "replace", "rename"]
ConflictChoice = Literal["local", "remote"]
Listener = Callable[[str, "dict | None"], None]


@dataclass
class SyncOperation:
    action: str
    key: str
    version: int | None
    timestamp: int
    synced: bool = False


@dataclass(frozen=True)
class ImportResult:
    characters: list[Character]
    imported: int
    skipped: int
    renamed: int
    errors: list[str]


class MemoryBackend:
    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileBackend(MemoryBackend):
    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._data = json.loads(self.path.read_text(encoding="utf-8") or "{}")

    def set(self, key: str, value: Any) -> None:
        super().set(key, value)
        self._flush()

    def remove(self, key: str) -> None:
        super().remove(key)
        self._flush()

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)


def default_backend() -> MemoryBackend:
    path = os.getenv("HOLONET_CACHE_PATH")
    if path:
        return JsonFileBackend(path)
    return MemoryBackend()


def cache_key(entity_type: str, entity_id: str) -> str:
    return f"{entity_type}:{entity_id}"


class LocalCache:
    def __init__(
        self,
        backend: MemoryBackend | None = None,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.backend = backend if backend is not None else default_backend()
        self.clock = clock
        self.sync_log: list[SyncOperation] = []
        self._listeners: list[Listener] = []

    def get(self, entity_type: str, entity_id: str) -> dict | None:
        return self.backend.get(cache_key(entity_type, entity_id))

    def set(
        self,
        entity_type: str,
        entity_id: str,
        value: dict,
        *,
        version: int | None = None,
    ) -> SyncOperation:
        key = cache_key(entity_type, entity_id)
        self.backend.set(key, value)
        operation = SyncOperation(
            action="set", key=key, version=version, timestamp=self.clock()
        )
        self.sync_log.append(operation)
        self._notify(key, value)
        return operation

    def remove(self, entity_type: str, entity_id: str) -> SyncOperation:
        key = cache_key(entity_type, entity_id)
        self.backend.remove(key)
        operation = SyncOperation(action="remove", key=key, version=None, timestamp=self.clock())
        self.sync_log.append(operation)
        self._notify(key, None)
        return operation

    def list_entities(self, entity_type: str) -> list[dict]:
        prefix = f"{entity_type}:"
        return [
            self.backend.get(key) for key in sorted(self.backend.keys()) if key.startswith(prefix)
        ]

    def pending(self) -> list[SyncOperation]:
        return [operation for operation in self.sync_log if not operation.synced]

    def mark_synced(self, entity_type: str, entity_id: str) -> int:
        key = cache_key(entity_type, entity_id)
        count = 0
        for operation in self.sync_log:
            if operation.key == key and not operation.synced:
                operation.synced = True
                count += 1
        return count

    def prune_synced(self) -> int:
        """Drop synced operations from the log and return how many were removed."""
        remaining = [operation for operation in self.sync_log if not operation.synced]
        removed = len(self.sync_log) - len(remaining)
        self.sync_log = remaining
        return removed

    def clear(self) -> None:
        for key in list(self.backend.keys()):
            self.backend.remove(key)
        self.sync_log = []

    def export_sync_log(self) -> list[dict]:
        return [asdict(operation) for operation in self.sync_log]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: str, value: dict | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, value)
            except Exception:
                logger.exception("Cache listener failed for %s", key)


def has_conflict(local: dict | None, remote: dict | None) -> bool:
    if not local or not remote:
        return False
    return int(local.get("version") or 0) != int(remote.get("version") or 0)


def resolve_conflict(
    local: dict,
    remote: dict,
    choice: ConflictChoice | None = None,
) -> dict:
    if choice == "local":
        return local
    if choice == "remote":
        return remote

    local_version = int(local.get("version") or 0)
    remote_version = int(remote.get("version") or 0)
    if local_version != remote_version:
        return local if local_version > remote_version else remote
    local_updated = int(local.get("updatedAt") or 0)
    remote_updated = int(remote.get("updatedAt") or 0)
    return remote if remote_updated > local_updated else local


def export_characters(characters: list[Character]) -> str:
    payload = {
        "characters": [character.dump() for character in characters],
        "version": EXPORT_FORMAT_VERSION,
        "exportDate": datetime.now(timezone.utc).isoformat(),
    }
    return json.dumps(payload, indent=2)


def import_characters(
    text: str,
    existing: dict[str, Character],
    *,
    replace_all: bool = False,
    on_conflict: ConflictMode = "keep",
    clock: Callable[[], int] = now_ms,
) -> ImportResult:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid character export: {exc.msg}") from exc
    if isinstance(payload, list):
        entries = payload
    elif isinstance(payload, dict) and isinstance(payload.get("characters"), list):
        entries = payload["characters"]
    else:
        raise ValueError("Invalid character export: missing characters list")

    current = {} if replace_all else dict(existing)
    imported: list[Character] = []
    skipped = 0
    renamed = 0
    errors: list[str] = []

    for index, entry in enumerate(entries):
        try:
            character = Character.model_validate(entry)
        except ValidationError as exc:
            errors.append(f"Entry {index}: {exc.error_count()} validation error(s)")
            continue

        if character.id in current:
            if on_conflict == "keep":
                skipped += 1
                continue
            if on_conflict == "rename":
                new_id = f"{character.id}-{clock()}"
                while new_id in current:
                    new_id = f"{new_id}-1"
                character = character.model_copy(
                    update={
                        "id": new_id,
                        "name": f"{character.name} (Imported)",
                    }
                )
                renamed += 1

        character = character.model_copy(update={"sync_status": "local"})
        current[character.id] = character
        imported.append(character)

    if errors:
        logger.warning("Skipped %d invalid character(s) during import", len(errors))
    return ImportResult(
        characters=imported,
        imported=len(imported),
        skipped=skipped,
        renamed=renamed,
        errors=errors,
    )
