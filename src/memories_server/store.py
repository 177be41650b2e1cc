"""Disk-backed memory store scoped by owner: one JSON document per memory."""
from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .errors import MemoryValidationError, StorageError
from .models import Memory, describe_validation_error, mutable_updates, parse_create

logger = logging.getLogger("memories.store")

_ID_RE = re.compile(r"^[0-9a-f]{32}$")


# -----------------------------
# Helpers
# -----------------------------
def _owner_key(owner_id: str) -> str:
    # Hash so distinct owners can never collide on a sanitized directory name.
    return hashlib.sha256(owner_id.encode("utf-8")).hexdigest()[:32]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _replace_document(path: Path, memory: Memory) -> None:
    """Write one memory document; readers see the old or new file, never half."""
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(memory.to_json(), ensure_ascii=False, indent=2)
    fd, tmp_name = tempfile.mkstemp(prefix=".", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp:
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


# -----------------------------
# MemoryStore
# -----------------------------
class MemoryStore:
    """JSON document store with one file per memory.

    Layout:
        data_dir/
          <sha256(owner)[:32]>/
            <memory id>.json      # one memory record, camelCase keys

    Every create, update and delete touches exactly one document, so
    concurrent writers (threads or worker processes) never clobber each
    other's records. Concurrent updates of the same memory are last write
    wins. Lookups check (ownerId, id) together, so a foreign id and a
    missing id are indistinguishable.
    """

    def __init__(self, data_dir: str) -> None:
        self.root = Path(data_dir)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create data dir {self.root}: {e}") from e

    # --------- paths ----------
    def _owner_dir(self, owner_id: str) -> Path:
        return self.root / _owner_key(owner_id)

    def _path(self, owner_id: str, memory_id: str) -> Optional[Path]:
        # Ids are server-issued uuid hex; anything else cannot exist.
        if not isinstance(memory_id, str) or not _ID_RE.match(memory_id):
            return None
        return self._owner_dir(owner_id) / f"{memory_id}.json"

    # --------- raw IO ----------
    def _read(self, path: Path) -> Optional[Memory]:
        """Load one document; None if it is gone (e.g. deleted concurrently)."""
        try:
            with path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read {path}: {e}") from e
        try:
            return Memory.model_validate(raw)
        except ValidationError as e:
            raise StorageError(f"Corrupt memory record in {path}: {e}") from e

    def _write(self, path: Path, memory: Memory) -> None:
        try:
            _replace_document(path, memory)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    def _lookup(self, owner_id: str, memory_id: str) -> Optional[Memory]:
        path = self._path(owner_id, memory_id)
        if path is None:
            return None
        memory = self._read(path)
        if memory is None or memory.owner_id != owner_id or memory.id != memory_id:
            return None
        return memory

    # --------- core API ----------
    def list_by_owner(self, owner_id: str) -> List[Memory]:
        """All of the owner's memories, newest ``created_at`` first."""
        owner_dir = self._owner_dir(owner_id)
        if not owner_dir.is_dir():
            return []
        memories: List[Memory] = []
        try:
            paths = sorted(owner_dir.glob("*.json"))
        except OSError as e:
            raise StorageError(f"Failed to list {owner_dir}: {e}") from e
        for path in paths:
            m = self._read(path)
            if m is not None and m.owner_id == owner_id:
                memories.append(m)
        return sorted(memories, key=lambda m: m.created_at, reverse=True)

    def get_one(self, owner_id: str, memory_id: str) -> Optional[Memory]:
        """Return the memory, or None when it is missing or not owned."""
        return self._lookup(owner_id, memory_id)

    def create(self, owner_id: str, fields: Dict[str, Any]) -> Memory:
        """Validate and persist a new memory owned by ``owner_id``.

        Raises MemoryValidationError before touching disk when the fields are
        unusable (missing title/type, unknown type, half a location, ...).
        """
        body = parse_create(fields)
        now = _utc_now()
        memory = Memory(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
            **body.model_dump(),
        )
        self._write(self._owner_dir(owner_id) / f"{memory.id}.json", memory)
        logger.info("Created memory %s for owner %s", memory.id, owner_id)
        return memory

    def update(self, owner_id: str, memory_id: str, fields: Dict[str, Any]) -> Optional[Memory]:
        """Merge allow-listed fields over the stored record.

        ``id``, ``ownerId``, ``createdAt`` and ``updatedAt`` in ``fields`` are
        ignored, as are unknown keys. Returns None when not found/not owned.
        Last write wins; there is no version check.
        """
        changes = mutable_updates(fields)
        current = self._lookup(owner_id, memory_id)
        if current is None:
            return None

        now = _utc_now()
        if now <= current.updated_at:
            now = current.updated_at + timedelta(microseconds=1)

        merged = current.model_dump()
        merged.update(changes)
        merged["updated_at"] = now
        try:
            updated = Memory.model_validate(merged)
        except ValidationError as e:
            raise MemoryValidationError(describe_validation_error(e)) from e

        self._write(self._path(owner_id, memory_id), updated)
        logger.info("Updated memory %s for owner %s (%s)", memory_id, owner_id, ", ".join(sorted(changes)) or "no fields")
        return updated

    def delete(self, owner_id: str, memory_id: str) -> bool:
        """Permanently remove a memory; False when not found/not owned."""
        if self._lookup(owner_id, memory_id) is None:
            return False
        try:
            self._path(owner_id, memory_id).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete memory {memory_id}: {e}") from e
        logger.info("Deleted memory %s for owner %s", memory_id, owner_id)
        return True
