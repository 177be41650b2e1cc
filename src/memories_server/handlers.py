"""Request handlers: ``(principal, ...) -> (status, body)``.

Each handler checks the principal before anything else, makes exactly one
store call, and maps the outcome to a status code. Nothing here knows about
HTTP frameworks; ``server.py`` adapts these to FastAPI routes.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from .auth import UploadSigner
from .dashboard import build_dashboard
from .errors import MemoryValidationError, StorageError
from .store import MemoryStore

logger = logging.getLogger("memories.handlers")

Result = Tuple[int, Dict[str, Any]]

UNAUTHORIZED: Result = (401, {"error": "Unauthorized"})
NOT_FOUND_MSG = "Memory not found"
INVALID_BODY_MSG = "Invalid JSON body"


def _error(status: int, message: str) -> Result:
    return status, {"error": message}


def list_memories(principal: Optional[str], store: MemoryStore) -> Result:
    if not principal:
        return UNAUTHORIZED
    try:
        memories = store.list_by_owner(principal)
    except StorageError:
        logger.exception("Get memories error")
        return _error(500, "Failed to fetch memories")
    return 200, {"memories": [m.to_json() for m in memories]}


def get_memory(principal: Optional[str], memory_id: str, store: MemoryStore) -> Result:
    if not principal:
        return UNAUTHORIZED
    try:
        memory = store.get_one(principal, memory_id)
    except StorageError:
        logger.exception("Get memory error")
        return _error(500, "Failed to fetch memory")
    if memory is None:
        return _error(404, NOT_FOUND_MSG)
    return 200, {"memory": memory.to_json()}


def create_memory(principal: Optional[str], payload: Any, store: MemoryStore) -> Result:
    if not principal:
        return UNAUTHORIZED
    if not isinstance(payload, dict):
        return _error(400, INVALID_BODY_MSG)
    try:
        memory = store.create(principal, payload)
    except MemoryValidationError as e:
        return _error(400, e.message)
    except StorageError:
        logger.exception("Create memory error")
        return _error(500, "Failed to create memory")
    return 201, {"memory": memory.to_json()}


def update_memory(principal: Optional[str], memory_id: str, payload: Any, store: MemoryStore) -> Result:
    if not principal:
        return UNAUTHORIZED
    if not isinstance(payload, dict):
        return _error(400, INVALID_BODY_MSG)
    try:
        memory = store.update(principal, memory_id, payload)
    except MemoryValidationError as e:
        return _error(400, e.message)
    except StorageError:
        logger.exception("Update memory error")
        return _error(500, "Failed to update memory")
    if memory is None:
        return _error(404, NOT_FOUND_MSG)
    return 200, {"memory": memory.to_json()}


def delete_memory(principal: Optional[str], memory_id: str, store: MemoryStore) -> Result:
    if not principal:
        return UNAUTHORIZED
    try:
        deleted = store.delete(principal, memory_id)
    except StorageError:
        logger.exception("Delete memory error")
        return _error(500, "Failed to delete memory")
    if not deleted:
        return _error(404, NOT_FOUND_MSG)
    return 200, {"message": "Memory deleted successfully"}


def get_dashboard(principal: Optional[str], store: MemoryStore) -> Result:
    if not principal:
        return UNAUTHORIZED
    try:
        memories = store.list_by_owner(principal)
    except StorageError:
        logger.exception("Dashboard data error")
        return _error(500, "Failed to fetch dashboard data")
    return 200, build_dashboard(memories)


def get_upload_auth(principal: Optional[str], signer: UploadSigner) -> Result:
    if not principal:
        return UNAUTHORIZED
    try:
        params = signer.issue(principal)
    except RuntimeError:
        logger.exception("Upload auth error")
        return _error(500, "Failed to get upload authentication")
    return 200, params
