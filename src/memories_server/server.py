"""FastAPI application serving ownership-scoped memories."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.concurrency import run_in_threadpool

from . import __version__, handlers
from .auth import SessionResolver, TokenSessionResolver, UploadSigner
from .config import load_config
from .store import MemoryStore


# -----------------------------
# Utilities
# -----------------------------
def _respond(result: handlers.Result) -> JSONResponse:
    status, body = result
    return JSONResponse(body, status_code=status)


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


def _configure_logging(cfg: Dict[str, Any]) -> None:
    level = str(cfg.get("logging", {}).get("level", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO))


def _make_store(cfg: Dict[str, Any]) -> MemoryStore:
    return MemoryStore(cfg.get("storage", {}).get("data_dir") or "data")


def _make_resolver(cfg: Dict[str, Any]) -> TokenSessionResolver:
    tokens = cfg.get("auth", {}).get("tokens") or {}
    return TokenSessionResolver(tokens)


def _make_signer(cfg: Dict[str, Any]) -> UploadSigner:
    up = cfg.get("upload", {})
    return UploadSigner(
        up.get("private_key", ""),
        public_key=up.get("public_key", ""),
        url_endpoint=up.get("url_endpoint", ""),
        expire_seconds=int(up.get("expire_seconds", 2400)),
    )


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    store: Optional[MemoryStore] = None,
    resolver: Optional[SessionResolver] = None,
    signer: Optional[UploadSigner] = None,
) -> FastAPI:
    cfg = load_config(config_path)
    _configure_logging(cfg)

    cors_origins = cfg.get("server", {}).get("cors_origins", ["*"])

    # Services
    store = store or _make_store(cfg)
    resolver = resolver or _make_resolver(cfg)
    signer = signer or _make_signer(cfg)

    app = FastAPI(title="Memories Server", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"ok": True, "version": __version__, "uploads_configured": signer.configured}

    @app.get("/memories")
    def list_memories(request: Request) -> JSONResponse:
        principal = resolver.resolve(request)
        return _respond(handlers.list_memories(principal, store))

    @app.post("/memories")
    async def create_memory(request: Request) -> JSONResponse:
        principal = resolver.resolve(request)
        # Body is only read once the caller is known.
        payload = await _read_json(request) if principal else None
        result = await run_in_threadpool(handlers.create_memory, principal, payload, store)
        return _respond(result)

    @app.get("/memories/{memory_id}")
    def get_memory(memory_id: str, request: Request) -> JSONResponse:
        principal = resolver.resolve(request)
        return _respond(handlers.get_memory(principal, memory_id, store))

    @app.put("/memories/{memory_id}")
    async def update_memory(memory_id: str, request: Request) -> JSONResponse:
        principal = resolver.resolve(request)
        payload = await _read_json(request) if principal else None
        result = await run_in_threadpool(handlers.update_memory, principal, memory_id, payload, store)
        return _respond(result)

    @app.delete("/memories/{memory_id}")
    def delete_memory(memory_id: str, request: Request) -> JSONResponse:
        principal = resolver.resolve(request)
        return _respond(handlers.delete_memory(principal, memory_id, store))

    @app.get("/dashboard")
    def dashboard(request: Request) -> JSONResponse:
        principal = resolver.resolve(request)
        return _respond(handlers.get_dashboard(principal, store))

    @app.get("/upload/auth")
    def upload_auth(request: Request) -> JSONResponse:
        principal = resolver.resolve(request)
        return _respond(handlers.get_upload_auth(principal, signer))

    return app
