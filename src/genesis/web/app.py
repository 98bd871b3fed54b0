"""Genesis HTTP API.

A FastAPI app providing:
- the eight operations for a subject, invoked by name
- the subconscious processor for a finished session
- node/edge listing, audited node patch and delete, cube position

The subject id comes from the path and is assumed to be authenticated by
whatever sits in front of this app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.genesis import __version__
from src.genesis.config import GenesisConfig, load_config
from src.genesis.errors import GenesisError, RateLimitError, ValidationError
from src.genesis.log import configure_logging
from src.genesis.memory import MemoryManager
from src.genesis.protocol import OperationRegistry, create_default_registry
from src.genesis.protocol.views import cube_view, edge_view, node_view
from src.genesis.subconscious import SessionEvent, SubconsciousProcessor

HTTP_STATUS = {
    "validation_error": 422,
    "not_found": 404,
    "conflict": 409,
    "rate_limited": 429,
    "upstream_error": 502,
    "storage_error": 503,
}


def status_for(code: str | None) -> int:
    return HTTP_STATUS.get(code or "", 500)


def _retry_headers(error: dict[str, Any] | None) -> dict[str, str]:
    if not error or error.get("code") != "rate_limited":
        return {}
    retry_ms = error.get("details", {}).get("retry_after_ms", 1000)
    return {"Retry-After": str(max(1, -(-int(retry_ms) // 1000)))}


# Request models
class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid", allow_inf_nan=False
    )


class SessionEventRequest(CamelModel):
    summary: str = Field(min_length=1)
    tags: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)
    actor: str = "manual"


class NodeUpdateRequest(CamelModel):
    gravity: Optional[float] = None
    salience: Optional[float] = None
    confidence: Optional[float] = None
    strength: Optional[float] = None
    tags: Optional[list[str]] = None
    actor: str = "api"


class CubeUpdateRequest(CamelModel):
    trust_level: Optional[float] = None
    access_depth: Optional[float] = None
    role_clarity: Optional[float] = None


def create_app(
    config: GenesisConfig | None = None,
    manager: MemoryManager | None = None,
    processor: SubconsciousProcessor | None = None,
) -> FastAPI:
    """Build the app. Tests inject a manager backed by memory and a fake embedder."""
    config = config or load_config()
    manager = manager or MemoryManager(config.memory)
    registry: OperationRegistry = create_default_registry(manager)
    processor = processor or SubconsciousProcessor(registry, config.subconscious)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config.log_level)
        await manager.initialize()
        logger.info(f"[Web] Genesis {__version__} ready ({config.memory.backend} backend)")
        yield
        await manager.shutdown()
        logger.info("[Web] Genesis shutdown")

    app = FastAPI(title="Genesis Memory API", version=__version__, lifespan=lifespan)
    app.state.manager = manager
    app.state.registry = registry
    app.state.processor = processor

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GenesisError)
    async def genesis_error_handler(request: Request, exc: GenesisError):
        if isinstance(exc, RateLimitError) or exc.code not in ("upstream_error", "storage_error"):
            logger.info(f"[Web] {request.method} {request.url.path}: [{exc.code}] {exc.message}")
        else:
            logger.error(f"[Web] {request.method} {request.url.path}: [{exc.code}] {exc.message}")
        error = exc.to_dict()
        return JSONResponse(
            status_code=status_for(exc.code),
            content={"status": "error", "error": error},
            headers=_retry_headers(error),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # The rejected input is left out: it may be a non-finite float that JSON cannot carry
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"], "type": err["type"]}
            for err in exc.errors()
        ]
        error = ValidationError("Invalid request", {"errors": errors})
        logger.info(f"[Web] {request.method} {request.url.path}: [{error.code}] {len(errors)} invalid field(s)")
        return JSONResponse(status_code=422, content={"status": "error", "error": error.to_dict()})

    # ==================== Protocol ====================

    @app.get("/operations")
    async def list_operations():
        """Operation definitions in OpenAI function format."""
        return {"operations": registry.get_definitions()}

    @app.post("/subjects/{subject_id}/operations/{name}")
    async def run_operation(subject_id: str, name: str, params: Optional[dict[str, Any]] = Body(default=None)):
        result = await registry.execute(subject_id, name, params)
        if result.success:
            return result.to_dict()
        return JSONResponse(
            status_code=status_for(result.error_code),
            content=result.to_dict(),
            headers=_retry_headers(result.error),
        )

    @app.post("/subjects/{subject_id}/subconscious")
    async def run_subconscious(subject_id: str, request: SessionEventRequest):
        event = SessionEvent(
            summary=request.summary,
            tags=request.tags,
            decisions=request.decisions,
            actor=request.actor,
        )
        run = await processor.process(subject_id, event)
        if run.batch.success:
            return run.to_dict()
        return JSONResponse(
            status_code=status_for(run.batch.error["code"]),
            content=run.to_dict(),
            headers=_retry_headers(run.batch.error),
        )

    # ==================== Nodes & edges ====================

    @app.get("/subjects/{subject_id}/nodes")
    async def list_nodes(
        subject_id: str,
        node_type: Optional[list[str]] = Query(default=None, alias="nodeType"),
        tags: Optional[list[str]] = Query(default=None),
        min_gravity: Optional[float] = Query(default=None, alias="minGravity"),
        limit: int = Query(default=50, ge=1, le=500),
    ):
        nodes = await manager.list_nodes(subject_id, node_type, min_gravity, tags, limit)
        return {"nodes": [node_view(n) for n in nodes], "total": len(nodes)}

    @app.get("/subjects/{subject_id}/nodes/{node_id}")
    async def get_node(subject_id: str, node_id: str):
        return node_view(await manager.get_node(subject_id, node_id))

    @app.patch("/subjects/{subject_id}/nodes/{node_id}")
    async def update_node(subject_id: str, node_id: str, request: NodeUpdateRequest):
        fields = request.model_dump(exclude_none=True, exclude={"actor"})
        node = await manager.update_node(subject_id, node_id, fields, actor=request.actor)
        return node_view(node)

    @app.delete("/subjects/{subject_id}/nodes/{node_id}")
    async def delete_node(subject_id: str, node_id: str, actor: str = "api"):
        """Audited delete; edges touching the node go with it."""
        return await manager.delete_node(subject_id, node_id, actor=actor)

    @app.get("/subjects/{subject_id}/edges")
    async def list_edges(
        subject_id: str,
        node_id: Optional[str] = Query(default=None, alias="nodeId"),
        direction: str = Query(default="both", pattern="^(out|in|both)$"),
        limit: int = Query(default=100, ge=1, le=1000),
    ):
        edges = await manager.list_edges(subject_id, node_id, direction, limit)
        return {"edges": [edge_view(e) for e in edges], "total": len(edges)}

    @app.get("/subjects/{subject_id}/audit")
    async def list_audit(subject_id: str, limit: int = Query(default=50, ge=1, le=500)):
        entries = await manager.list_audit(subject_id, limit)
        return {"entries": [e.to_dict() for e in entries]}

    # ==================== Cube ====================

    @app.get("/subjects/{subject_id}/cube")
    async def get_cube(subject_id: str):
        return cube_view(await manager.get_cube_position(subject_id))

    @app.put("/subjects/{subject_id}/cube")
    async def set_cube(subject_id: str, request: CubeUpdateRequest):
        position = await manager.set_cube_position(
            subject_id,
            trust_level=request.trust_level,
            access_depth=request.access_depth,
            role_clarity=request.role_clarity,
        )
        return cube_view(position)

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__, "backend": type(manager.backend).__name__}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8765)
