import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..app import get_service
from ..infra.config import get_config
from ..observability.logging_utils import init_logging, log_event, summarize_text, trace_scope
from ..schemas.models import OrchestrateRequest


@asynccontextmanager
async def lifespan(_: FastAPI):
    cfg = get_config()
    init_logging(log_path=cfg.log_path)
    log_event("api_started", log_path=cfg.log_path, port=cfg.fastapi_port)
    yield


app = FastAPI(title="Advisory Router", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def _trace_requests(request: Request, call_next):
    with trace_scope(request.headers.get("x-trace-id")) as trace_id:
        response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        return response


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    log_event(
        "api_unhandled_error",
        path=request.url.path,
        error=str(exc),
        traceback=summarize_text(traceback.format_exc(), 2000),
    )
    return JSONResponse(status_code=500, content={"detail": {"error": str(exc)}})


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/v1/servers")
async def list_servers(
    category: Optional[str] = None,
    is_global: Optional[bool] = None,
    is_active: Optional[bool] = None,
    is_deployed: Optional[bool] = None,
):
    servers = await get_service().registry.list_servers(
        category=category,
        is_global=is_global,
        is_active=is_active,
        is_deployed=is_deployed,
    )
    return {
        "servers": [server.model_dump(exclude={"endpoint_key"}) for server in servers],
        "count": len(servers),
    }


@app.get("/api/v1/servers/active")
async def active_servers(
    lat: Optional[float] = Query(default=None, ge=-90.0, le=90.0),
    lon: Optional[float] = Query(default=None, ge=-180.0, le=180.0),
):
    result = await get_service().registry.get_active_servers_for_location(lat, lon)
    return {
        "global": [server.public_view() for server in result.global_servers],
        "regional": [server.public_view() for server in result.regional],
        "detected_regions": [region.model_dump() for region in result.detected_regions],
        "counts": {
            "global": len(result.global_servers),
            "regional": len(result.regional),
            "total": len(result.all_servers()),
        },
    }


@app.get("/api/v1/servers/health")
async def servers_health():
    results, summary = await get_service().health.check_all()
    return {
        "results": [item.model_dump() for item in results],
        "summary": summary.model_dump(),
    }


@app.get("/api/v1/servers/{slug}/health")
async def server_health(slug: str):
    result = await get_service().health.check_slug(slug)
    if result is None:
        raise HTTPException(status_code=404, detail={"error": "Server not found"})
    return result.model_dump()


@app.get("/api/v1/servers/{slug}")
async def server_detail(slug: str):
    server = await get_service().registry.get_server(slug)
    if server is None:
        raise HTTPException(status_code=404, detail={"error": "Server not found"})
    return server.model_dump(exclude={"endpoint_key"})


@app.post("/api/v1/orchestrate")
async def orchestrate(request: OrchestrateRequest):
    return await get_service().handle(request)
