"""
Nyx - Auto-parts Assistant
FastAPI Backend with LLM + Tools
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routers import chat, webhook, workspace
from logging_config import setup_logging
from config import runtime_config
from services.store import get_store, close_store
from services.demo_data import seed_demo_data
from services.llm_client import check_llm_health, close_openai_client
from tools.registry import get_tool_registry

setup_logging(runtime_config.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown events"""
    # Startup
    store = await get_store()
    health = await store.health_check()
    logger.info(f"Data store ready ({health.get('backend')})")

    if runtime_config.seed_demo_data:
        written = await seed_demo_data(store, runtime_config.persona_id)
        if written:
            logger.info(f"Demo data seeded ({written} records)")

    registry = get_tool_registry()
    logger.info(f"{len(registry)} tools registered: {', '.join(registry.names)}")

    if await check_llm_health():
        logger.info(f"LLM server reachable at {runtime_config.llm_base_url}")
    else:
        logger.warning(f"LLM server not reachable at {runtime_config.llm_base_url}, chat will report errors")

    yield

    # Shutdown
    await close_openai_client()
    await close_store()
    logger.info("Nyx signing off")


app = FastAPI(
    title="Nyx",
    description="Auto-parts assistant with tools",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS - restrict to localhost and private network IPs on port 3000
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|192\.168\.\d+\.\d+|10\.\d+\.\d+\.\d+):3000$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Chat router is mounted WITHOUT /api prefix so WebSocket is at /ws/chat
app.include_router(chat.router, tags=["chat"])
# Workspace router already has the /api prefix
app.include_router(workspace.router, tags=["workspace"])
app.include_router(webhook.router, tags=["webhook"])


@app.get("/health")
async def health():
    """Health check - pings the data store and the LLM server."""
    checks = {}

    try:
        store = await get_store()
        store_health = await store.health_check()
        checks["store"] = "ok" if store_health.get("status") == "ok" else "down"
    except Exception:
        checks["store"] = "down"

    checks["llm"] = "ok" if await check_llm_health() else "down"

    return {
        "status": "healthy" if all(v == "ok" for v in checks.values()) else "degraded",
        "service": "nyx",
        "checks": checks,
        "config": {
            "model_chat": runtime_config.model_chat,
            "store_backend": runtime_config.store_backend,
        },
    }


@app.get("/api/config")
async def get_runtime_config():
    """Current runtime settings (no secrets)."""
    return runtime_config.to_dict()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, ws_max_size=runtime_config.ws_max_payload_bytes)
