"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from agentcall.api import health, tools
from agentcall.api.mcp_server import create_mcp_server
from agentcall.api.webhooks import voice
from agentcall.core.config import settings
from agentcall.core.dependencies import build_call_manager
from agentcall.core.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    manager = build_call_manager(settings)
    app.state.call_manager = manager
    logger.info(
        f"[STARTUP] agentcall ready - Phone: {settings.phone_provider}, "
        f"TTS: {settings.tts_provider}, STT: {settings.stt_provider}, "
        f"Public URL: {settings.base_url or 'not configured'}"
    )
    if not settings.base_url:
        logger.warning("[STARTUP] AGENTCALL_BASE_URL is not set; outbound calls will fail")
    async with mcp_server.session_manager.run():
        yield
    # Shutdown
    logger.info("[SHUTDOWN] Hanging up active calls")
    await manager.shutdown()
    await manager.call_system.close()
    await manager.synthesizer.close()
    await manager.recognizer.close()


def _current_manager():
    return app.state.call_manager


mcp_server = create_mcp_server(_current_manager)

app = FastAPI(
    title="agentcall",
    description="Voice calls between an AI agent and a human over the phone",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(tools.router, tags=["tools"])
app.include_router(voice.router, prefix="/webhooks", tags=["webhooks"])
app.mount("/mcp", mcp_server.streamable_http_app())


def run() -> None:
    """Run the server with uvicorn."""
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
