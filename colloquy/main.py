"""Main FastAPI application for the Colloquy conversation service."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .config import settings
from .core.orchestrator import TurnOrchestrator, get_orchestrator, set_orchestrator
from .api.routes import agents, conversation
from .api.websocket import chat_handler

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Colloquy conversation service...")

    orchestrator = TurnOrchestrator(events=chat_handler.WebSocketConversationEvents())
    set_orchestrator(orchestrator)
    logger.info(f"Session {orchestrator.session.session_id} logging to {orchestrator.session.log_path}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await orchestrator.close()
    set_orchestrator(None)


# Create FastAPI app
app = FastAPI(
    title="Colloquy",
    description="Turn-taking orchestrator for conversations between a player and several AI agents",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Include routers
app.include_router(conversation.router, prefix="/api/conversation", tags=["conversation"])
app.include_router(agents.router, prefix="/api/agents", tags=["agents"])

# WebSocket endpoint
app.include_router(chat_handler.router, prefix="/ws", tags=["websocket"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Colloquy",
        "version": "1.0.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    orchestrator = get_orchestrator()
    return {
        "status": "healthy",
        "session_id": orchestrator.session.session_id,
        "agents": len(orchestrator.roster.base_order),
        "turns": orchestrator.log.count,
    }


def start():
    """Start the server."""
    uvicorn.run(
        "colloquy.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    start()
