"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sandbox_agent import __version__
from sandbox_agent.api.endpoints import router
from sandbox_agent.utils.logging import setup_logging

setup_logging()

# Create FastAPI application
app = FastAPI(
    title="Sandbox Agent",
    description=(
        "An autonomous agent that carries out tasks inside a remote Linux sandbox, "
        "streaming its reasoning and tool activity over a WebSocket."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "Session",
            "description": "Provision sandboxes that a conversation can later resume.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("sandbox_agent.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
