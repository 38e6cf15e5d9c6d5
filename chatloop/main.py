"""Main FastAPI application."""

from fastapi import FastAPI

from chatloop import __version__
from chatloop.api.endpoints import router
from chatloop.config import Settings
from chatloop.utils.logging import setup_logging

app = FastAPI(
    title="chatloop",
    description="Chat with a tool-calling language model that can search the web before answering.",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "Conversation",
            "description": "Send messages and inspect per-session history.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

app.include_router(router)


def serve() -> None:
    """Run the HTTP service with uvicorn."""
    import uvicorn

    setup_logging(Settings.from_env().log)
    uvicorn.run("chatloop.main:app", host="0.0.0.0", port=8000, log_level="info")


if __name__ == "__main__":
    serve()
