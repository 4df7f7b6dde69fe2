# Run from project root: uvicorn chatgate.main:app --reload

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatgate.api.routes import router
from chatgate.core.config import API_PREFIX, CORS_ORIGINS, LOG_LEVEL
from chatgate.services.orchestrator import ChatOrchestrator, build_orchestrator

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = build_orchestrator()
    orchestrator: ChatOrchestrator = app.state.orchestrator
    await orchestrator.start()
    logger.info("Chat gateway started")
    try:
        yield
    finally:
        await orchestrator.stop()


def create_app(orchestrator: ChatOrchestrator | None = None) -> FastAPI:
    app = FastAPI(title="Conversational Query Gateway", lifespan=lifespan)
    app.state.orchestrator = orchestrator
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )
    app.include_router(router, prefix=API_PREFIX)

    @app.get("/", tags=["system"])
    def root():
        return {"status": "Conversational query gateway running"}

    return app


app = create_app()
