"""Echoes FastAPI application.

Wires the Neo4j store, Gemini clients, retrieval, enrichment and chat
services into the app lifespan and mounts the HTTP routers.
"""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import AsyncExitStack, asynccontextmanager

import logfire
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from echoes import __version__
from echoes.api import dependencies
from echoes.api import router as api_router
from echoes.core.base import ApplicationError
from echoes.core.config import settings
from echoes.core.handlers import ErrorHandler
from echoes.core.logging import clear_log_context, get_logger, set_log_context, setup_logging
from echoes.infrastructure.embeddings.factory import create_embedding_service
from echoes.infrastructure.gemini_client import GeminiHTTPClient
from echoes.infrastructure.generation.gemini import GeminiResponseGenerator
from echoes.infrastructure.neo4j.driver import create_neo4j_driver, ensure_schema
from echoes.infrastructure.repositories.memory import Neo4jMemoryStore
from echoes.services.chat import ChatService
from echoes.services.enrichment import EnrichmentWorker, MemoryEnricher
from echoes.services.memory_service import MemoryService
from echoes.services.retrieval import MemoryRetrievalService

logfire.configure(
    service_name=settings.service_name,
    send_to_logfire="if-token-present",
    token=os.getenv("LOGFIRE_TOKEN"),
)
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Build the service graph on startup and tear it down on shutdown."""
    logger.info("Starting Echoes", version=__version__)

    async with AsyncExitStack() as stack:
        driver = await stack.enter_async_context(create_neo4j_driver())
        await ensure_schema(driver)

        embeddings = create_embedding_service(neo4j_driver=driver)
        stack.push_async_callback(embeddings.close)
        generator = GeminiResponseGenerator(client=GeminiHTTPClient(name="gemini_generation"))
        stack.push_async_callback(generator.close)

        store = Neo4jMemoryStore(driver)
        retrieval = MemoryRetrievalService(store, embeddings)
        enricher = MemoryEnricher(store, embeddings, summarizer=generator, retrieval=retrieval)
        worker = EnrichmentWorker(enricher, store)

        dependencies.retrieval_service = retrieval
        dependencies.memory_service = MemoryService(store, retrieval, worker)
        dependencies.chat_service = ChatService(retrieval, generator)
        dependencies.enrichment_worker = worker

        await worker.start()
        stack.push_async_callback(worker.shutdown)
        logger.info("Echoes started", embedding_model=embeddings.model, dimensions=embeddings.get_model_dimensions())

        try:
            yield
        finally:
            logger.info("Shutting down Echoes")
            dependencies.memory_service = None
            dependencies.retrieval_service = None
            dependencies.chat_service = None
            dependencies.enrichment_worker = None

    logger.info("Echoes shutdown complete")


async def bind_request_context(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    """Start every request with a fresh logging context."""
    clear_log_context()
    set_log_context({"path": request.url.path, "method": request.method})
    try:
        return await call_next(request)
    finally:
        clear_log_context()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Echoes API",
        description="Voice-journal memories with semantic search and a memory-grounded assistant",
        version=__version__,
        lifespan=lifespan,
    )

    logfire.instrument_fastapi(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(bind_request_context)

    app.add_exception_handler(ApplicationError, ErrorHandler().handle_application_error)  # type: ignore[arg-type]
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("echoes.main:app", host="0.0.0.0", port=8000, reload=settings.debug, log_level="info")
