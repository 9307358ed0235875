"""
FastAPI server for Lexiflow.

Endpoints:
- POST /chat: Chat in default or workflow mode, streamed with the data stream protocol
- POST /workflow: Run a workflow over plain text input without progress frames
- POST /resources: Chunk and embed document text for retrieval
- DELETE /resources/{resource_id}: Delete the stored embeddings of a resource
- POST /pseudonymization: Replace personal data in a message with placeholders
- GET /health: Component health status with uptime and config hash

Usage:
    $ uvicorn lexiflow.api.server:app --reload --host 0.0.0.0 --port 8000

    $ curl -N -X POST http://localhost:8000/chat \
      -H 'Content-Type: application/json' \
      -d '{"mode":"workflow","messages":[{"role":"user","content":"First ..., then ..."}]}'
    2:[{"workflowSteps":["...","..."],"currentStep":0,"isComplete":false}]
    2:[{"workflowSteps":["...","..."],"currentStep":1,"isComplete":false}]
    0:"Dear"
    ...
    2:[{"workflowSteps":["...","..."],"currentStep":1,"isComplete":true}]
    d:{"finishReason":"stop"}

Configuration:
    - LEX_API__HOST=0.0.0.0
    - LEX_API__PORT=8000
    - LEX_API__ENABLE_CORS=true
    - LEX_PROVIDERS__OPENAI__API_KEY=...
    - LEX_PROVIDERS__ANTHROPIC__API_KEY=...
"""

import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from opentelemetry import metrics as otel_metrics

from ..config.container import Container, get_container
from ..config.settings import get_settings
from ..core.chat import ChatService, InvalidModeError, parse_mode
from ..core.determinism import ensure_deterministic_startup, get_config_hash
from ..observability.logging import clear_trace_id, get_logger, set_trace_id, setup_logging
from ..observability.metrics import get_metrics_collector, setup_metrics
from ..observability.tracing import get_tracing_manager, setup_tracing
from ..rag.retriever import InMemoryRetriever
from .schemas import (
    ChatRequest,
    HealthResponse,
    PseudonymizationRequest,
    PseudonymizationResponse,
    ResourceDeletedResponse,
    ResourceRequest,
    ResourceResponse,
    WorkflowRequest,
)
from .stream import data_stream_response

logger = get_logger(__name__)

VERSION = "1.0.0"

INVALID_BODY_MESSAGES = {
    "/pseudonymization": "Invalid request body. Expected JSON with 'message' field",
}

# Global state
container: Container | None = None


def _reset_globals_for_tests() -> None:
    """Reset global state for test isolation."""
    global container
    container = None


def _current_container() -> Container:
    return container or get_container()


def get_chat_service() -> ChatService:
    return _current_container().get("chat_service")


def get_retriever() -> InMemoryRetriever:
    return _current_container().get("retriever")


def _new_trace_id() -> str:
    trace_id = uuid.uuid4().hex[:16]
    set_trace_id(trace_id)
    return trace_id


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# Application startup/shutdown lifecycle
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    global container

    settings = get_settings()
    setup_logging(settings.observability.log_level)
    logger.info("Starting Lexiflow API server...")

    seed, config_hash = ensure_deterministic_startup(settings)

    observability = settings.observability
    if observability.enable_tracing:
        setup_tracing(
            observability.service_name, observability.service_version, observability.otlp_endpoint
        )
    if observability.enable_metrics:
        setup_metrics(otel_metrics.get_meter(observability.service_name))

    container = get_container()

    app.state.startup_time = time.time()
    app.state.config_hash = config_hash

    logger.info("Lexiflow API server ready", seed=seed, config_hash=config_hash[:16])

    yield

    logger.info("Shutting down Lexiflow API server...")
    await container.cleanup()
    get_tracing_manager().shutdown()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Lexiflow",
        description="Chat service with multi-step workflow orchestration",
        version=VERSION,
        docs_url="/docs" if settings.api.enable_docs else None,
        redoc_url="/redoc" if settings.api.enable_docs else None,
        lifespan=lifespan,
    )

    if settings.api.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.api.cors_origins,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["content-type", "x-request-id"],
            expose_headers=["x-request-id", "x-vercel-ai-data-stream"],
        )

    @app.post("/chat")
    async def chat_endpoint(
        request: ChatRequest, service: ChatService = Depends(get_chat_service)
    ) -> Response:
        """Chat in default or workflow mode."""
        trace_id = _new_trace_id()
        logger.info(
            "Processing chat request",
            mode=request.mode,
            has_file=request.has_file,
            messages=len(request.messages),
        )

        try:
            mode = parse_mode(request.mode)
        except InvalidModeError as e:
            logger.error(str(e))
            return _error(400, "Invalid mode specified")

        try:
            parts = await service.start(
                mode,
                request.messages,
                has_file=request.has_file,
                data=request.data,
                resource_id=request.resource_id,
                trace_id=trace_id,
            )
        except Exception as e:
            logger.exception(f"Error processing the request: {e}")
            return _error(500, "Error processing the request")

        return data_stream_response(parts, trace_id)

    @app.post("/workflow")
    async def workflow_endpoint(
        request: WorkflowRequest, service: ChatService = Depends(get_chat_service)
    ) -> Response:
        """Run a workflow over plain text input."""
        trace_id = _new_trace_id()
        logger.info("Processing workflow request", input_chars=len(request.workflow_input))
        parts = service.run_plain_workflow(request.workflow_input, trace_id)
        return data_stream_response(parts, trace_id)

    @app.post("/resources", response_model=ResourceResponse)
    async def create_resource_endpoint(
        request: ResourceRequest, retriever: InMemoryRetriever = Depends(get_retriever)
    ) -> Response | ResourceResponse:
        """Chunk and embed document text under a resource id."""
        _new_trace_id()
        try:
            resource_id = await retriever.add_document(request.content, request.resource_id)
        except ValueError as e:
            logger.error(f"Rejected resource: {e}")
            return _error(400, str(e))
        except Exception as e:
            logger.exception(f"Error creating resource: {e}")
            return _error(500, "Error creating resource")

        return ResourceResponse(
            message="Resource successfully created and embedded.", resource_id=resource_id
        )

    @app.delete("/resources/{resource_id}", response_model=ResourceDeletedResponse)
    async def delete_resource_endpoint(
        resource_id: str, retriever: InMemoryRetriever = Depends(get_retriever)
    ) -> Response | ResourceDeletedResponse:
        """Delete every stored embedding of a resource."""
        _new_trace_id()
        try:
            removed = retriever.remove_resource(resource_id)
        except Exception as e:
            logger.exception(f"Error deleting embeddings: {e}", resource_id=resource_id)
            return JSONResponse(status_code=500, content={"message": "Internal server error."})

        return ResourceDeletedResponse(message=f"{removed} embeddings deleted.")

    @app.post("/pseudonymization", response_model=PseudonymizationResponse)
    async def pseudonymization_endpoint(
        request: PseudonymizationRequest, service: ChatService = Depends(get_chat_service)
    ) -> Response | PseudonymizationResponse:
        """Replace personal data in a message with category placeholders."""
        trace_id = _new_trace_id()
        try:
            anonymized = await service.pseudonymize(request.message, trace_id)
        except Exception as e:
            logger.exception(f"Error during pseudonymization: {e}")
            return _error(500, "Failed to process pseudonymization request")

        return PseudonymizationResponse(
            message=anonymized,
            original_length=len(request.message),
            anonymized_length=len(anonymized),
        )

    @app.get("/health", response_model=HealthResponse)
    async def health_check_endpoint() -> HealthResponse:
        """Health check endpoint."""
        clear_trace_id()
        startup_time = getattr(app.state, "startup_time", time.time())
        uptime = max(0.0, time.time() - startup_time)

        components = {"config": "healthy"}
        try:
            current = _current_container()
            components["container"] = "healthy"
            providers = current.get("providers")
            for name in providers.get_available_provider_types():
                endpoint = getattr(current.settings.providers, name)
                components[f"provider.{name}"] = "healthy" if endpoint.api_key else "no_api_key"
            if current.is_instantiated("retriever"):
                components["retriever"] = "healthy"
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            components["container"] = "error"

        components["tracing"] = (
            "initialized" if get_tracing_manager().is_initialized else "not_initialized"
        )

        healthy_states = {"healthy", "no_api_key", "initialized", "not_initialized"}
        return HealthResponse(
            status=(
                "healthy"
                if all(state in healthy_states for state in components.values())
                else "unhealthy"
            ),
            version=VERSION,
            config_hash=getattr(app.state, "config_hash", None) or get_config_hash() or "unknown",
            uptime_seconds=uptime,
            components=components,
            metrics=get_metrics_collector().get_summary(),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.error(f"Invalid request body at {request.url.path}: {exc.errors()}")
        return _error(400, INVALID_BODY_MESSAGES.get(request.url.path, "Invalid request body"))

    @app.exception_handler(Exception)
    async def global_exception_handler_endpoint(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler."""
        logger.error(f"Unhandled API exception at {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": (
                    str(exc)
                    if get_settings().environment == "development"
                    else "An unexpected error occurred"
                ),
            },
        )

    return app


# Create app instance
app = create_app()
