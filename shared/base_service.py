"""
Base service class for Todo service applications.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry

from shared.config import BaseConfig
from shared.errors import ErrorResponse, TodoServiceException
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from shared.metrics import get_metrics_collector

REQUEST_ID_HEADER = "X-Request-ID"


def format_validation_errors(exc: RequestValidationError) -> str:
    """Flatten pydantic error entries into a single readable string."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


class BaseService:
    """Base service class with common functionality.

    Subclasses override ``start``/``stop`` to manage their external
    resources; both run inside the FastAPI lifespan so shutdown happens only
    after the server has drained in-flight requests.
    """

    version = "1.0.0"

    def __init__(self, service_name: str, config: BaseConfig, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.config = config

        configure_logging(service_name, config.log_level, config.log_format)
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name, registry)

        # Create FastAPI app
        self.app = self._create_app()

        if self.config.enable_tracing:
            from shared.tracing import configure_tracing

            configure_tracing(service_name, self.app, self.config.otel_exporter, self.config.env)

        self._setup_middleware()
        self._setup_routes()
        self._setup_exception_handlers()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"{self.service_name.title()} CRUD service",
            version=self.version,
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=self._lifespan,
        )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        try:
            # stop() also runs after a partial start
            await self.start()
            self.logger.info("Service started", service=self.service_name)
            yield
        finally:
            await self.stop()
            self.logger.info("Service stopped", service=self.service_name)

    async def start(self):
        """Acquire external resources. Override in subclasses."""

    async def stop(self):
        """Release external resources. Override in subclasses; must tolerate a partial start."""

    def _setup_middleware(self):
        """Set up middleware."""

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def request_context(request: Request, call_next):
            request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
            start_time = time.perf_counter()

            try:
                response = await asyncio.wait_for(call_next(request), timeout=self.config.request_timeout)
            except asyncio.TimeoutError:
                self.logger.error(
                    "Request timed out",
                    method=request.method,
                    path=request.url.path,
                    timeout_seconds=self.config.request_timeout
                )
                self.metrics.record_error("timeout")
                response = JSONResponse(
                    status_code=504,
                    content=ErrorResponse(error="Request timed out").to_content()
                )

            duration = time.perf_counter() - start_time

            # Label by route template to keep cardinality bounded
            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)

            self.metrics.record_http_request(
                method=request.method,
                endpoint=endpoint,
                status_code=response.status_code,
                duration=duration
            )

            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )

            response.headers[REQUEST_ID_HEADER] = request_id
            clear_context()
            return response

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health", tags=["health"])
        async def health_check():
            """Liveness probe."""
            return {"status": "healthy"}

        @self.app.get("/ready", tags=["health"])
        async def ready_check():
            """Readiness probe."""
            return {"status": "ready"}

        if self.config.metrics_enabled:
            @self.app.get(self.config.metrics_path, include_in_schema=False)
            async def metrics_endpoint():
                """Prometheus metrics endpoint."""
                return Response(
                    content=self.metrics.render(),
                    media_type=self.metrics.content_type
                )

    def _setup_exception_handlers(self):
        """Map the error taxonomy onto HTTP responses."""

        @self.app.exception_handler(TodoServiceException)
        async def service_exception_handler(request: Request, exc: TodoServiceException):
            if exc.status_code >= 500:
                self.logger.error("Service error", message=exc.message, details=exc.details)
                self.metrics.record_error(type(exc).__name__)
            else:
                self.logger.warning(
                    "Client error",
                    status_code=exc.status_code,
                    message=exc.message,
                    details=exc.details
                )
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().to_content()
            )

        @self.app.exception_handler(RequestValidationError)
        async def validation_exception_handler(request: Request, exc: RequestValidationError):
            details = format_validation_errors(exc)
            self.logger.warning("Validation error", path=request.url.path, details=details)
            return JSONResponse(
                status_code=400,
                content=ErrorResponse(error="Validation failed", details=details).to_content()
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("unhandled")
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(error="Internal server error").to_content()
            )

    def run(self):
        """Run the service."""
        import uvicorn

        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level,
            timeout_graceful_shutdown=int(self.config.shutdown_timeout),
        )
