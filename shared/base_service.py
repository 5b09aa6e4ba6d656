"""
Base service class for Eventboard Listings Layer services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Dict, Optional, Tuple
from prometheus_client import CONTENT_TYPE_LATEST
import time
import os

from shared.config import ServiceConfig, get_config
from shared.logging import configure_logging, get_logger, set_request_id, set_actor, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import ListingsException, ValidationError

# Routes excluded from per-request info logs
_QUIET_PATHS = ("/health", "/metrics")


def route_label(request: Request) -> str:
    """Metric label for a request: the route template, not the raw path."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class BaseService:
    """Base service class with common functionality.

    Subclasses override ``start``/``stop`` for their resources and
    ``_check_dependencies`` for health reporting. A dependency listed in
    ``required_dependencies`` that reports ``"error"`` makes the service
    unhealthy (503); any other failing dependency only degrades it.
    """

    required_dependencies: Tuple[str, ...] = ()

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level, json_logs=self.config.env != "local")

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_exception_handlers()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with a start/stop lifespan."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.start()
            try:
                yield
            finally:
                await self.stop()

        local = self.config.env == "local"
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Eventboard Listings Layer - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if local else None,
            redoc_url="/redoc" if local else None,
            lifespan=lifespan,
        )

    def _setup_middleware(self):
        """Set up CORS and request context middleware."""

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else [],
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "DELETE"],
            allow_headers=["*"],
            expose_headers=["X-Request-ID"],
        )

        @self.app.middleware("http")
        async def request_context(request: Request, call_next):
            started = time.time()
            request_id = set_request_id(request.headers.get("x-request-id"))
            set_actor(request.headers.get("x-actor-id"))

            try:
                response = await call_next(request)
                duration = time.time() - started
                endpoint = route_label(request)

                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=endpoint,
                    status_code=response.status_code,
                    duration=duration
                )

                log = self.logger.debug if request.url.path in _QUIET_PATHS else self.logger.info
                log(
                    "HTTP request",
                    method=request.method,
                    endpoint=endpoint,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2)
                )
            finally:
                clear_context()

            response.headers["X-Request-ID"] = request_id
            return response

    def _setup_exception_handlers(self):
        """Map exceptions to the shared error response shape."""

        @self.app.exception_handler(ListingsException)
        async def listings_exception_handler(request: Request, exc: ListingsException):
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log(
                "Request failed",
                code=exc.code,
                message=exc.message,
                details=exc.details,
                path=request.url.path
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump()
            )

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            error = ValidationError(
                "Invalid request",
                {"errors": [{"loc": list(item["loc"]), "msg": item["msg"]} for item in exc.errors()]}
            )
            return await listings_exception_handler(request, error)

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={
                    "trace_id": None,
                    "code": "INTERNAL_ERROR",
                    "message": "Internal server error",
                    "details": {}
                }
            )

    def _setup_routes(self):
        """Set up health and metrics routes."""

        @self.app.get("/health")
        async def health_check():
            """Report service status and per-dependency health."""
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)}
                )

            failing = [name for name, state in dependencies.items() if state == "error"]
            if any(name in self.required_dependencies for name in failing):
                status = "error"
            elif failing:
                status = "degraded"
            else:
                status = "ok"
            self.metrics.record_health_check(status)

            body = {
                "service": self.service_name,
                "status": status,
                "uptime_seconds": self._get_uptime(),
                "dependencies": dependencies,
                "version": "1.0.0",
                "commit": os.getenv("GIT_COMMIT", "unknown")
            }
            return JSONResponse(status_code=503 if status == "error" else 200, content=body)

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=self.metrics.render(), media_type=CONTENT_TYPE_LATEST)

    async def start(self):
        """Start service components. Override in subclasses."""

    async def stop(self):
        """Stop service components. Override in subclasses."""

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
