"""
Proof-of-Existence Registry - HTTP Host

Main application entry point.

Register that you hold some bytes, prove later that you were first,
revoke the proof, or hand it to someone else.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api.routes import router, status_for
from .api.shared_runtime import get_runtime
from .core import RegistryError
from .observability import (
    RequestContextMiddleware,
    check_health,
    get_logger,
    get_metrics,
    setup_logging,
)


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    runtime = get_runtime()
    app.state.runtime = runtime

    logger.info(
        "Application startup complete",
        claim_count=runtime.store.count(),
        store_type=type(runtime.store).__name__,
        max_claim_length=runtime.registry.max_claim_length,
    )

    yield

    logger.info("Application shutdown complete")


async def registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
    """Rejections are expected outcomes: report the code, not a stack trace."""
    return JSONResponse(
        status_code=status_for(exc),
        content={"error": exc.code, "detail": str(exc)},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Proof-of-Existence Registry",
        description="""
## Proof-of-Existence Registry

Register a claim (any byte sequence) to your identity at the current
block. A live claim cannot be registered again by anyone, including you.

### Claim Lifecycle

```
Absent --create--> Owned --revoke--> Absent
                   Owned --transfer--> Owned
```

### Errors

| Code | Status |
|------|--------|
| ClaimTooLong | 422 |
| ProofAlreadyExist | 409 |
| ClaimNotExist | 404 |
| NotClaimOwner | 403 |
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(RegistryError, registry_error_handler)
    app.include_router(router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health():
        """Basic liveness check."""
        return {"status": "healthy", "service": "poe"}

    @app.get("/health/detailed", tags=["System"])
    def health_detailed(request: Request):
        """
        Detailed health check.

        Returns 200 if healthy, 503 if unhealthy.
        """
        runtime = request.app.state.runtime
        health_status = check_health(runtime=runtime, store=runtime.store)

        return JSONResponse(
            status_code=200 if health_status.healthy else 503,
            content={
                "status": "healthy" if health_status.healthy else "unhealthy",
                "checks": health_status.checks,
                "duration_ms": health_status.duration_ms,
            },
        )

    @app.get("/metrics", tags=["System"])
    async def metrics():
        """Counters, rejections and dispatch latency percentiles."""
        return get_metrics().get_summary()

    return app


setup_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
