import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from customer_service.auth.jwt import get_token_codec
from customer_service.auth.middleware import AccessPolicyMiddleware, AuthenticationMiddleware
from customer_service.base_microservice import BaseMicroservice, engine, init_models
from customer_service.customers.router import router as customers_router
from customer_service.exceptions import register_exception_handlers

# Create shared base microservice instance
base_service = BaseMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    base_service.log_event("service.startup", {"service": "main"})
    try:
        await init_models()
    except Exception as e:
        base_service.log_error(e, context="Customer service startup")
        raise
    base_service.logger.info("Customer service initialized")

    yield

    base_service.log_event("service.shutdown", {"service": "main"})
    await engine.dispose()


def create_app() -> FastAPI:
    """Build the application with auth middleware and error handling installed."""
    app = FastAPI(
        title="Customer Service API",
        description="Customer records with JWT authentication and role-based access control",
        version="0.1.0",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Last added runs first: CORS, authentication, then the route-level policy
    app.add_middleware(AccessPolicyMiddleware)
    app.add_middleware(AuthenticationMiddleware, codec=get_token_codec())
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(customers_router, prefix="/customers", tags=["customers"])

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint returning API information."""
        return {
            "name": "Customer Service API",
            "version": "0.1.0",
            "services": ["customers"],
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Overall system health check."""
        return {
            "status": "ok",
            "services": {
                "customers": "online"
            }
        }

    return app


app = create_app()

# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("customer_service.main:app", host="0.0.0.0", port=8081, reload=True)
