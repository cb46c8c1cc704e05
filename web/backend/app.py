import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config_manager import config
from core.exceptions import AxiomError
from core.logger import get_logger
from web.backend.routers import plan, projects, sync

logger = get_logger("api")


def create_app() -> FastAPI:
    app = FastAPI(title="Axiom API", version=config.APP_VERSION)

    raw_origins = os.getenv("AXIOM_ALLOWED_ORIGINS", "*")
    allow_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    allow_credentials = "*" not in allow_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AxiomError)
    async def axiom_error_handler(request: Request, exc: AxiomError) -> JSONResponse:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=500, content={"success": False, "error": exc.get_user_message()})

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "Axiom"}

    app.include_router(plan.router, prefix="/api/v1/plan", tags=["plan"])
    app.include_router(sync.router, prefix="/api/v1/sync", tags=["sync"])
    app.include_router(projects.router, prefix="/api/v1", tags=["projects"])

    @app.get("/")
    async def root():
        return {
            "message": "Axiom API is running",
            "docs": "/docs",
            "health": "/health",
        }

    logger.info("Axiom API created (CORS origins: %s)", ", ".join(allow_origins))
    return app


app = create_app()
