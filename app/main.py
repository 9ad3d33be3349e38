"""
Main FastAPI application
Quiz generation from learning content, hybrid grading, mastery tracking and
review recommendations
"""
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import logging
import time

from app.config import settings
from app.database import SessionLocal, init_db
from app.exceptions import AssessmentError
from app.api import quizzes, recommendations, sources
from app.utils.cache import cache_service

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def error_body(error: str, message, status_code: int, **extra) -> dict:
    body = {"error": error, "message": message, "status_code": status_code}
    body.update(extra)
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as a JSON error body"""

    @app.exception_handler(AssessmentError)
    async def assessment_error_handler(request: Request, exc: AssessmentError):
        log = logger.error if exc.status_code >= 500 else logger.info
        log(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.error_code, exc.message, exc.status_code),
        )

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        # Rate limiter details are already error bodies
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body("http_error", exc.detail, exc.status_code),
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again later.",
                500,
                detail=str(exc) if settings.DEBUG else None,
            ),
        )


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Generates quizzes from documents, videos and courses, grades attempts "
                    "and turns weak topics into review recommendations",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing"""
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Duration: {time.perf_counter() - started:.3f}s"
        )
        return response

    register_exception_handlers(app)

    app.include_router(sources.router)
    app.include_router(quizzes.router)
    app.include_router(quizzes.attempts_router)
    app.include_router(recommendations.router)

    @app.get("/health")
    async def health_check():
        """Service status with database and cache reachability"""
        database = "ok"
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning(f"Health check database failure: {str(e)}")
            database = "unavailable"
        finally:
            db.close()

        return {
            "status": "healthy" if database == "ok" else "degraded",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "database": database,
            "cache": "ok" if cache_service.enabled else "disabled",
            "timestamp": time.time()
        }

    @app.get("/")
    async def root():
        return {
            "message": "Assessment Pipeline API",
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health"
        }

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
        try:
            init_db()
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {str(e)}")
            raise
        logger.info("Database initialized, application startup complete")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down application")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
