from fastapi import FastAPI, status
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from app.core.config import settings
from app.core.logging import configure_logging
from app.core.errors import register_exception_handlers
from app.api.v1.routes import router as api_v1_router
from app.api.v1.routes import webhooks as webhooks_v1
from app.db.base import init_db
from app.db.session import SessionLocal
from datetime import datetime, timezone
import logging

# Configure logging
configure_logging()
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Reconciliação de pagamentos Stripe e ativação de assinaturas",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

register_exception_handlers(app)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    logger.info("Initializing database...")
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

# max_age=3600 cacheia respostas de preflight por 1 hora
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

app.include_router(api_v1_router, prefix=settings.API_V1_STR)

# Rota alternativa do webhook (sem prefixo /api/v1): /webhooks/payments
app.include_router(webhooks_v1.router, prefix="/webhooks", tags=["webhooks"])


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": f"{settings.PROJECT_NAME} API",
        "version": "1.0.0",
        "docs": "/docs",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
def health_check():
    """
    Health check endpoint with database and service status.
    """
    health_status = {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "unknown",
        "redis": "not_configured"
    }

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            health_status["database"] = "connected"
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            health_status["database"] = "disconnected"
            health_status["status"] = "unhealthy"
        finally:
            db.close()
    except Exception as e:
        logger.error(f"Database session creation failed: {e}")
        health_status["database"] = "error"
        health_status["status"] = "unhealthy"

    # Redis só afeta o envio de emails (broker do Celery), não a saúde da API
    if settings.REDIS_URL:
        import redis
        try:
            redis_client = redis.from_url(settings.REDIS_URL, socket_timeout=2)
            redis_client.ping()
            health_status["redis"] = "connected"
        except redis.exceptions.AuthenticationError:
            logger.warning("Redis health check: Autenticação necessária (verifique REDIS_URL)")
            health_status["redis"] = "auth_required"
        except Exception as e:
            logger.warning(f"Redis health check failed: {str(e)}")
            health_status["redis"] = "disconnected"

    status_code = status.HTTP_200_OK if health_status["status"] == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(
        content=health_status,
        status_code=status_code
    )
