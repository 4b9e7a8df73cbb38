import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from nagarsathi.core import config
from nagarsathi.core.errors import register_exception_handlers
from nagarsathi.routes.admin import router as admin_router
from nagarsathi.routes.comments import router as comments_router
from nagarsathi.routes.geocode import router as geocode_router
from nagarsathi.routes.images import router as images_router
from nagarsathi.routes.issues import router as issues_router
from nagarsathi.routes.users import router as users_router
from nagarsathi.services.clerk_service import ClerkClient
from nagarsathi.services.geocode_service import GeocodeService
from nagarsathi.services.mongodb_service import close_db, init_db
from nagarsathi.utils.timing_middleware import TimingMiddleware, register_command_logger

# --- LOGGING SETUP ---
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


# --- LIFESPAN CONTEXT MANAGER ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Starting NagarSathi API...")
    register_command_logger()

    if await init_db():
        logger.info("✅ MongoDB service initialized")

    # Outbound clients are built once here and handed to requests via app.state
    app.state.clerk = ClerkClient.from_config()
    app.state.geocoder = GeocodeService()
    await app.state.clerk.start()
    await app.state.geocoder.start()
    logger.info("✅ All services initialized - Server ready!")

    yield

    logger.info("🔄 Shutting down...")
    await app.state.clerk.close()
    await app.state.geocoder.close()
    await close_db()
    logger.info("✅ All services closed gracefully")


def create_app() -> FastAPI:
    app = FastAPI(title="NagarSathi API", version="1.0.0", lifespan=lifespan)

    # --- MIDDLEWARE ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.CLIENT_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(TimingMiddleware)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"📥 {request.method} {request.url.path}")
        return await call_next(request)

    register_exception_handlers(app)

    # --- ROUTER MOUNTING ---
    app.include_router(users_router, prefix="/api")
    app.include_router(issues_router, prefix="/api")
    app.include_router(comments_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")
    app.include_router(geocode_router, prefix="/api")
    app.include_router(images_router, prefix="/api")

    # --- HEALTH ---
    @app.get("/api/health")
    async def health():
        return {
            "success": True,
            "message": "NagarSathi API is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": config.ENV,
        }

    return app


app = create_app()


# --- MAIN ---
def run():
    logger.info(f"Server starting on port {config.PORT}")
    uvicorn.run("nagarsathi.main:app", host="0.0.0.0", port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
