import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.cache import cache
from app.config import settings
from app.error_handlers import register_error_handlers
from app.middleware import PrincipalMiddleware, TimingMiddleware
from app.routers import articles, auth, categories, comments, users

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Content API (env=%s)", settings.APP_ENV)
    try:
        await cache.connect()
    except Exception as exc:
        # Revocation is optional; the data layer works without Redis.
        logger.warning("Revocation cache unavailable: %s", exc)
    yield
    await cache.disconnect()


app = FastAPI(
    title="Content API",
    description="Users, articles, categories and comments with cascading soft delete",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(PrincipalMiddleware)
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Routers
app.include_router(users.router)
app.include_router(articles.router)
app.include_router(categories.router)
app.include_router(comments.router)
app.include_router(auth.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0", "revocation_cache": cache.stats}
