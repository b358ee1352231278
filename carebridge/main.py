from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from carebridge.core.broadcast import RedisBroadcaster
from carebridge.core.config import settings
from carebridge.core.errors import AppError, app_error_handler
from carebridge.core.logger import logger
from carebridge.core.redis import RedisClient
from carebridge.db.session import init_db
from carebridge.middleware.log_middleware import LogMiddleware

@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        await init_db()
        logger.info("Database tables ensured")

    broadcaster = RedisBroadcaster(RedisClient(settings.REDIS_URL))
    app.state.broadcaster = broadcaster
    try:
        yield
    finally:
        await broadcaster.close()

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(LogMiddleware)

app.add_exception_handler(AppError, app_error_handler)

@app.get("/")
async def root():
    return {"message": "Welcome to CareBridge API"}

from carebridge.api.api import api_router
app.include_router(api_router, prefix=settings.API_V1_STR)
