# cartmerge/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
import uvicorn

from cartmerge.api.routers import carts, health
from cartmerge.data import models  # noqa: F401  registers tables in Base.metadata
from cartmerge.data.database import Base, engine
from cartmerge.utils.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database tables ready: {sorted(Base.metadata.tables)}")
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="Cart Merge Service",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(carts.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
