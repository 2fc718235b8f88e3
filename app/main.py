# app/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
import uvicorn

from app.api import include_routers
from app.data.database import init_db
from app.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Initializing database")
    try:
        init_db()
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise
    yield


def create_app(lifespan=lifespan) -> FastAPI:
    app = FastAPI(
        title="Checkout Service",
        version="1.0.0",
        lifespan=lifespan,
    )
    return include_routers(app)


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
