"""Main FastAPI application for the photography portfolio."""

import contextlib
from collections.abc import AsyncGenerator

import fastapi
import uvicorn

import common.app

from . import database, routes


@contextlib.asynccontextmanager
async def lifespan(app: fastapi.FastAPI) -> AsyncGenerator[None, None]:
    """Initialize the database on startup."""
    database.create_db_and_tables()
    yield


app = common.app.create_app(
    'Photography Portfolio', app_logger='portfolio', lifespan=lifespan
)

app.include_router(routes.admin_router)
app.include_router(routes.public_router)


if __name__ == '__main__':
    uvicorn.run(app, host='0.0.0.0', port=8000)
