"""FastAPI application exposing smilebin over HTTP."""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load .env file before other imports
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import get_session, router

LOG = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Only close a session that a request actually opened
    if get_session.cache_info().currsize:
        LOG.info("Closing annotation store connection")
        await get_session().close()
        get_session.cache_clear()


app = FastAPI(
    title="Smilebin",
    description="Anchor smiles to lines of code and keep them in place as history moves on",
    version="0.1.0",
    lifespan=lifespan,
)

# Editor integrations call in from their own origins and send no cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

app.include_router(router)


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the web server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)
