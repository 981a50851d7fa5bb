import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse

from art import router as art_router
from core import kv, settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    settings.configure_logging()
    # Initialize the store (and DB pool, if any) once per process.
    await kv.init_store()
    try:
        yield
    finally:
        await kv.close_store()


app = FastAPI(lifespan=lifespan)

# Allow local frontend dev server to call this API from the browser.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(art_router.router, tags=["art"])


def _page(filename: str):
    path = Path(settings.static_dir()) / filename
    try:
        return HTMLResponse(path.read_text(encoding="utf-8"))
    except OSError:
        logger.warning("page_missing path=%s", path)
        return PlainTextResponse(f"{filename} not found", status_code=404)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/")
def index():
    return _page("index.html")


@app.get("/parse")
def parse_page():
    return _page("parse.html")
