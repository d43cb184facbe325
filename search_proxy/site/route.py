import logging
import os

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, PlainTextResponse

from search_proxy.rate_limit import enforce_rate_limit
from search_proxy.vars import PUBLIC_DIR

router = APIRouter(dependencies=[Depends(enforce_rate_limit)])
logger = logging.getLogger("uvicorn.error")


def resolve_public_file(relative_path: str):
    """Absolute path of a file inside the public directory, or None."""
    public_dir = os.path.realpath(PUBLIC_DIR)
    candidate = os.path.realpath(os.path.join(public_dir, relative_path.lstrip("/")))
    if os.path.commonpath([public_dir, candidate]) != public_dir:
        logger.warning(f"[Site] Refusing path outside public dir: {relative_path}")
        return None
    if not os.path.isfile(candidate):
        return None
    return candidate


def serve_public_file(relative_path: str):
    path = resolve_public_file(relative_path)
    if path is None:
        return PlainTextResponse("Not found", status_code=404)
    return FileResponse(path, headers={"cache-control": "no-store"})


@router.get("/healthz", response_class=PlainTextResponse)
async def healthz():
    return "ok"


@router.get("/")
@router.get("/index.html")
async def index():
    return serve_public_file("index.html")


# Registered last: anything no other route claims is looked up in the public dir
@router.get("/{path:path}")
async def public_file(path: str):
    return serve_public_file(path)
