from __future__ import annotations

from functools import lru_cache

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.ajax import handle_ajax
from listings.index import ListingIndex, build_listing_index
from listings.loader import load_listings, listings_path
from settings.loader import get_settings
from settings.log_setup import setup_logging
from telemetry.singleton import get_store, reset_store

setup_logging()

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=4)
def _index(path: str) -> ListingIndex:
    return build_listing_index(load_listings(path))


def listing_index() -> ListingIndex:
    return _index(str(listings_path()))


@app.post("/wp-admin/admin-ajax.php")
async def admin_ajax(request: Request):
    form = await request.form()
    status, body = handle_ajax(
        dict(form),
        index=listing_index(),
        security=get_settings().endpoint.security,
    )
    return JSONResponse(body, status_code=status)


@app.get("/telemetry/summary")
def telemetry_summary(endpoint: str | None = None, outcome: str | None = None):
    store = get_store()
    if store is None:
        return []
    return store.summary(endpoint=endpoint, outcome=outcome)


@app.get("/telemetry/slowest")
def telemetry_slowest(endpoint: str | None = None, limit: int = 25):
    store = get_store()
    if store is None:
        return []
    return store.slowest(endpoint=endpoint, limit=limit)


@app.post("/telemetry/reset")
def telemetry_reset():
    reset_store()
    return {"ok": True}
