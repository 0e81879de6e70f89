"""FastAPI receiver for Source item webhooks."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from shelfsync.jobs.items import process_item_events
from shelfsync.models import Item

logger = logging.getLogger(__name__)

app = FastAPI(title="shelfsync")


# Runs in the threadpool; enqueueing blocks on the broker.
@app.post("/webhooks/items", status_code=202)
def item_updated(payload: dict[str, Any] = Body(...)) -> JSONResponse:
    try:
        item = Item.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False)) from exc
    try:
        process_item_events.delay([payload])
    except Exception:
        # The next scheduled sync picks the change up.
        logger.warning("Failed to enqueue item #%s", item.sku, exc_info=True)
        raise HTTPException(status_code=503, detail="Queue unavailable")
    return JSONResponse({"status": "queued", "sku": item.sku}, status_code=202)


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}
