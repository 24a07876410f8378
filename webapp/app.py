"""FastAPI app for post refresh runs, progress polling and admin previews."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, HTTPException, Query, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from utils.exceptions import (
    ArticleNotFoundError,
    ConfigLoadError,
    ConfigurationError,
    CooldownActiveError,
    RunInProgressError,
)
from webapp.runtime import get_coordinator, get_preview_builder


logger = logging.getLogger(__name__)

app = FastAPI(title="Post Generation API")


def _error(status_code: int, code: str, message: str, **extra: Any) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message, **extra})


def _require_owner(owner_key: Optional[str]) -> str:
    text = str(owner_key or "").strip()
    if not text:
        raise _error(401, "UNAUTHENTICATED", "X-Owner-Key header is required")
    return text


def _require_admin(owner_key: Optional[str], role: Optional[str]) -> str:
    owner = _require_owner(owner_key)
    if str(role or "").strip().lower() != "admin":
        raise _error(403, "FORBIDDEN", "Admin role required")
    return owner


@app.get("/health")
def health() -> Dict[str, Any]:
    return {"ok": True, "ts": datetime.now(timezone.utc).isoformat(timespec="seconds")}


@app.post("/posts/refresh")
async def refresh_posts(owner_key: Optional[str] = Header(default=None, alias="X-Owner-Key")) -> Dict[str, Any]:
    owner = _require_owner(owner_key)
    coordinator = get_coordinator()
    try:
        outcome = await coordinator.trigger(owner)
    except CooldownActiveError as exc:
        cooldown_outcome = await coordinator.build_cooldown_outcome(owner, exc.seconds_remaining)
        raise _error(
            429,
            "COOLDOWN_ACTIVE",
            exc.message,
            seconds_remaining=exc.seconds_remaining,
            outcome=cooldown_outcome.model_dump(mode="json"),
        ) from exc
    except RunInProgressError as exc:
        raise _error(409, "RUN_IN_PROGRESS", exc.message) from exc

    payload = outcome.model_dump(mode="json")
    payload["articles_created"] = outcome.articles_created
    return payload


@app.get("/posts/refresh-status")
def refresh_status(owner_key: Optional[str] = Header(default=None, alias="X-Owner-Key")) -> Dict[str, Any]:
    owner = _require_owner(owner_key)
    status = get_coordinator().get_progress(owner)
    return {"owner_key": owner, "status": status.model_dump(mode="json") if status else None}


@app.get("/posts/preview")
async def preview_post(
    news_id: Optional[int] = Query(default=None, alias="newsId"),
    owner_key: Optional[str] = Header(default=None, alias="X-Owner-Key"),
    role: Optional[str] = Header(default=None, alias="X-Owner-Role"),
) -> Dict[str, Any]:
    owner = _require_admin(owner_key, role)
    try:
        preview = await get_preview_builder().build_preview(owner, news_id)
    except ArticleNotFoundError as exc:
        raise _error(404, "NEWS_NOT_FOUND", exc.message) from exc
    except ConfigLoadError as exc:
        raise _error(503, "CONFIG_UNAVAILABLE", exc.message) from exc
    return preview.model_dump(mode="json")


@app.get("/posts/preview/raw")
async def preview_raw(
    news_id: Optional[int] = Query(default=None, alias="newsId"),
    owner_key: Optional[str] = Header(default=None, alias="X-Owner-Key"),
    role: Optional[str] = Header(default=None, alias="X-Owner-Role"),
) -> Response:
    owner = _require_admin(owner_key, role)
    try:
        result = await get_preview_builder().probe_raw(owner, news_id)
    except ArticleNotFoundError as exc:
        raise _error(404, "NEWS_NOT_FOUND", exc.message) from exc
    except (ConfigLoadError, ConfigurationError) as exc:
        raise _error(503, "CONFIG_UNAVAILABLE", exc.message) from exc

    if result.body is None:
        return Response(status_code=result.status_code)
    if isinstance(result.body, str):
        return PlainTextResponse(result.body, status_code=result.status_code)
    return JSONResponse(result.body, status_code=result.status_code)
