"""
HTTP adapter for the staging core.

Routes:
- `POST /api/stage`: decode the data URL, build the instruction (caller prompt
  or composed from style/room/updates), run the pipeline, return the primary
  image with every engine outcome and the post-operation balance.
- `POST /api/analyze`: classify a photo into a canonical room label.
- `GET /api/credits`: current balance for the caller.
- `GET /api/generations`: the caller's recent staging attempts.
- `GET /api/packages`: purchasable credit packages.
- `GET /api/health`: liveness.

The caller is identified by the `X-Owner-Id` header; authenticating that
identity happens upstream.

Status codes:
- 400 for malformed images, invalid prompts, unknown engines and a missing
  owner header.
- 402 when the owner cannot pay for an attempt.
- 502 when every engine failed (the body still lists outcomes and credits)
  and when the vision provider fails (`roomType` falls back to "Other").
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .classify.rooms import DEFAULT_ROOM, parse_room
from .engines.interfaces import EngineMode, EngineOutcome, Failure, GenerationRequest
from .errors import InsufficientCreditError, StagingError, VisionError
from .factory import StagingContainer
from .image import decode, encode
from .packages import PACKAGES
from .pipeline import StagingResult
from .prompting import DEFAULT_STYLE, StagingOptions, compose_prompt

logger = logging.getLogger(__name__)

OWNER_HEADER = "X-Owner-Id"

_STATUS_BY_CODE = {
    "malformed_image": 400,
    "invalid_prompt": 400,
    "unknown_engine": 400,
    "missing_owner": 400,
    "unknown_package": 400,
    "insufficient_credit": 402,
    "vision_error": 502,
}


class MissingOwnerError(StagingError):
    code = "missing_owner"


# ============================================================
# Request / response schema
# ============================================================

class StageRequest(BaseModel):
    image: str
    prompt: Optional[str] = None
    mode: Optional[str] = None
    style: Optional[str] = None
    roomType: Optional[str] = None
    updates: Dict[str, str] = Field(default_factory=dict)


class AnalyzeRequest(BaseModel):
    image: str


def _outcome_json(outcome: EngineOutcome) -> dict:
    failure = outcome.result if isinstance(outcome.result, Failure) else None
    return {
        "engine": outcome.engine_id,
        "success": outcome.succeeded,
        "error": failure.reason if failure else None,
        "code": failure.code if failure else None,
        "latencyMs": round(outcome.latency_ms, 1),
    }


def _stage_json(result: StagingResult) -> dict:
    return {
        "success": result.succeeded,
        "generatedImage": encode(result.primary) if result.primary is not None else None,
        "engine": result.primary_engine,
        "outcomes": [_outcome_json(outcome) for outcome in result.outcomes],
        "credits": result.new_balance,
        "generationId": result.generation_id,
    }


def _error_response(exc: StagingError) -> JSONResponse:
    body = {"error": str(exc) or exc.code, "code": exc.code}
    if isinstance(exc, InsufficientCreditError):
        body["credits"] = exc.balance
    return JSONResponse(status_code=_STATUS_BY_CODE.get(exc.code, 500), content=body)


def _build_request(body: StageRequest, default_mode: EngineMode) -> GenerationRequest:
    image = decode(body.image)
    mode = EngineMode.parse(body.mode, default=default_mode)
    if body.prompt is not None:
        prompt = body.prompt
    else:
        prompt = compose_prompt(
            StagingOptions(
                style=body.style or DEFAULT_STYLE,
                room=parse_room(body.roomType),
                updates=body.updates,
            )
        )
    return GenerationRequest(image=image, prompt=prompt, mode=mode)


# ============================================================
# Application
# ============================================================

def create_app(container: StagingContainer) -> FastAPI:
    app = FastAPI(title="StageSmart")
    app.state.container = container

    @app.exception_handler(StagingError)
    async def _staging_error(request: Request, exc: StagingError) -> JSONResponse:
        logger.info("%s %s rejected code=%s: %s", request.method, request.url.path, exc.code, exc)
        return _error_response(exc)

    def owner_id(x_owner_id: Optional[str] = Header(default=None, alias=OWNER_HEADER)) -> str:
        if x_owner_id is None or not x_owner_id.strip():
            raise MissingOwnerError(f"Missing {OWNER_HEADER} header")
        return x_owner_id.strip()

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/api/packages")
    def packages() -> dict:
        return {"packages": [package.as_dict() for package in PACKAGES.values()]}

    @app.get("/api/credits")
    def credits(owner: str = Depends(owner_id)) -> dict:
        return {"ownerId": owner, "credits": container.ledger.check_balance(owner)}

    @app.get("/api/generations")
    def generations(owner: str = Depends(owner_id), limit: int = 20) -> dict:
        records = container.history.list_for_owner(owner, limit=max(1, min(limit, 100)))
        return {
            "generations": [
                {
                    "generationId": record.generation_id,
                    "status": record.status,
                    "mode": record.mode,
                    "engine": record.primary_engine,
                    "errors": record.engine_errors or {},
                    "createdAt": record.created_at,
                }
                for record in records
            ]
        }

    @app.post("/api/stage")
    def stage(body: StageRequest, owner: str = Depends(owner_id)):
        request = _build_request(body, container.default_mode)
        result = container.pipeline.stage(owner, request)
        payload = _stage_json(result)
        if not result.succeeded:
            payload["error"] = "All engines failed"
            payload["code"] = "all_engines_failed"
            return JSONResponse(status_code=502, content=payload)
        return payload

    @app.post("/api/analyze")
    def analyze(body: AnalyzeRequest):
        image = decode(body.image)
        try:
            label = container.pipeline.analyze(image)
        except VisionError as exc:
            logger.warning("room analysis failed: %s", exc)
            return JSONResponse(
                status_code=502,
                content={"roomType": DEFAULT_ROOM.value, "error": str(exc), "code": exc.code},
            )
        return {"roomType": label.value}

    return app


__all__ = ["OWNER_HEADER", "MissingOwnerError", "AnalyzeRequest", "StageRequest", "create_app"]
