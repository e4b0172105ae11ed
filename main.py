"""
Artifact Policy Gate

Single HTTP entry point for artifact policy checks. A request carrying an
authToken is evaluated in the background and its verdict is posted to the
pipeline's check-runs endpoint; any other request is evaluated inline and
answered with the verdict.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import ValidationError

from policy_gate.cancellation import EvaluationCancelled
from policy_gate.config import GateConfig, load_object
from policy_gate.engine import PolicyEngineError, load_policy_engine
from policy_gate.models import EvaluationRequest, EvaluationResponse, InvalidEvaluationRequest
from policy_gate.orchestrator import EvaluationOrchestrator
from policy_gate.workers import WorkerPoolSaturated

logger = logging.getLogger("policy_gate.gateway")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_orchestrator(config: Optional[GateConfig] = None) -> EvaluationOrchestrator:
    """Build the orchestrator from configuration (engine + timeline factory)."""
    config = config or GateConfig.from_env()
    timeline_factory = (
        load_object(config.timeline_factory_path) if config.timeline_factory_path else None
    )
    return EvaluationOrchestrator(
        engine=load_policy_engine(config.engine_path),
        config=config,
        timeline_factory=timeline_factory,
    )


def _parse_request(raw: bytes) -> EvaluationRequest:
    try:
        body = json.loads(raw or b"null")
        if not isinstance(body, dict):
            raise ValueError(f"expected a JSON object, got {type(body).__name__}")
        return EvaluationRequest.model_validate(body)
    except (ValueError, ValidationError) as exc:
        raise InvalidEvaluationRequest(
            f"Request body is invalid. Encountered error : {exc}"
        ) from exc


def create_app(orchestrator: EvaluationOrchestrator) -> FastAPI:

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        orchestrator.shutdown(wait=True)

    app = FastAPI(
        title="Artifact Policy Gate",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    # -----------------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------------

    @app.get("/health")
    def health():
        pool = orchestrator.pool
        return {
            "status": "operational",
            "service": "artifact-policy-gate",
            "evaluations_in_flight": pool.in_flight,
            "capacity": pool.capacity,
        }

    @app.post("/evaluate")
    async def evaluate(request: Request):
        """
        Evaluate a policy against an artifact's image provenance.

        Flow:
          1. Parse and validate the body (400 on any client error).
          2. No authToken: run the engine inline, return 200 with the verdict.
          3. authToken present: schedule a background evaluation, return 204.

        A synchronous evaluation that outlives its deadline answers 504.
        """
        raw = await request.body()
        try:
            parsed = _parse_request(raw)
        except InvalidEvaluationRequest as exc:
            return PlainTextResponse(str(exc), status_code=400)

        # The engine is blocking; keep it off the event loop.
        try:
            result = await run_in_threadpool(orchestrator.evaluate, parsed)
        except InvalidEvaluationRequest as exc:
            return PlainTextResponse(str(exc), status_code=400)
        except PolicyEngineError as exc:
            logger.error("Synchronous evaluation failed: %s", exc)
            return JSONResponse(status_code=500, content={"error": str(exc)})
        except EvaluationCancelled as exc:
            logger.error("Synchronous evaluation timed out: %s", exc)
            return JSONResponse(status_code=504, content={"error": str(exc)})
        except WorkerPoolSaturated as exc:
            logger.warning("Rejecting asynchronous evaluation: %s", exc)
            return JSONResponse(status_code=503, content={"error": str(exc)})

        if isinstance(result, EvaluationResponse):
            return JSONResponse(
                status_code=200,
                content=result.model_dump(mode="json", by_alias=True),
            )
        return Response(status_code=204)

    return app


CONFIG = GateConfig.from_env()
logging.basicConfig(
    level=CONFIG.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(build_orchestrator(CONFIG))
