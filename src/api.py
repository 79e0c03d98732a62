"""HTTP entry point: /analyze, /remediate (alias /optimize) and /health."""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict

from aiohttp import web
from pydantic import ValidationError

from src.application.intelligence_service import IntelligenceService
from src.domain.exceptions import AnalysisUnavailableException
from src.domain.models import FleetAnalysis, RemediationReport

logger = logging.getLogger(__name__)

SERVICE_KEY = web.AppKey("service", IntelligenceService)

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}
PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

_RUN_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message, "timestamp": _now()}, status=status)


def analysis_response(analysis: FleetAnalysis) -> Dict[str, Any]:
    plan = analysis.consolidation_plan
    return {
        "status": "analysis_complete",
        "timestamp": analysis.timestamp.isoformat(),
        "summary": {
            "total_repositories": analysis.total_repositories,
            "successful_analyses": len(analysis.successful),
            "failed_analyses": len(analysis.failed),
            "detected_duplications": len(plan.duplications),
            "optimization_opportunities": len(plan.optimizations),
            "consolidation_status": "degraded" if plan.degraded else "complete",
        },
        "repositories": [r.model_dump(mode="json") for r in analysis.successful],
        "consolidation_plan": plan.model_dump(mode="json"),
        "failed": [f.model_dump(mode="json") for f in analysis.failed],
    }


def remediation_response(report: RemediationReport) -> Dict[str, Any]:
    data = report.model_dump(mode="json")
    return {
        "status": "remediation_complete",
        "timestamp": _now(),
        "run_id": report.run_id,
        "summary": {
            "repositories_considered": report.repositories_considered,
            "opportunities_selected": report.opportunities_selected,
            "pull_requests_created": len(report.pull_requests),
            "suppressed_duplicates": len(report.suppressed),
            "failed": len(report.failed),
        },
        "pull_requests": data["pull_requests"],
        "suppressed": data["suppressed"],
        "failed": data["failed"],
    }


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=PREFLIGHT_HEADERS)
    response = await handler(request)
    response.headers.update(CORS_HEADERS)
    return response


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return _error("Route not found", 404)
    except web.HTTPMethodNotAllowed:
        return _error("Method not allowed", 405)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return _error(str(e), 500)


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "operational", "timestamp": _now()})


async def analyze(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    analysis = await service.analyze()
    return web.json_response(analysis_response(analysis))


async def remediate(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]

    body: Dict[str, Any] = {}
    if request.can_read_body:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _error("Request body must be valid JSON", 400)
        if not isinstance(body, dict):
            return _error("Request body must be a JSON object", 400)

    run_id = body.get("run_id")
    if run_id is not None and (not isinstance(run_id, str) or not _RUN_ID_RE.match(run_id)):
        return _error("run_id must be 1-64 characters of letters, digits, '.', '_' or '-'", 400)

    analysis = None
    if body.get("repositories") is not None:
        try:
            analysis = FleetAnalysis.model_validate({"successful": body["repositories"]})
        except ValidationError as e:
            return _error(f"Invalid repositories payload: {e.error_count()} validation errors", 400)

    try:
        report = await service.remediate(analysis=analysis, run_id=run_id)
    except AnalysisUnavailableException as e:
        return _error(str(e), 409)
    return web.json_response(remediation_response(report))


async def _drain_background_writes(app: web.Application) -> None:
    await app[SERVICE_KEY].drain()


def create_app(service: IntelligenceService) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[SERVICE_KEY] = service
    app.router.add_get("/health", health)
    app.router.add_get("/analyze", analyze)
    app.router.add_post("/analyze", analyze)
    app.router.add_post("/remediate", remediate)
    app.router.add_post("/optimize", remediate)
    app.on_cleanup.append(_drain_background_writes)
    return app
