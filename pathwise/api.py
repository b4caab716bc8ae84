"""HTTP surface for the planner.

Authentication happens upstream: the proxy in front of this service resolves
the session and forwards the owner id in the ``X-User-Id`` header. Handlers
never read a user id from the request body.

JSON bodies are parsed with ``parse_float=Decimal`` so money never passes
through a binary float; responses render money as 3-decimal strings.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from decimal import Decimal
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import web

from .config import Settings
from .errors import NotFound, PathwiseError, SavingsLimitExceeded, UnauthorizedAccess, ValidationError
from .service import PlannerService
from .store import InMemoryStore, PostgresStore

LOGGER = logging.getLogger("pathwise.api")

USER_HEADER = "X-User-Id"
SERVICE_KEY = web.AppKey("service", PlannerService)

_loads = partial(json.loads, parse_float=Decimal)


def _status_for(exc: PathwiseError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, SavingsLimitExceeded):
        return 422
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, UnauthorizedAccess):
        return 403
    return 400


@web.middleware
async def error_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    try:
        return await handler(request)
    except PathwiseError as exc:
        status = _status_for(exc)
        LOGGER.info("%s %s -> %s %s", request.method, request.path, status, exc.code)
        return web.json_response(exc.to_dict(), status=status)


def _owner(request: web.Request) -> str:
    owner = request.headers.get(USER_HEADER, "").strip()
    if not owner:
        raise web.HTTPUnauthorized(text=f"Missing {USER_HEADER} header")
    return owner


async def _body(request: web.Request) -> Dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        payload = await request.json(loads=_loads)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Invalid JSON payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValidationError("JSON payload must be an object")
    return payload


def _int_query(request: web.Request, name: str) -> Optional[int]:
    raw = request.query.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


class PlannerApplication:
    """Wires the planner service into an aiohttp application"""

    def __init__(self, service: PlannerService) -> None:
        self.service = service
        self.app = web.Application(middlewares=[error_middleware])
        self.app[SERVICE_KEY] = service
        router = self.app.router
        router.add_get("/health", self.handle_health)
        router.add_put("/profile", self.put_profile)
        router.add_put("/expenses", self.put_expenses)
        router.add_get("/snapshot", self.get_snapshot)
        router.add_get("/goals", self.list_goals)
        router.add_post("/goals", self.create_goal)
        router.add_get("/goals/{goal_id}", self.get_goal)
        router.add_put("/goals/{goal_id}", self.update_goal)
        router.add_delete("/goals/{goal_id}", self.delete_goal)
        router.add_post("/goals/{goal_id}/projection", self.project_goal)
        router.add_get("/goals/{goal_id}/simulations", self.list_simulations)
        router.add_post("/goals/{goal_id}/simulations", self.simulate_goal)
        router.add_post("/transactions", self.import_transactions)
        router.add_get("/analytics", self.get_analytics)
        router.add_get("/anomalies", self.list_anomalies)
        router.add_post("/anomalies/detect", self.detect_anomalies)
        router.add_post("/anomalies/{anomaly_id}/dismiss", self.dismiss_anomaly)
        router.add_post("/coach/messages", self.chat)

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def put_profile(self, request: web.Request) -> web.Response:
        owner = _owner(request)
        body = await _body(request)
        profile = await asyncio.to_thread(
            self.service.save_profile, owner, body.get("salary"), body.get("preferred_currency"))
        return web.json_response(profile.to_dict())

    async def put_expenses(self, request: web.Request) -> web.Response:
        owner = _owner(request)
        body = await _body(request)
        expenses = await asyncio.to_thread(self.service.replace_expenses, owner, body.get("expenses"))
        snapshot = await asyncio.to_thread(self.service.get_snapshot, owner)
        return web.json_response({
            "expenses": [e.to_dict() for e in expenses],
            "snapshot": snapshot.to_dict(),
        })

    async def get_snapshot(self, request: web.Request) -> web.Response:
        snapshot = await asyncio.to_thread(self.service.get_snapshot, _owner(request))
        return web.json_response(snapshot.to_dict())

    async def list_goals(self, request: web.Request) -> web.Response:
        goals = await asyncio.to_thread(self.service.list_goals, _owner(request))
        return web.json_response({"goals": [self.service.goal_view(g) for g in goals]})

    async def create_goal(self, request: web.Request) -> web.Response:
        owner = _owner(request)
        body = await _body(request)
        goal = await asyncio.to_thread(
            self.service.create_goal,
            owner,
            name=body.get("name"),
            target_amount=body.get("target_amount"),
            deadline=body.get("deadline"),
            category=body.get("category", "OTHER"),
            priority=body.get("priority", "MEDIUM"),
            saved_amount=body.get("saved_amount"),
            monthly_savings_target=body.get("monthly_savings_target"),
            currency=body.get("currency"),
        )
        return web.json_response(self.service.goal_view(goal), status=201)

    async def get_goal(self, request: web.Request) -> web.Response:
        goal = await asyncio.to_thread(self.service.get_goal, _owner(request), request.match_info["goal_id"])
        return web.json_response(self.service.goal_view(goal))

    async def update_goal(self, request: web.Request) -> web.Response:
        owner = _owner(request)
        body = await _body(request)
        goal = await asyncio.to_thread(self.service.update_goal, owner, request.match_info["goal_id"], body)
        return web.json_response(self.service.goal_view(goal))

    async def delete_goal(self, request: web.Request) -> web.Response:
        await asyncio.to_thread(self.service.delete_goal, _owner(request), request.match_info["goal_id"])
        return web.Response(status=204)

    async def project_goal(self, request: web.Request) -> web.Response:
        owner = _owner(request)
        body = await _body(request)
        persist = body.get("persist", True)
        if not isinstance(persist, bool):
            raise ValidationError("persist must be a JSON boolean")
        payload = await asyncio.to_thread(
            self.service.project_goal,
            owner,
            request.match_info["goal_id"],
            body.get("monthly_savings_rate"),
            persist=persist,
        )
        return web.json_response(payload)

    async def simulate_goal(self, request: web.Request) -> web.Response:
        owner = _owner(request)
        body = await _body(request)
        adjustments = body.get("adjustments") or {}
        if not isinstance(adjustments, dict):
            raise ValidationError("adjustments must be an object of category -> amount")
        result, record = await asyncio.to_thread(
            self.service.simulate_goal,
            owner,
            request.match_info["goal_id"],
            body.get("current_monthly_savings_rate"),
            adjustments,
            name=body.get("name"),
        )
        payload = result.to_dict()
        payload["simulation_id"] = record.id
        payload["name"] = record.name
        return web.json_response(payload, status=201)

    async def list_simulations(self, request: web.Request) -> web.Response:
        records = await asyncio.to_thread(
            self.service.list_simulations, _owner(request), request.match_info["goal_id"])
        return web.json_response({"simulations": [r.to_dict() for r in records]})

    async def import_transactions(self, request: web.Request) -> web.Response:
        owner = _owner(request)
        body = await _body(request)
        items = body.get("transactions") or []
        inserted = await asyncio.to_thread(self.service.import_transactions, owner, items)
        return web.json_response({"received": len(items), "inserted": inserted})

    async def get_analytics(self, request: web.Request) -> web.Response:
        owner = _owner(request)
        months = _int_query(request, "months")
        summary = await asyncio.to_thread(self.service.spending_summary, owner, months=months)
        return web.json_response(summary)

    async def list_anomalies(self, request: web.Request) -> web.Response:
        anomalies = await asyncio.to_thread(self.service.list_anomalies, _owner(request))
        return web.json_response({"anomalies": [a.to_dict() for a in anomalies]})

    async def detect_anomalies(self, request: web.Request) -> web.Response:
        anomalies = await asyncio.to_thread(self.service.detect_anomalies, _owner(request))
        return web.json_response({"anomalies": [a.to_dict() for a in anomalies]})

    async def dismiss_anomaly(self, request: web.Request) -> web.Response:
        anomaly = await asyncio.to_thread(
            self.service.dismiss_anomaly, _owner(request), request.match_info["anomaly_id"])
        return web.json_response(anomaly.to_dict())

    async def chat(self, request: web.Request) -> web.Response:
        owner = _owner(request)
        body = await _body(request)
        message = body.get("message")
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("message is required")
        reply = await asyncio.to_thread(self.service.chat, owner, message)
        return web.json_response(reply.to_dict())


def _configure_logging(settings: Settings) -> None:
    handlers = [logging.StreamHandler()]
    file_logging_status = None
    try:
        os.makedirs(settings.log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(settings.log_dir, "pathwise.log"), mode='a'))
        file_logging_status = f"Logging to {settings.log_dir}/pathwise.log"
    except OSError as e:
        file_logging_status = f"File logging disabled for {settings.log_dir}: {e}"

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )
    LOGGER.info(file_logging_status)


def build_service(settings: Settings) -> PlannerService:
    if settings.store_backend == "postgres":
        store = PostgresStore(settings.db_params)
    else:
        store = InMemoryStore()
    return PlannerService(store, settings=settings)


def create_app(service: Optional[PlannerService] = None,
               settings: Optional[Settings] = None) -> web.Application:
    if service is None:
        settings = settings or Settings.from_environment()
        _configure_logging(settings)
        service = build_service(settings)
    return PlannerApplication(service).app


def main() -> None:
    settings = Settings.from_environment()
    app = create_app(settings=settings)
    web.run_app(app, host=settings.host, port=settings.port)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
