"""Admin and webhook route table."""

from __future__ import annotations

from typing import Any

from loguru import logger

from inbox_agent.modules.base import ModuleDescriptor
from inbox_agent.modules.registry import ModuleRegistry
from inbox_agent.observability.metrics import MetricsStore
from inbox_agent.runtime.supervisor import ProcessControl
from inbox_agent.server.http import Request, Response, Router, json_response


def _config_routes(router: Router, registry: ModuleRegistry, descriptor: ModuleDescriptor) -> None:
    name = descriptor.name

    async def get_config(request: Request) -> Response:
        return json_response(registry.get_settings(name))

    async def post_config(request: Request) -> Response:
        try:
            updates = request.json()
        except ValueError:
            return json_response({"success": False, "message": "Invalid JSON body"}, 400)
        if not isinstance(updates, dict):
            return json_response({"success": False, "message": "Expected a key/value object"}, 400)
        applied = registry.update_settings(name, updates)
        logger.info(f"Updated {len(applied)} setting(s) for module '{name}'")
        return json_response({"success": True, "updated": sorted(applied)})

    router.add("GET", f"{descriptor.mount_path}/config", get_config)
    router.add("POST", f"{descriptor.mount_path}/config", post_config)


def _enabled_route(
    router: Router,
    registry: ModuleRegistry,
    descriptor: ModuleDescriptor,
    control: ProcessControl | None,
    grace_seconds: float,
) -> None:
    name = descriptor.name

    async def post_enabled(request: Request) -> Response:
        try:
            body = request.json()
        except ValueError:
            return json_response({"success": False, "message": "Invalid JSON body"}, 400)
        enabled = body.get("enabled") if isinstance(body, dict) else None
        if not isinstance(enabled, bool):
            return json_response({"success": False, "message": "Body must be {\"enabled\": true|false}"}, 400)
        registry.set_enabled(name, enabled)
        if control is not None:
            control.request_restart(grace_seconds)
        return json_response({"status": "success", "restart": True})

    router.add("POST", f"{descriptor.mount_path}/enabled", post_enabled)


def build_router(
    registry: ModuleRegistry,
    *,
    auth: Any | None = None,
    control: ProcessControl | None = None,
    restart_grace_seconds: float = 1.0,
    metrics: MetricsStore | None = None,
) -> Router:
    """
    Assemble every HTTP route.

    Webhooks and /health are public; module config, enable toggles,
    /modules and /metrics require an admin token.
    """
    router = Router(auth=auth)

    async def health(request: Request) -> Response:
        return json_response({"status": "ok"})

    async def list_modules(request: Request) -> Response:
        return json_response([d.to_dict() for d in registry.descriptors])

    async def metrics_snapshot(request: Request) -> Response:
        if metrics is None:
            return json_response({"success": False, "message": "Metrics disabled"}, 404)
        try:
            hours = int(request.query.get("hours", "24"))
        except ValueError:
            hours = 24
        return json_response(metrics.snapshot(hours=max(1, hours)))

    router.add("GET", "/health", health, public=True)
    router.add("GET", "/modules", list_modules)
    router.add("GET", "/metrics", metrics_snapshot)

    for descriptor in registry.descriptors:
        if descriptor.enabled:
            provider = getattr(descriptor.instance, "routes", None)
            if callable(provider):
                router.include(provider())
        _config_routes(router, registry, descriptor)
        _enabled_route(router, registry, descriptor, control, restart_grace_seconds)

    return router
