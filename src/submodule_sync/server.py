"""HTTP listener receiving signed GitHub webhook deliveries.

Deliveries are verified, parsed and acknowledged immediately; routing and any
resulting sync run as a background task after the response is sent, so GitHub
never waits on the parent repository update.
"""

import hashlib
import hmac
import json
import logging
from typing import Any
from urllib.parse import parse_qs

import uvicorn
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from .audit import AuditLog
from .config import Config
from .constants import APP_NAME
from .events import PushNotification
from .github import GitHubClient
from .registry import SubmoduleRegistry
from .router import EventRouter
from .sync import SyncOrchestrator

logger = logging.getLogger(APP_NAME)


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Checks an `X-Hub-Signature-256` header against the raw request body.

    Args:
        secret (str): The webhook secret shared with GitHub.
        body (bytes): The exact bytes received.
        signature (str | None): The header value, e.g. 'sha256=ab12...'.

    Returns:
        bool: True only if the signature is present and matches.
    """
    if not signature or not signature.startswith("sha256="):
        return False
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={digest}", signature)


def parse_payload(body: bytes, content_type: str) -> dict[str, Any]:
    """Decodes a delivery sent as JSON or as a form with a `payload` field.

    Raises:
        ValueError: If the body is not a JSON object.
    """
    if content_type.startswith("application/x-www-form-urlencoded"):
        fields = parse_qs(body.decode())
        if "payload" not in fields:
            raise ValueError("form delivery without a 'payload' field")
        payload = json.loads(fields["payload"][0])
    else:
        payload = json.loads(body)

    if not isinstance(payload, dict):
        raise ValueError("payload is not a JSON object")
    return payload


def build_router(config: Config) -> EventRouter:
    """Wires the registry, GitHub client, orchestrator and router from config."""
    audit = AuditLog(config.github.owner)
    client = GitHubClient(
        owner=config.github.owner,
        token=config.github.token,
        api_url=config.github.api_url,
        timeout=config.github.timeout,
    )
    registry = SubmoduleRegistry(config.submodules)
    return EventRouter(registry, SyncOrchestrator(client, audit), audit)


def create_app(config: Config, router: EventRouter) -> Starlette:
    """Builds the Starlette application serving the webhook endpoint.

    Args:
        config (Config): Supplies the secret and the endpoint path.
        router (EventRouter): Receives every verified delivery.
    """
    secret = config.github.secret

    async def webhook(request: Request) -> JSONResponse:
        body = await request.body()
        delivery = request.headers.get("X-GitHub-Delivery", "")

        if not verify_signature(
            secret, body, request.headers.get("X-Hub-Signature-256")
        ):
            logger.warning(f"Rejected delivery {delivery or '?'}: bad signature")
            return JSONResponse({"error": "invalid signature"}, status_code=401)

        event_kind = request.headers.get("X-GitHub-Event")
        if not event_kind:
            return JSONResponse({"error": "missing event header"}, status_code=400)

        try:
            payload = parse_payload(body, request.headers.get("content-type", ""))
        except ValueError as e:
            logger.warning(f"Rejected delivery {delivery or '?'}: {e}")
            return JSONResponse({"error": "malformed payload"}, status_code=400)

        notification = PushNotification.from_payload(payload)
        return JSONResponse(
            {"accepted": True, "delivery": delivery},
            status_code=202,
            background=BackgroundTask(router.handle, event_kind, notification),
        )

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "submodules": len(router.registry)})

    return Starlette(
        routes=[
            Route(config.server.path, webhook, methods=["POST"]),
            Route("/health", health, methods=["GET"]),
        ]
    )


def serve(config: Config) -> None:
    """Runs the listener until the process is stopped.

    Args:
        config (Config): A validated configuration.
    """
    app = create_app(config, build_router(config))
    logger.info(
        f"Listening on {config.server.host}:{config.server.port}{config.server.path} "
        f"for {len(config.submodules)} submodule(s)"
    )
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level="info" if config.debug else "warning",
    )
