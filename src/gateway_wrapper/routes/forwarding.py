"""Request forwarding to the backend (HTTP and WebSocket).

Catch-all routes, registered last. Each request passes the admission
gate first; forwarded requests are streamed in both directions without
buffering bodies. The gateway token replaces any client Authorization.
"""

from __future__ import annotations

__all__ = [
    "HOP_BY_HOP_HEADERS",
    "build_forward_headers",
    "router",
]

import asyncio
import contextlib
import logging
import time
from typing import AsyncIterator

import httpx
import websockets
from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import RedirectResponse, Response, StreamingResponse
from starlette.websockets import WebSocketState
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from gateway_wrapper.constants import APP_NAME, HEALTH_PATHS, PROXY_TIMEOUT_SECONDS
from gateway_wrapper.exceptions import UpstreamUnavailableError
from gateway_wrapper.gateway.admission import AdmissionAction, AdmissionGate
from gateway_wrapper.security.setup_auth import client_ip

from .helpers import error_response, loading_page_response

_logger = logging.getLogger(f"{APP_NAME}.routes.forwarding")

# Hop-by-hop headers (RFC 7230 §6.1) must not cross connection boundaries.
HOP_BY_HOP_HEADERS = frozenset(
    (
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    )
)

# Stripped from forwarded requests. Host would collide with the backend's
# virtual host; authorization is replaced by the gateway token.
_STRIP_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {"host", "authorization"}

# The websockets library writes its own handshake headers
_STRIP_WEBSOCKET_HEADERS = _STRIP_REQUEST_HEADERS | {
    "sec-websocket-key",
    "sec-websocket-version",
    "sec-websocket-extensions",
    "sec-websocket-protocol",
    "sec-websocket-accept",
}

# Close codes that may not be sent in a close frame
_RESERVED_CLOSE_CODES = frozenset((1005, 1006, 1015))

_WS_POLICY_VIOLATION = 1008
_WS_TRY_AGAIN_LATER = 1013
_WS_INTERNAL_ERROR = 1011

router = APIRouter(tags=["forwarding"])

_ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]


# ==========================================================================
# Header Helpers
# ==========================================================================


def build_forward_headers(
    headers: list[tuple[str, str]],
    token: str,
    *,
    client_host: str,
    scheme: str,
    strip: frozenset[str] = _STRIP_REQUEST_HEADERS,
) -> list[tuple[str, str]]:
    """Headers for the upstream request.

    Drops host, hop-by-hop and client Authorization headers, appends the
    X-Forwarded-* set and the gateway bearer token.

    Args:
        headers: Inbound headers as (name, value) pairs.
        token: Gateway token.
        client_host: Address of the connecting client.
        scheme: Inbound URL scheme (http/https/ws/wss).
        strip: Lower-cased header names to drop.
    """
    forwarded: list[tuple[str, str]] = []
    host = ""
    prior_for = ""
    prior_proto = ""
    prior_host = ""

    for name, value in headers:
        lower = name.lower()
        if lower == "host":
            host = value
        if lower == "x-forwarded-for":
            prior_for = value
            continue
        if lower == "x-forwarded-proto":
            prior_proto = value
            continue
        if lower == "x-forwarded-host":
            prior_host = value
            continue
        if lower in strip:
            continue
        forwarded.append((name, value))

    proto = {"ws": "http", "wss": "https"}.get(scheme, scheme)
    forwarded.append(("X-Forwarded-For", f"{prior_for}, {client_host}" if prior_for else client_host))
    forwarded.append(("X-Forwarded-Proto", prior_proto or proto))
    if prior_host or host:
        forwarded.append(("X-Forwarded-Host", prior_host or host))
    forwarded.append(("Authorization", f"Bearer {token}"))
    return forwarded


def _upstream_url(base: str, path: str, query: str) -> str:
    return f"{base}{path}?{query}" if query else f"{base}{path}"


# ==========================================================================
# HTTP
# ==========================================================================


async def _relay_body(upstream: httpx.Response, method: str, path: str) -> AsyncIterator[bytes]:
    """Yield raw upstream bytes. A mid-stream failure can only end the stream."""
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    except httpx.HTTPError as e:
        _logger.warning(
            {
                "event": "upstream_stream_failed",
                "message": f"Gateway stream broke during {method} {path}: {e}",
                "method": method,
                "path": path,
                "error_type": type(e).__name__,
                "error_message": str(e),
            }
        )
    finally:
        await upstream.aclose()


async def _proxy_http(request: Request) -> Response:
    """Stream one request to the backend and its response back."""
    state = request.app.state
    client: httpx.AsyncClient = state.http_client
    url = _upstream_url(state.config.gateway_target, request.url.path, request.url.query)

    headers = build_forward_headers(
        request.headers.items(),
        state.gateway_token,
        client_host=client_ip(request),
        scheme=request.url.scheme,
    )
    has_body = "content-length" in request.headers or "transfer-encoding" in request.headers

    upstream_request = client.build_request(
        request.method,
        url,
        headers=headers,
        content=request.stream() if has_body else None,
    )

    start_time = time.monotonic()
    try:
        upstream = await client.send(upstream_request, stream=True)
    except httpx.HTTPError as e:
        raise UpstreamUnavailableError(f"{type(e).__name__}: {e}", target=url) from e

    duration_ms = int((time.monotonic() - start_time) * 1000)
    if upstream.status_code >= 500:
        _logger.warning(
            {
                "event": "upstream_response_error",
                "message": f"Gateway returned {upstream.status_code} for {request.method} {request.url.path}",
                "method": request.method,
                "path": request.url.path,
                "status_code": upstream.status_code,
                "duration_ms": duration_ms,
            }
        )

    response = StreamingResponse(
        _relay_body(upstream, request.method, request.url.path),
        status_code=upstream.status_code,
    )
    response.raw_headers = [
        (name.encode("latin-1"), value.encode("latin-1"))
        for name, value in upstream.headers.multi_items()
        if name.lower() not in HOP_BY_HOP_HEADERS
    ]
    return response


@router.api_route("/{path:path}", methods=_ALL_METHODS, include_in_schema=False)
async def forward_http(path: str, request: Request) -> Response:
    """Admission check, then forward to the backend.

    Args:
        path: Request path (unused; the full path is read from the URL).
        request: Incoming request.

    Returns:
        Backend response, redirect, 503 loading page or 404.
    """
    gate: AdmissionGate = request.app.state.admission
    admission = await gate.admit(request.url.path, query_has_token="token" in request.query_params)

    if admission.action is AdmissionAction.LOCAL_ONLY:
        return error_response(404, "Not found")
    if admission.action is AdmissionAction.REDIRECT:
        return RedirectResponse(url=admission.location or "/", status_code=302)
    if admission.action is AdmissionAction.UNAVAILABLE:
        return loading_page_response()

    return await _proxy_http(request)


# ==========================================================================
# WebSocket
# ==========================================================================


async def _client_to_upstream(websocket: WebSocket, upstream: websockets.ClientConnection) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        if message.get("text") is not None:
            await upstream.send(message["text"])
        elif message.get("bytes") is not None:
            await upstream.send(message["bytes"])


async def _upstream_to_client(websocket: WebSocket, upstream: websockets.ClientConnection) -> None:
    async for data in upstream:
        if isinstance(data, str):
            await websocket.send_text(data)
        else:
            await websocket.send_bytes(data)


async def _splice(websocket: WebSocket, upstream: websockets.ClientConnection, path: str) -> None:
    """Relay both directions until either side closes."""
    tasks = [
        asyncio.create_task(_client_to_upstream(websocket, upstream)),
        asyncio.create_task(_upstream_to_client(websocket, upstream)),
    ]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except (asyncio.CancelledError, ConnectionClosed, WebSocketDisconnect, RuntimeError):
                pass

        await upstream.close()
        if websocket.client_state == WebSocketState.CONNECTED:
            code = upstream.close_code
            if code is None or code in _RESERVED_CLOSE_CODES:
                code = 1000
            with contextlib.suppress(RuntimeError, WebSocketDisconnect):
                await websocket.close(code=code)

    _logger.debug({"event": "websocket_closed", "message": f"WebSocket relay closed: {path}", "path": path})


@router.websocket("/{path:path}")
async def forward_websocket(websocket: WebSocket, path: str) -> None:
    """Forward a WebSocket upgrade to the backend.

    Health paths are refused before the handshake completes; so is any
    upgrade while the backend is unconfigured or not ready.
    """
    ws_path = websocket.url.path
    if ws_path in HEALTH_PATHS:
        await websocket.close(code=_WS_POLICY_VIOLATION)
        return

    state = websocket.app.state
    gate: AdmissionGate = state.admission
    admission = await gate.admit_upgrade(ws_path)
    if admission.action is AdmissionAction.LOCAL_ONLY:
        await websocket.close(code=_WS_POLICY_VIOLATION)
        return
    if admission.action is not AdmissionAction.FORWARD:
        await websocket.close(code=_WS_TRY_AGAIN_LATER)
        return

    target = state.config.gateway_target.replace("http://", "ws://", 1)
    url = _upstream_url(target, ws_path, websocket.url.query)
    headers = build_forward_headers(
        websocket.headers.items(),
        state.gateway_token,
        client_host=websocket.client.host if websocket.client else "unknown",
        scheme=websocket.url.scheme,
        strip=_STRIP_WEBSOCKET_HEADERS,
    )
    subprotocols = websocket.scope.get("subprotocols") or None

    try:
        upstream = await websockets.connect(
            url,
            additional_headers=headers,
            subprotocols=subprotocols,
            open_timeout=PROXY_TIMEOUT_SECONDS,
            max_size=None,
        )
    except (OSError, asyncio.TimeoutError, InvalidHandshake, InvalidURI) as e:
        _logger.warning(
            {
                "event": "upstream_websocket_failed",
                "message": f"Could not open gateway WebSocket for {ws_path}: {e}",
                "path": ws_path,
                "error_type": type(e).__name__,
                "error_message": str(e),
            }
        )
        await websocket.close(code=_WS_TRY_AGAIN_LATER)
        return

    await websocket.accept(subprotocol=upstream.subprotocol)
    await _splice(websocket, upstream, ws_path)
