"""
Analytics WebSocket channel.

Frames are JSON ``{"event": ..., "data": ...}``. A connection joins the
broadcast set with subscribeToAnalytics and can ask for a fresh aggregate at
any time with requestAnalyticsUpdate.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from sitepulse.api.deps import AnalyticsContext, get_analytics_context
from sitepulse.api.schemas import aggregate_payload
from sitepulse.components.analytics import AnalyticsQueryError, InvalidPeriodError
from sitepulse.components.realtime import (
    AnalyticsRequest,
    Connection,
    RequestUpdateMessage,
    SubscribeMessage,
    UnsubscribeMessage,
    analytics_error,
    analytics_update,
    live_visitor_count,
    parse_inbound,
)

logger = logging.getLogger(__name__)

router = APIRouter()

FETCH_FAILED = "Failed to fetch analytics data"


async def _sender(websocket: WebSocket, conn: Connection) -> None:
    """Drain the connection queue onto the socket in order."""
    while True:
        frame = await conn.next_frame()
        if frame is None:
            return
        try:
            await websocket.send_json(frame)
        except (WebSocketDisconnect, RuntimeError):
            logger.debug("Connection %s gone while sending", conn.id)
            return


def _compute(context: AnalyticsContext, request: AnalyticsRequest) -> dict[str, object]:
    window = context.engine.resolve(request.period, request.start_date, request.end_date)
    return aggregate_payload(context.engine.comprehensive(window))


async def _send_update(context: AnalyticsContext, conn: Connection, request: AnalyticsRequest) -> None:
    try:
        payload = await run_in_threadpool(_compute, context, request)
    except InvalidPeriodError as e:
        conn.send(analytics_error(str(e)))
        return
    except AnalyticsQueryError:
        conn.send(analytics_error(FETCH_FAILED))
        return
    except Exception:
        logger.exception("Aggregate computation failed on connection %s", conn.id)
        conn.send(analytics_error(FETCH_FAILED))
        return
    conn.send(analytics_update(payload))


def _decode(message: dict[str, object]) -> object:
    text = message.get("text")
    if text is None:
        raw = message.get("bytes")
        text = raw.decode("utf-8") if isinstance(raw, bytes) else None
    if text is None:
        raise ValueError("Empty frame")
    return json.loads(text)


@router.websocket("/ws")
async def analytics_ws(
    websocket: WebSocket,
    context: AnalyticsContext = Depends(get_analytics_context),
) -> None:
    await websocket.accept()
    hub = context.hub
    conn = hub.connect()
    sender = asyncio.create_task(_sender(websocket, conn))

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            try:
                inbound = parse_inbound(_decode(message))
            except (ValueError, UnicodeDecodeError, ValidationError):
                conn.send(analytics_error("Invalid message"))
                continue

            if isinstance(inbound, SubscribeMessage):
                hub.subscribe(conn)
                await _send_update(context, conn, AnalyticsRequest())
                conn.send(live_visitor_count(hub.live_count()))
            elif isinstance(inbound, UnsubscribeMessage):
                hub.unsubscribe(conn)
            elif isinstance(inbound, RequestUpdateMessage):
                await _send_update(context, conn, inbound.data)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(conn)
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
