# http_routes.py

import logging
from dataclasses import asdict
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from .agent_functions import FUNCTION_MAP
from .errors import InvalidContact
from .services import Services
from .webhooks import decode_call_event, decode_tool_call

logger = logging.getLogger(__name__)

http_router = APIRouter()


def get_services(request: Request) -> Services:
    return request.app.state.services


async def _json_body(request: Request) -> Dict[str, Any]:
    if not await request.body():
        return {}
    try:
        body = await request.json()
    except ValueError:
        logger.warning(f"{request.url.path}: body is not JSON")
        return {}
    return body if isinstance(body, dict) else {}


async def _run_tool(name: str, request: Request, services: Services) -> Dict[str, Any]:
    body = await _json_body(request)
    tool = decode_tool_call(body, dict(request.query_params), name)
    logger.info(f"Tool {name}: args={tool.args}")
    return await FUNCTION_MAP[name](services, tool)


@http_router.get("/health")
def health():
    return {"ok": True}


# --- Voice agent tools ---
@http_router.api_route("/flow/order-context", methods=["GET", "POST"])
async def flow_order_context(request: Request, services: Services = Depends(get_services)):
    return await _run_tool("order_context", request, services)


@http_router.post("/flow/capture-feedback")
async def flow_capture_feedback(request: Request, services: Services = Depends(get_services)):
    return await _run_tool("capture_feedback", request, services)


@http_router.post("/flow/request-replacement")
async def flow_request_replacement(request: Request, services: Services = Depends(get_services)):
    return await _run_tool("request_replacement", request, services)


@http_router.post("/flow/request-refund")
async def flow_request_refund(request: Request, services: Services = Depends(get_services)):
    return await _run_tool("request_refund", request, services)


@http_router.post("/tools/send-discount")
async def tools_send_discount(request: Request, services: Services = Depends(get_services)):
    return await _run_tool("send_discount", request, services)


@http_router.post("/tools/check-discount-eligibility")
async def tools_check_eligibility(request: Request, services: Services = Depends(get_services)):
    return await _run_tool("check_discount_eligibility", request, services)


@http_router.post("/tools/{name}")
async def tools_by_name(name: str, request: Request, services: Services = Depends(get_services)):
    key = name.replace("-", "_")
    if key not in FUNCTION_MAP:
        raise HTTPException(404, f"Unknown tool {name}")
    return await _run_tool(key, request, services)


# --- Telephony webhooks ---
@http_router.post("/webhooks/retell")
async def retell_webhook(request: Request, background_tasks: BackgroundTasks,
                         services: Services = Depends(get_services)):
    event = decode_call_event(await request.body())
    if event is not None:
        background_tasks.add_task(services.webhooks.handle, event)
    return PlainTextResponse("ok")


# --- Outbound calls ---
@http_router.post("/call")
async def place_call(request: Request, services: Services = Depends(get_services)):
    body = await _json_body(request)
    phone = body.get("phone")
    if not phone:
        raise InvalidContact("phone required")
    return await services.dialer.place_call(
        phone,
        customer_name=body.get("name") or "there",
        order_number=body.get("order_number") or body.get("orderNumber"),
        agent_id=body.get("agentId"),
        from_number=body.get("fromNumber"),
        metadata=body.get("metadata"),
    )


@http_router.post("/call/batch")
async def call_batch(request: Request, services: Services = Depends(get_services)):
    body = await _json_body(request)
    extra = {k: body[k] for k in ("max_followup_questions", "resolution_preference") if body.get(k) is not None}
    results = await services.dialer.call_batch(
        hours=int(body.get("hours") or 48),
        agent_id=body.get("agentId"),
        from_number=body.get("fromNumber"),
        extra=extra,
    )
    return {"count": len(results), "results": results}


@http_router.post("/tasks/call-recent")
async def call_recent(request: Request, services: Services = Depends(get_services)):
    body = await _json_body(request)
    results = await services.dialer.call_batch(hours=int(body.get("hours") or 48))
    return {"count": len(results), "results": results}


@http_router.get("/candidates")
async def candidates(hours: int = Query(48, ge=1, le=24 * 30), services: Services = Depends(get_services)):
    found = await services.dialer.candidates(hours)
    callable_ = [c.as_dict() for c in found if not c.opted_out]
    return {"total": len(found), "callable": len(callable_), "candidates": callable_}


# --- Opt-out registry ---
@http_router.post("/opt-out")
async def opt_out(request: Request, services: Services = Depends(get_services)):
    body = await _json_body(request)
    phone = str(body.get("phone") or "").strip()
    if not phone:
        raise InvalidContact("phone required")
    added = await run_in_threadpool(services.dnc.add, phone)
    phones = await run_in_threadpool(services.dnc.phones)
    return {"ok": True, "added": added, "count": len(phones)}


@http_router.get("/dnc")
async def dnc_list(services: Services = Depends(get_services)):
    return {"phones": await run_in_threadpool(services.dnc.phones)}


# --- Call log ---
@http_router.get("/calls/summary")
def calls_summary(services: Services = Depends(get_services)):
    return services.event_log.summary()


@http_router.get("/calls/recent-log")
def calls_recent_log(limit: int = Query(25, ge=1, le=200), services: Services = Depends(get_services)):
    return {"events": services.event_log.recent(limit)}


# --- Backend passthrough ---
@http_router.get("/shopify/order-by-number")
async def order_by_number(order_number: str, services: Services = Depends(get_services)):
    order = await services.resolver.find_by_order_number(order_number)
    return {"orders": [asdict(order)] if order else []}


@http_router.get("/agents")
async def list_agents(services: Services = Depends(get_services)):
    return await services.telephony.list_agents()


@http_router.get("/agents/{agent_id}")
async def get_agent(agent_id: str, services: Services = Depends(get_services)):
    return await services.telephony.get_agent(agent_id)
