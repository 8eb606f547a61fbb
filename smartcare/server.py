"""HTTP/WebSocket server for the SmartCare gateway.

A FastAPI application exposing Twilio's webhooks, the media-stream WebSocket
and the chat/tracking endpoints. All work is delegated to a
:class:`~smartcare.orchestrator.CallOrchestrator`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Form, HTTPException, Request, Response, WebSocket
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from smartcare import __version__
from smartcare.config import GatewayConfig, load_config
from smartcare.errors import TelephonyError
from smartcare.orchestrator import CallOrchestrator
from smartcare.transports.websocket import FastAPIWebSocketTransport


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MakeCallRequest(_Body):
    to: str = ""


class ChatRequest(_Body):
    text: str = ""
    image: str = ""
    user_id: str | None = Field(None, alias="userId")
    create_ticket: bool = Field(False, alias="createTicket")


class TrackRequest(_Body):
    request_number: str = Field("", alias="requestNumber")
    user_id: str | None = Field(None, alias="userId")


class ManualTicketRequest(_Body):
    call_sid: str | None = Field(None, alias="callSid")
    phone_number: str | None = Field(None, alias="phoneNumber")


def _public_host(config: GatewayConfig, request: Request) -> str:
    public_url = config.server.public_url
    if public_url:
        return public_url.split("://", 1)[-1].rstrip("/")
    return request.headers.get("host", request.url.netloc)


def _public_base_url(config: GatewayConfig, request: Request) -> str:
    return (config.server.public_url or str(request.base_url)).rstrip("/")


def create_app(
    config: GatewayConfig | dict | str | None = None,
    orchestrator: CallOrchestrator | None = None,
    **collaborators: Any,
) -> FastAPI:
    """Create the gateway's FastAPI application.

    Args:
        config: Gateway configuration (YAML path, dict, GatewayConfig, or
            None to read the environment).
        orchestrator: A prebuilt orchestrator. When omitted one is built from
            ``config`` and ``collaborators`` (``store``, ``completion``,
            ``telephony``, ``ai_transport_factory``).
    """
    gateway_config = orchestrator.config if orchestrator else load_config(config)
    if orchestrator is None:
        orchestrator = CallOrchestrator.from_config(gateway_config, **collaborators)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"SmartCare gateway ready (store: {gateway_config.store.backend})")
        yield
        await orchestrator.shutdown()
        logger.info("SmartCare gateway stopped")

    app = FastAPI(
        title="SmartCare Gateway",
        description="Voice and chat support gateway for maintenance requests",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    @app.get("/")
    async def index():
        return {"message": "SmartCare gateway is running"}

    @app.get("/health")
    async def health():
        return {"status": "ok", **orchestrator.stats()}

    @app.post("/make-call")
    async def make_call(body: MakeCallRequest, request: Request):
        if not body.to:
            raise HTTPException(status_code=400, detail="Destination phone number is required")
        try:
            call_sid = await orchestrator.make_call(body.to, _public_base_url(gateway_config, request))
        except TelephonyError as e:
            logger.error(f"Error making call to {body.to}: {e}")
            raise HTTPException(status_code=502, detail=f"Failed to initiate call: {e}")
        return {"message": "Call initiated", "callSid": call_sid}

    @app.api_route("/incoming-call", methods=["GET", "POST"])
    async def incoming_call(request: Request):
        if request.method == "POST":
            form = {k: str(v) for k, v in (await request.form()).items()}
        else:
            form = dict(request.query_params)
        twiml = orchestrator.incoming_call_twiml(_public_host(gateway_config, request), form)
        return Response(content=twiml, media_type="application/xml")

    @app.websocket(gateway_config.server.media_path)
    async def media_stream(websocket: WebSocket):
        await websocket.accept()
        logger.info(f"Media stream connected: {websocket.client}")
        transport = FastAPIWebSocketTransport(websocket)
        await orchestrator.handle_media_stream(
            transport, call_sid=websocket.headers.get("x-twilio-call-sid")
        )
        await transport.disconnect()

    @app.post("/call-status")
    async def call_status(
        CallSid: str = Form(""),
        CallStatus: str = Form(""),
        To: str = Form(""),
        From: str = Form(""),
        Direction: str = Form(""),
    ):
        if not CallSid:
            raise HTTPException(status_code=400, detail="CallSid is required")
        return await orchestrator.handle_call_status(CallSid, CallStatus, to=To, from_=From, direction=Direction)

    @app.post("/chat")
    async def chat(body: ChatRequest):
        if not body.text and not body.image:
            raise HTTPException(status_code=400, detail="Text or image input is required")
        try:
            return await orchestrator.chat(
                text=body.text,
                image=body.image,
                user_id=body.user_id,
                create_ticket=body.create_ticket,
            )
        except Exception as e:
            logger.error(f"Chat request failed: {e}")
            return JSONResponse(
                status_code=500,
                content={"status": "error", "message": "An error occurred while processing your request."},
            )

    @app.post("/track-request")
    async def track_request(body: TrackRequest):
        if not body.request_number:
            raise HTTPException(status_code=400, detail="Request number is required")
        result = await orchestrator.track_request(body.request_number, body.user_id)
        if result is None:
            raise HTTPException(status_code=404, detail="Request not found")
        return {"status": "success", **result}

    @app.post("/manual-ticket")
    async def manual_ticket(body: ManualTicketRequest):
        outcome = await orchestrator.manual_ticket(body.call_sid, body.phone_number)
        return outcome.to_dict()

    return app


def run_server(config: GatewayConfig | dict | str | None = None, host: str | None = None, port: int | None = None):
    """Run the gateway with uvicorn.

    Args:
        config: Gateway configuration.
        host: Override the listen host.
        port: Override the listen port.
    """
    import uvicorn

    gateway_config = load_config(config)
    app = create_app(gateway_config)

    uvicorn.run(
        app,
        host=host or gateway_config.server.host,
        port=port or gateway_config.server.port,
    )
