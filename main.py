# main.py
import asyncio
import logging
import os
import time

from fastapi import FastAPI, Request, WebSocket, status
from fastapi.responses import JSONResponse
from starlette.websockets import WebSocketDisconnect

from config import CONFIG_ENV_VAR, PipelineConfig, default_config, load_config
from errors import (
    AmbiguousSignal,
    InsufficientHistory,
    InvalidConfiguration,
    NotEnoughTimePassed,
    OracleError,
    PriceUnavailable,
    TooSoon,
    UnknownComponent,
    WindowNotOpen,
)
from fixed_point import UNIT, rescale
from logging_setup import get_logger
from models import (
    AllocationResponse,
    ErrorResponse,
    FeedResponse,
    OracleResponse,
    PricePointResponse,
    TriggerResponse,
)
from pipeline import Pipeline
from stream_stub import base_prices_of, price_stream

log = get_logger(__name__)

app = FastAPI(title="Oracle Trigger Service")

# Wall clock lives here only; everything below the service takes `now` explicitly.
app.state.clock = lambda: int(time.time())
app.state.config = None
app.state.pipeline = None
app.state.consumer_task = None


def _pipeline_config() -> PipelineConfig:
    if app.state.config is not None:
        return app.state.config
    path = os.environ.get(CONFIG_ENV_VAR)
    return load_config(path) if path else default_config()


def _pipeline() -> Pipeline:
    return app.state.pipeline


def _now() -> int:
    return app.state.clock()


# --- 1) ASYNC CONSUMER TASK (Runs in the background) ---

async def price_consumer_task(pipeline: Pipeline, config: PipelineConfig):
    """
    Streams simulated ticks into the upstream price feeds and, when auto_poke
    is on, records every feed whose update slot has come due.
    """
    feeds = pipeline.price_feeds()
    log.info(f"Starting price consumer for upstreams: {sorted(feeds)}")
    try:
        async for tick in price_stream(symbols=list(feeds), base_prices=base_prices_of(feeds),
                                       jitter=config.stream.jitter, interval_ms=config.stream.interval_ms):
            feed = feeds[tick.symbol]
            feed.poke(rescale(tick.price, UNIT, feed.unit), tick.ts)
            if config.stream.auto_poke:
                try:
                    pipeline.poke_due(_now())
                except OracleError as e:
                    log.warning(f"Auto poke rejected: {type(e).__name__}: {e}")
    except asyncio.CancelledError:
        log.info("Price consumer task cancelled.")


@app.on_event("startup")
async def startup_event():
    config = _pipeline_config()
    logging.getLogger().setLevel(config.log_level.upper())
    app.state.pipeline = Pipeline.from_config(config, _now())
    if config.stream.enabled and app.state.pipeline.price_feeds():
        app.state.consumer_task = asyncio.create_task(price_consumer_task(app.state.pipeline, config))


@app.on_event("shutdown")
async def shutdown_event():
    task = app.state.consumer_task
    if task is not None:
        task.cancel()
        await task
        app.state.consumer_task = None


# --- 2) Error mapping ---

def _status_for(exc: OracleError) -> int:
    if isinstance(exc, UnknownComponent):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (TooSoon, NotEnoughTimePassed, WindowNotOpen)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, InvalidConfiguration):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, ArithmeticError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_422_UNPROCESSABLE_ENTITY


@app.exception_handler(OracleError)
async def oracle_error_handler(request: Request, exc: OracleError):
    code = _status_for(exc)
    log.warning(f"{request.method} {request.url.path} rejected ({code}): {type(exc).__name__}: {exc}")
    body = ErrorResponse(error=type(exc).__name__, detail=str(exc))
    return JSONResponse(status_code=code, content=body.model_dump())


# --- 3) Feeds ---

@app.get("/feeds/{name}", response_model=FeedResponse, tags=["Feeds"])
async def get_feed(name: str, count: int = 1):
    store = _pipeline().feed(name)
    return FeedResponse(
        name=name,
        data_description=store.data_description,
        update_interval=store.update_interval,
        next_earliest_update=store.next_earliest_update,
        points=[PricePointResponse.from_point(p) for p in store.read(count)],
    )


@app.post("/feeds/{name}/poke", response_model=PricePointResponse, tags=["Feeds"])
async def poke_feed(name: str):
    point = _pipeline().feed(name).poke(_now())
    return PricePointResponse.from_point(point)


# --- 4) Oracles ---

@app.get("/oracles/{name}", response_model=OracleResponse, tags=["Oracles"])
async def get_oracle(name: str):
    oracle = _pipeline().oracle(name)
    return OracleResponse(
        name=name,
        kind=oracle.kind.value,
        data_description=oracle.data_description,
        value=str(oracle.read()),
    )


# --- 5) Triggers ---

def _trigger_response(name: str) -> TriggerResponse:
    trigger = _pipeline().confirmation_trigger(name)
    now = _now()
    pending = None
    if trigger.pending_direction is not None:
        pending = "BULLISH" if trigger.pending_direction else "BEARISH"
    return TriggerResponse(
        name=name,
        is_bullish=trigger.is_bullish(),
        last_initial_trigger_timestamp=trigger.last_initial_trigger_timestamp,
        trigger_flipped_index=trigger.trigger_flipped_index,
        pending_direction=pending,
        can_initial_trigger=trigger.can_initial_trigger(now),
        can_confirm_trigger=trigger.can_confirm_trigger(now),
    )


@app.get("/triggers/{name}", response_model=TriggerResponse, tags=["Triggers"])
async def get_trigger(name: str):
    return _trigger_response(name)


@app.post("/triggers/{name}/initial", response_model=TriggerResponse, tags=["Triggers"])
async def initial_trigger(name: str):
    _pipeline().confirmation_trigger(name).initial_trigger(_now())
    return _trigger_response(name)


@app.post("/triggers/{name}/confirm", response_model=TriggerResponse, tags=["Triggers"])
async def confirm_trigger(name: str):
    _pipeline().confirmation_trigger(name).confirm_trigger(_now())
    return _trigger_response(name)


@app.get("/allocation/{name}", response_model=AllocationResponse, tags=["Triggers"])
async def get_allocation(name: str):
    allocation = _pipeline().band_trigger(name).retrieve_base_asset_allocation()
    return AllocationResponse(name=name, allocation=allocation, is_bullish=allocation == 100)


# --- 6) WS /ws/allocation Endpoint ---

def _decision(pipeline: Pipeline, name: str) -> str:
    try:
        bullish = pipeline.is_bullish(name)
    except (AmbiguousSignal, InsufficientHistory, PriceUnavailable):
        return "UNDECIDED"
    except OracleError as e:
        log.debug(f"Decision for {name} unavailable: {type(e).__name__}: {e}")
        return "UNDECIDED"
    return "BULLISH" if bullish else "BEARISH"


@app.websocket("/ws/allocation/{name}")
async def websocket_endpoint(websocket: WebSocket, name: str):
    """
    Streams the decision of a trigger, sending a message whenever it changes.
    """
    await websocket.accept()
    pipeline = _pipeline()
    if not pipeline.has_trigger(name):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=f"Trigger {name} not found.")
        return

    try:
        # Send an initial snapshot immediately so clients receive something on connect
        last_decision = _decision(pipeline, name)
        await websocket.send_json({"name": name, "decision": last_decision})
        while True:
            current_decision = _decision(pipeline, name)
            if current_decision != last_decision:
                await websocket.send_json({"name": name, "decision": current_decision})
                last_decision = current_decision
            await asyncio.sleep(0.1)
    except WebSocketDisconnect:
        log.info(f"Client disconnected from {name} WebSocket.")
