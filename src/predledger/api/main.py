"""FastAPI surface over the ledger's public operations."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from predledger.api.schemas import (
    AckResponse,
    CloseMarketRequest,
    CreateMarketRequest,
    CreateMarketResponse,
    DecryptRequest,
    DecryptResponse,
    EncryptRequest,
    ErrorResponse,
    EventsResponse,
    HealthResponse,
    MarketCountResponse,
    MarketsListResponse,
    PlaceBetRequest,
    TalliesResponse,
)
from predledger.config import get_settings
from predledger.errors import AlreadyExists, InvalidArgument, InvalidState, LedgerError, NotFound
from predledger.fhe import Cipher, Denied, HomomorphicBackend, UnknownHandle
from predledger.ledger import MarketOperationProcessor
from predledger.models import BetView, MarketView
from predledger.storage.db import get_connection, init_schema
from predledger.storage.event_log import DuckDBEventSink, EventLog

log = structlog.get_logger(__name__)

# Set by run_api() so the module-level app picks up the chosen profile.
_config_profile: str | None = None

_STATUS_BY_ERROR: list[tuple[type[LedgerError], int]] = [
    (NotFound, 404),
    (InvalidArgument, 422),
    (InvalidState, 409),
    (AlreadyExists, 409),
]


def _error_json(code: str, message: str, status_code: int = 404) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


def _credential(backend: HomomorphicBackend, raw: str) -> Any:
    """Sealed backend expects signature bytes; mock takes the principal name as-is."""
    if backend.name == "sealed":
        try:
            return bytes.fromhex(raw)
        except ValueError:
            return b""
    return raw


def create_app(processor: MarketOperationProcessor | None = None) -> FastAPI:
    """Build the API. Without a processor, one is built from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        conn = None
        if processor is not None:
            app.state.processor = processor
        else:
            settings = get_settings(_config_profile)
            events = EventLog()
            if settings.persist_events:
                conn = get_connection(settings.db_path)
                init_schema(conn)
                events.subscribe(DuckDBEventSink(conn))
            app.state.processor = MarketOperationProcessor.from_settings(settings, events=events)
        log.info("api_started", backend=app.state.processor.backend.name)
        yield
        if conn is not None:
            conn.close()

    app = FastAPI(title="predledger API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        status = next((s for cls, s in _STATUS_BY_ERROR if isinstance(exc, cls)), 400)
        return _error_json(exc.code, exc.message, status)

    @app.exception_handler(Denied)
    async def denied_handler(request: Request, exc: Denied) -> JSONResponse:
        return _error_json(exc.code, str(exc), 403)

    @app.exception_handler(UnknownHandle)
    async def unknown_handle_handler(request: Request, exc: UnknownHandle) -> JSONResponse:
        return _error_json("unknown_handle", f"unknown handle {exc.args[0]}", 404)

    def _processor(request: Request) -> MarketOperationProcessor:
        return request.app.state.processor

    @app.get("/health", response_model=HealthResponse)
    def health(request: Request) -> HealthResponse:
        processor = _processor(request)
        failures = processor.events.sink_failures
        return HealthResponse(
            status="ok" if failures == 0 else "degraded",
            backend=processor.backend.name,
            event_sink_failures=failures,
        )

    @app.post("/markets", response_model=CreateMarketResponse, responses={422: {"model": ErrorResponse}})
    def create_market(
        request: Request,
        body: CreateMarketRequest,
        caller: str = Header(..., alias="X-Principal"),
    ) -> CreateMarketResponse:
        market_id = _processor(request).create_market(caller, body.title, body.options)
        return CreateMarketResponse(market_id=market_id)

    @app.get("/markets", response_model=MarketsListResponse)
    def markets_list(
        request: Request,
        limit: int = Query(100, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ) -> MarketsListResponse:
        """List markets in id order with optional limit/offset."""
        all_markets = _processor(request).list_markets()
        return MarketsListResponse(markets=all_markets[offset : offset + limit], total=len(all_markets))

    @app.get("/markets/count", response_model=MarketCountResponse)
    def markets_count(request: Request) -> MarketCountResponse:
        return MarketCountResponse(count=_processor(request).market_count())

    @app.get("/markets/{market_id}", response_model=MarketView, responses={404: {"model": ErrorResponse}})
    def market_detail(request: Request, market_id: int) -> MarketView:
        return _processor(request).get_market(market_id)

    @app.get("/markets/{market_id}/tallies", response_model=TalliesResponse, responses={404: {"model": ErrorResponse}})
    def market_tallies(request: Request, market_id: int) -> TalliesResponse:
        return TalliesResponse(market_id=market_id, tallies=_processor(request).get_tallies(market_id))

    @app.post("/markets/{market_id}/bets", response_model=AckResponse)
    def place_bet(
        request: Request,
        market_id: int,
        body: PlaceBetRequest,
        caller: str = Header(..., alias="X-Principal"),
    ) -> AckResponse:
        _processor(request).place_bet(caller, market_id, body.choice, body.amount)
        return AckResponse()

    @app.get("/markets/{market_id}/bets/{participant}", response_model=BetView | None)
    def bet_detail(request: Request, market_id: int, participant: str) -> BetView | None:
        return _processor(request).get_bet(market_id, participant)

    @app.post("/markets/{market_id}/access/tallies", response_model=AckResponse)
    def grant_tally_access(
        request: Request,
        market_id: int,
        caller: str = Header(..., alias="X-Principal"),
    ) -> AckResponse:
        _processor(request).grant_tally_access(caller, market_id)
        return AckResponse()

    @app.post("/markets/{market_id}/access/bet", response_model=AckResponse)
    def grant_bet_access(
        request: Request,
        market_id: int,
        caller: str = Header(..., alias="X-Principal"),
    ) -> AckResponse:
        _processor(request).grant_bet_access(caller, market_id)
        return AckResponse()

    @app.post("/markets/{market_id}/close", response_model=AckResponse)
    def close_market(
        request: Request,
        market_id: int,
        body: CloseMarketRequest,
        caller: str = Header(..., alias="X-Principal"),
    ) -> AckResponse:
        _processor(request).close_market(caller, market_id, body.winning_option)
        return AckResponse()

    @app.post("/encrypt", response_model=Cipher)
    def encrypt(
        request: Request,
        body: EncryptRequest,
        caller: str = Header(..., alias="X-Principal"),
    ) -> Cipher:
        """Encrypt an option index on behalf of the caller. Only the caller may bet with the result."""
        return _processor(request).backend.encrypt(body.value, owner=caller)

    @app.post("/decrypt", response_model=DecryptResponse, responses={403: {"model": ErrorResponse}})
    def decrypt(
        request: Request,
        body: DecryptRequest,
        caller: str = Header(..., alias="X-Principal"),
    ) -> DecryptResponse:
        backend = _processor(request).backend
        value = backend.decrypt(body.cipher, caller, _credential(backend, body.credential))
        return DecryptResponse(handle=body.cipher.handle, value=value)

    @app.get("/events", response_model=EventsResponse)
    def events(request: Request, market_id: int | None = None) -> EventsResponse:
        history = _processor(request).event_history(market_id)
        return EventsResponse(events=[e.model_dump(mode="json") for e in history], total=len(history))

    return app


app = create_app()


def run_api(
    host: str = "127.0.0.1",
    port: int = 8000,
    profile: str | None = None,
) -> None:
    global _config_profile
    _config_profile = profile
    import uvicorn

    uvicorn.run("predledger.api.main:app", host=host, port=port, reload=False)
