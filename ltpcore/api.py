from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .config import Settings, settings
from .errors import NotConfiguredError
from .rules.coaching import CoachingInterventionEngine
from .schemas.coaching import InterventionContext, InterventionResult
from .service import MarketDataService

router = APIRouter(prefix="/api/market", tags=["market"])

_engine = CoachingInterventionEngine()


def get_service(request: Request) -> MarketDataService:
    return request.app.state.service


def configured_service(svc: MarketDataService = Depends(get_service)) -> MarketDataService:
    try:
        svc.require_configured()
    except NotConfiguredError as e:
        logger.warning("[API] market data requested but MASSIVE_API_KEY is not set")
        raise HTTPException(503, str(e))
    return svc


def _found(value, what: str, symbol: str):
    if value is None:
        raise HTTPException(404, f"{what} not available for {symbol.upper()}")
    return value


@router.get("/health")
async def health(svc: MarketDataService = Depends(get_service)):
    return {"ok": True, "configured": svc.is_configured()}


@router.get("/quote/{symbol}")
async def quote(symbol: str, svc: MarketDataService = Depends(configured_service)):
    return _found(await svc.get_quote(symbol), "Quote", symbol)


@router.get("/aggregates/{symbol}")
async def aggregates(
    symbol: str,
    timespan: str = Query("day"),
    limit: int = Query(50, ge=1, le=5000),
    svc: MarketDataService = Depends(configured_service),
):
    bars = await svc.get_aggregates(symbol, timespan, limit)
    if not bars:
        raise HTTPException(404, f"Aggregates not available for {symbol.upper()}")
    return {"symbol": symbol.upper(), "timespan": timespan, "bars": bars}


@router.get("/levels/{symbol}")
async def levels(symbol: str, svc: MarketDataService = Depends(configured_service)):
    return {"symbol": symbol.upper(), "levels": await svc.get_key_levels(symbol)}


@router.get("/mtf/{symbol}")
async def mtf(symbol: str, svc: MarketDataService = Depends(configured_service)):
    return _found(await svc.get_mtf_analysis(symbol), "MTF analysis", symbol)


@router.get("/ltp/{symbol}")
async def ltp(symbol: str, svc: MarketDataService = Depends(configured_service)):
    return _found(await svc.get_ltp_analysis(symbol), "LTP analysis", symbol)


@router.get("/fvg/{symbol}")
async def fvg(symbol: str, svc: MarketDataService = Depends(configured_service)):
    return await svc.get_fvg_analysis(symbol)


@router.get("/snapshot/{symbol}")
async def snapshot(symbol: str, svc: MarketDataService = Depends(configured_service)):
    return _found(await svc.get_market_snapshot(symbol), "Snapshot", symbol)


@router.get("/indicators/{symbol}")
async def indicators(
    symbol: str,
    timespan: str = Query("day"),
    svc: MarketDataService = Depends(configured_service),
):
    return _found(await svc.compute_indicator_snapshot(symbol, timespan), "Indicators", symbol)


@router.get("/index/{symbol}")
async def index(symbol: str, svc: MarketDataService = Depends(configured_service)):
    return _found(await svc.get_index_quote(symbol), "Index", symbol)


@router.get("/options/{contract}")
async def option_contract(contract: str, svc: MarketDataService = Depends(configured_service)):
    try:
        result = await svc.get_options_contract(contract)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return _found(result, "Option contract", contract)


@router.get("/status")
async def status(svc: MarketDataService = Depends(configured_service)):
    return await svc.get_market_status()


@router.get("/context")
async def context(svc: MarketDataService = Depends(get_service)):
    """Worker-published breadth and trading conditions; works without a vendor key."""
    breadth = await svc.get_market_breadth()
    return {
        "breadth": breadth,
        "conditions": await svc.get_trading_conditions(),
        "imminent_event": await svc.check_imminent_event(),
        "commentary": _engine.get_market_commentary(breadth),
    }


@router.post("/coach/evaluate", response_model=InterventionResult)
async def coach_evaluate(
    ctx: InterventionContext,
    selector: Optional[int] = Query(None, ge=0),
    svc: MarketDataService = Depends(get_service),
):
    # fill market context from the worker keys when the caller left it out
    update = {}
    if ctx.breadth is None:
        update["breadth"] = await svc.get_market_breadth()
    if ctx.hot_context is None:
        update["hot_context"] = await svc.get_hot_context()
    if update:
        ctx = ctx.model_copy(update=update)
    return _engine.evaluate_trade(ctx, selector)


def create_app(service: Optional[MarketDataService] = None, cfg: Settings = settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "service", None) is None:
            app.state.service = MarketDataService.from_settings(cfg)
        yield
        await app.state.service.aclose()

    app = FastAPI(title="LTP Market Core", lifespan=lifespan)
    app.state.service = service
    # CORS: explicit origins outside local, everything allowed in dev
    cors_origins = ["*"]
    if cfg.APP_ENV != "local" and cfg.CORS_ORIGINS and cfg.CORS_ORIGINS.strip() != "*":
        cors_origins = [o.strip() for o in cfg.CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app
