from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from papertrade.api.service import PaperTradingService, PaperTradingServiceManager
from papertrade.engine.lifecycle import TradeRequest
from papertrade.engine.statistics import closed_trades, open_trades
from papertrade.utils.exceptions import ErrorCategory, PaperTradingError
from papertrade.utils.logger import get_logger

logger = get_logger(__name__)

app = FastAPI(title="Paper Trading Engine", version="1.0")

STATUS_BY_CATEGORY = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.STATE: 409,
    ErrorCategory.SYSTEM: 422,
    ErrorCategory.INTEGRITY: 500,
    ErrorCategory.STORAGE: 503,
    ErrorCategory.PRICING: 503,
}


class CloseTradeBody(BaseModel):
    close_price: Optional[Decimal] = None
    close_premium: Optional[Decimal] = None


class ExpireTradeBody(BaseModel):
    settlement_price: Optional[Decimal] = None


class QuoteBody(BaseModel):
    symbol: str
    price: Decimal


def get_service() -> PaperTradingService:
    return PaperTradingServiceManager.get_instance()


@app.exception_handler(PaperTradingError)
async def paper_trading_error_handler(request: Request, exc: PaperTradingError) -> JSONResponse:
    status = STATUS_BY_CATEGORY.get(exc.category, 500)
    logger.warning("api_error", path=request.url.path, status=status, error=str(exc))
    body: dict[str, Any] = {"error": exc.message, "category": exc.category.value}
    if exc.trade_id:
        body["trade_id"] = exc.trade_id
    violations = getattr(exc, "violations", None)
    if violations:
        body["violations"] = violations
    return JSONResponse(body, status_code=status)


def _trade(trade) -> dict[str, Any]:
    return trade.model_dump(by_alias=True, mode="json")


@app.get("/api/paper/account")
async def get_account(account_id: Optional[str] = None, svc: PaperTradingService = Depends(get_service)) -> dict[str, Any]:
    return svc.get_account(account_id).to_dict()


@app.post("/api/paper/reset")
async def reset_account(account_id: Optional[str] = None, svc: PaperTradingService = Depends(get_service)) -> dict[str, Any]:
    return svc.reset_account(account_id).to_dict()


@app.get("/api/paper/stats")
async def get_stats(account_id: Optional[str] = None, svc: PaperTradingService = Depends(get_service)) -> dict[str, Any]:
    return svc.get_stats(account_id).to_dict()


@app.get("/api/paper/trades")
async def list_trades(
    status: str = "all",
    account_id: Optional[str] = None,
    svc: PaperTradingService = Depends(get_service),
) -> dict[str, Any]:
    account = svc.get_account(account_id)
    if status == "open":
        trades = open_trades(account)
    elif status == "closed":
        trades = closed_trades(account)
    elif status == "all":
        trades = account.trades
    else:
        raise HTTPException(400, f"Unknown status filter: {status}")
    return {"trades": [_trade(t) for t in trades], "count": len(trades)}


@app.get("/api/paper/trades.csv")
async def export_trades(account_id: Optional[str] = None, svc: PaperTradingService = Depends(get_service)) -> Response:
    return Response(content=svc.export_trades_csv(account_id), media_type="text/csv")


@app.get("/api/paper/positions")
async def get_positions(account_id: Optional[str] = None, svc: PaperTradingService = Depends(get_service)) -> dict[str, Any]:
    positions = svc.get_open_positions(account_id)
    return {"positions": positions, "count": len(positions)}


@app.post("/api/paper/trades", status_code=201)
async def open_trade(
    body: TradeRequest,
    account_id: Optional[str] = None,
    svc: PaperTradingService = Depends(get_service),
) -> dict[str, Any]:
    return _trade(svc.open_trade(body, account_id))


@app.post("/api/paper/trades/{trade_id}/close")
async def close_trade(
    trade_id: str,
    body: CloseTradeBody,
    account_id: Optional[str] = None,
    svc: PaperTradingService = Depends(get_service),
) -> dict[str, Any]:
    trade = svc.close_trade(trade_id, body.close_price, body.close_premium, account_id)
    return _trade(trade)


@app.post("/api/paper/trades/{trade_id}/expire")
async def expire_trade(
    trade_id: str,
    body: ExpireTradeBody,
    account_id: Optional[str] = None,
    svc: PaperTradingService = Depends(get_service),
) -> dict[str, Any]:
    return _trade(svc.expire_trade(trade_id, body.settlement_price, account_id))


@app.delete("/api/paper/trades/{trade_id}")
async def delete_trade(
    trade_id: str,
    reverse_entry: bool = False,
    account_id: Optional[str] = None,
    svc: PaperTradingService = Depends(get_service),
) -> dict[str, Any]:
    trade = svc.delete_trade(trade_id, reverse_entry=reverse_entry, account_id=account_id)
    return {"deleted": trade.id, "balance": str(svc.get_account(account_id).balance)}


@app.post("/api/paper/quotes")
async def set_quote(body: QuoteBody, svc: PaperTradingService = Depends(get_service)) -> dict[str, Any]:
    if not svc.accepts_quotes:
        raise HTTPException(501, "Configured price source does not accept quotes")
    try:
        svc.set_quote(body.symbol, body.price)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {"symbol": body.symbol.upper(), "price": str(body.price)}


@app.get("/api/paper/quotes")
async def list_quotes(svc: PaperTradingService = Depends(get_service)) -> dict[str, Any]:
    if not svc.accepts_quotes:
        raise HTTPException(501, "Configured price source does not accept quotes")
    return {"quotes": {symbol: str(price) for symbol, price in svc.quotes().items()}}
