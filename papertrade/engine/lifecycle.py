"""
Trade Lifecycle — open → closed | expired, plus delete and reset.

Every operation validates and computes its cash effects before touching the
account, so a failure leaves the account exactly as it was.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel

from papertrade.engine.contracts import (
    CONTRACT_MULTIPLIER,
    SPREAD_KINDS,
    STRATEGY_DIRECTION,
    STRATEGY_LABELS,
    STRATEGY_OPTION_TYPE,
    Account,
    Direction,
    OptionTrade,
    SpotTrade,
    StrategyKind,
    Trade,
    TradeStatus,
    TradeType,
    utc_now,
)
from papertrade.engine.ledger import append_trade, apply_cash_effect, create_account, find_trade, remove_trade
from papertrade.engine.payoff import (
    ZERO,
    close_settlement,
    entry_cash_flow,
    return_percent,
    settle_option,
)
from papertrade.utils.exceptions import (
    AlreadyClosed,
    InsufficientFunds,
    InvalidTradeParameters,
    TradeKindMismatch,
)
from papertrade.utils.logger import get_logger

logger = get_logger(__name__)


class TradeRequest(BaseModel):
    """What the caller asks to open. Sizing fields depend on ``trade_type``."""
    trade_type: TradeType
    symbol: str
    entry_price: Decimal

    # Spot
    direction: Optional[Direction] = None
    quantity: Optional[Decimal] = None

    # Options
    strategy: Optional[StrategyKind] = None
    strike_price: Optional[Decimal] = None
    strike_price2: Optional[Decimal] = None
    contracts: Optional[int] = None
    premium: Optional[Decimal] = None
    expiration_date: Optional[date] = None
    iv: Optional[Decimal] = None

    notes: Optional[str] = None
    signal: Optional[str] = None


def new_trade_id() -> str:
    return uuid.uuid4().hex[:12]


# ─── Validation ─────────────────────────────────────────────

def _validate_spot(request: TradeRequest, fractional_symbols: Iterable[str]) -> list[str]:
    issues = []
    if request.direction is None:
        issues.append("direction is required for spot trades")
    if request.quantity is None or request.quantity <= 0:
        issues.append("quantity must be greater than 0")
    elif request.symbol.upper() not in {s.upper() for s in fractional_symbols}:
        if request.quantity != request.quantity.to_integral_value():
            issues.append(f"quantity must be a whole number for {request.symbol}")
    return issues


def _validate_option(request: TradeRequest) -> list[str]:
    issues = []
    if request.strategy is None:
        issues.append("strategy is required for option trades")
    if request.contracts is None or request.contracts < 1:
        issues.append("contracts must be at least 1")
    if request.strike_price is None or request.strike_price <= 0:
        issues.append("strike_price must be greater than 0")
    if request.premium is None or request.premium < 0:
        issues.append("premium must be 0 or greater")
    if request.expiration_date is None:
        issues.append("expiration_date is required for option trades")

    strike, strike2 = request.strike_price, request.strike_price2
    if request.strategy in SPREAD_KINDS:
        if strike2 is None:
            issues.append("strike_price2 is required for spreads")
        elif strike2 <= 0:
            issues.append("strike_price2 must be greater than 0")
        elif strike is not None:
            if strike2 == strike:
                issues.append("strike_price2 must differ from strike_price")
            elif request.strategy is StrategyKind.BULL_CALL_SPREAD and strike2 < strike:
                issues.append("bull_call_spread needs strike_price2 above strike_price")
            elif request.strategy is StrategyKind.BEAR_PUT_SPREAD and strike2 > strike:
                issues.append("bear_put_spread needs strike_price2 below strike_price")
    elif strike2 is not None and request.strategy is not None:
        issues.append(f"strike_price2 only applies to spreads, not {request.strategy.value}")
    return issues


def validate_request(request: TradeRequest, fractional_symbols: Iterable[str] = ()) -> list[str]:
    """Return every violated constraint; empty when the request can be opened."""
    issues = []
    if not request.symbol.strip():
        issues.append("symbol is required")
    if request.entry_price <= 0:
        issues.append("entry_price must be greater than 0")
    if request.trade_type == TradeType.SPOT:
        issues.extend(_validate_spot(request, fractional_symbols))
    else:
        issues.extend(_validate_option(request))
    return issues


def _build_trade(request: TradeRequest, now: datetime) -> Trade:
    common = dict(
        id=new_trade_id(),
        symbol=request.symbol.strip().upper(),
        entry_price=request.entry_price,
        opened_at=now,
        status=TradeStatus.OPEN,
        notes=request.notes,
        signal=request.signal,
    )
    if request.trade_type == TradeType.SPOT:
        return SpotTrade(direction=request.direction, quantity=request.quantity, **common)

    shares = request.contracts * CONTRACT_MULTIPLIER
    return OptionTrade(
        direction=STRATEGY_DIRECTION[request.strategy],
        strategy=request.strategy,
        strategy_name=STRATEGY_LABELS[request.strategy],
        option_type=STRATEGY_OPTION_TYPE[request.strategy],
        strike_price=request.strike_price,
        strike_price2=request.strike_price2,
        contracts=request.contracts,
        shares=shares,
        premium=request.premium,
        total_premium=request.premium * shares,
        expiration_date=request.expiration_date,
        iv=request.iv,
        **common,
    )


# ─── Transitions ────────────────────────────────────────────

def open_trade(
    account: Account,
    request: TradeRequest,
    *,
    allow_negative_balance: bool = False,
    fractional_symbols: Iterable[str] = (),
    now: Optional[datetime] = None,
) -> Trade:
    """Validate, book the entry cash flow and append a new open trade."""
    issues = validate_request(request, fractional_symbols)
    if issues:
        logger.info("trade_rejected", symbol=request.symbol, violations=issues)
        raise InvalidTradeParameters(issues)

    trade = _build_trade(request, now or utc_now())
    cash = entry_cash_flow(trade)
    # only debits are refused
    if cash < 0 and account.balance + cash < 0 and not allow_negative_balance:
        raise InsufficientFunds(required=-cash, available=account.balance)

    append_trade(account, trade)
    apply_cash_effect(account, cash)
    _flag_overdrawn(account, trade)

    logger.info(
        "trade_opened",
        trade_id=trade.id,
        trade_type=trade.trade_type,
        symbol=trade.symbol,
        cash_effect=cash,
        balance=account.balance,
    )
    return trade


def _ensure_open(trade: Trade) -> None:
    if trade.status != TradeStatus.OPEN:
        raise AlreadyClosed(trade.id, trade.status.value)


def _ensure_positive_price(field: str, price: Decimal) -> None:
    if price <= 0:
        raise InvalidTradeParameters([f"{field} must be greater than 0"])


def _flag_overdrawn(account: Account, trade: Trade) -> None:
    if account.is_overdrawn:
        logger.warning("balance_negative", trade_id=trade.id, balance=account.balance)


def close_trade(
    account: Account,
    trade_id: str,
    close_price: Decimal,
    close_premium: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> Trade:
    """Settle an open trade at ``close_price`` and freeze its P&L."""
    trade = find_trade(account, trade_id)
    _ensure_open(trade)
    if isinstance(trade, SpotTrade) and close_premium is not None:
        raise TradeKindMismatch("close_premium given for a spot trade", trade.id)
    _ensure_positive_price("close_price", close_price)

    settlement = close_settlement(trade, close_price)
    pnl_pct = return_percent(trade, settlement.realized_pnl)

    apply_cash_effect(account, settlement.cash_effect)
    trade.close_price = close_price
    if isinstance(trade, OptionTrade):
        trade.close_premium = close_premium
    trade.closed_at = now or utc_now()
    trade.pnl = settlement.realized_pnl
    trade.pnl_percent = pnl_pct
    trade.status = TradeStatus.CLOSED
    _flag_overdrawn(account, trade)

    logger.info(
        "trade_closed",
        trade_id=trade.id,
        close_price=close_price,
        pnl=settlement.realized_pnl,
        cash_effect=settlement.cash_effect,
        balance=account.balance,
    )
    return trade


def expire_trade(
    account: Account,
    trade_id: str,
    settlement_price: Decimal,
    now: Optional[datetime] = None,
) -> Trade:
    """Settle an option that reached expiration without being closed."""
    trade = find_trade(account, trade_id)
    _ensure_open(trade)
    if not isinstance(trade, OptionTrade):
        raise TradeKindMismatch("only option trades can expire", trade.id)
    now = now or utc_now()
    if now.date() < trade.expiration_date:
        raise InvalidTradeParameters(
            [f"trade {trade.id} does not expire until {trade.expiration_date.isoformat()}"]
        )
    _ensure_positive_price("settlement_price", settlement_price)

    settlement = settle_option(trade, settlement_price)
    pnl_pct = return_percent(trade, settlement.realized_pnl)

    apply_cash_effect(account, settlement.cash_effect)
    trade.close_price = settlement_price
    trade.close_premium = ZERO
    trade.closed_at = now
    trade.pnl = settlement.realized_pnl
    trade.pnl_percent = pnl_pct
    trade.status = TradeStatus.EXPIRED
    _flag_overdrawn(account, trade)

    logger.info(
        "trade_expired",
        trade_id=trade.id,
        settlement_price=settlement_price,
        pnl=settlement.realized_pnl,
        balance=account.balance,
    )
    return trade


def delete_trade(account: Account, trade_id: str, *, reverse_entry: bool = False) -> Trade:
    """Forget a trade record.

    Cash already booked for the trade stays on the balance. With
    ``reverse_entry`` an open trade's entry cash flow is handed back first;
    settled trades are never reversed.
    """
    trade = find_trade(account, trade_id)
    if trade.is_open and reverse_entry:
        reversal = -entry_cash_flow(trade)
        remove_trade(account, trade_id)
        apply_cash_effect(account, reversal)
        logger.info("trade_deleted_with_reversal", trade_id=trade_id, cash_effect=reversal)
        return trade

    remove_trade(account, trade_id)
    if trade.is_open:
        logger.warning("trade_deleted_without_reversal", trade_id=trade_id, balance=account.balance)
    else:
        logger.info("trade_deleted", trade_id=trade_id, status=trade.status.value)
    return trade


def reset_account(starting_balance: Decimal, now: Optional[datetime] = None) -> Account:
    account = create_account(starting_balance, now)
    logger.info("account_reset", starting_balance=account.starting_balance)
    return account
