"""
Strategy Payoff Engine — cash flows and P&L for every position kind.
=====================================================================

Pure functions: no mutation, no I/O. For a settlement price ``S`` and
``shares = contracts × 100``:

  kind               entry cash flow    close cash effect
  ─────────────────  ─────────────────  ──────────────────────────────────
  spot long          −E·q               +S·q
  spot short         +E·q               −S·q
  covered_call       P − E·sh           S·sh − max(0, S−K)·sh
  cash_secured_put   P − K·sh           K·sh − max(0, K−S)·sh
  protective_put     −P                 (S−E)·sh + max(0, K−S)·sh
  bull_call_spread   −P                 (max(0, S−K1) − max(0, S−K2))·sh
  bear_put_spread    −P                 (max(0, K1−S) − max(0, K2−S))·sh

Realized P&L is reported separately from the close cash effect. For every
kind, entry cash flow + close cash effect == realized P&L.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timezone
from decimal import Decimal
from typing import Optional

from papertrade.engine.contracts import (
    Direction,
    OptionTrade,
    SpotTrade,
    StrategyKind,
    Trade,
    utc_now,
)
from papertrade.utils.exceptions import TradeKindMismatch

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Time-decay approximation for an option's remaining premium
DECAY_REFERENCE_DAYS = Decimal("30")
DECAY_HAIRCUT = Decimal("0.8")
PREMIUM_QUANTUM = Decimal("0.0001")


@dataclass(frozen=True)
class Settlement:
    """Outcome of settling a trade at one price."""
    realized_pnl: Decimal     # shown to the user
    cash_effect: Decimal      # applied to the balance


def _clamp(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO


def call_intrinsic(price: Decimal, strike: Decimal) -> Decimal:
    return _clamp(price - strike)


def put_intrinsic(price: Decimal, strike: Decimal) -> Decimal:
    return _clamp(strike - price)


def _second_strike(trade: OptionTrade) -> Decimal:
    if trade.strike_price2 is None:
        raise TradeKindMismatch(f"{trade.strategy.value} trade has no second strike", trade.id)
    return trade.strike_price2


# ─── Entry ──────────────────────────────────────────────────

def entry_cash_flow(trade: Trade) -> Decimal:
    """Cash moved into (+) or out of (−) the account when the trade opens."""
    if isinstance(trade, SpotTrade):
        notional = trade.entry_price * trade.quantity
        return -notional if trade.direction == Direction.LONG else notional
    if isinstance(trade, OptionTrade):
        shares = Decimal(trade.shares)
        strategy = trade.strategy
        if strategy is StrategyKind.COVERED_CALL:
            # buy the shares, sell the call
            return trade.total_premium - trade.entry_price * shares
        if strategy is StrategyKind.CASH_SECURED_PUT:
            # reserve cash for assignment at the strike
            return trade.total_premium - trade.strike_price * shares
        # protective put and debit spreads only book the premium paid
        return -trade.total_premium
    raise TradeKindMismatch(f"Unsupported trade type: {type(trade).__name__}")


# ─── Close ──────────────────────────────────────────────────

def settle_spot(trade: Trade, price: Decimal) -> Settlement:
    if not isinstance(trade, SpotTrade):
        raise TradeKindMismatch("spot settlement applied to a non-spot trade", trade.id)
    if trade.direction == Direction.LONG:
        pnl = (price - trade.entry_price) * trade.quantity
        cash = price * trade.quantity
    else:
        pnl = (trade.entry_price - price) * trade.quantity
        cash = -(price * trade.quantity)
    return Settlement(realized_pnl=pnl, cash_effect=cash)


def settle_option(trade: Trade, price: Decimal) -> Settlement:
    if not isinstance(trade, OptionTrade):
        raise TradeKindMismatch("option settlement applied to a non-option trade", trade.id)

    shares = Decimal(trade.shares)
    strike = trade.strike_price
    strategy = trade.strategy

    if strategy is StrategyKind.COVERED_CALL:
        stock_pnl = (price - trade.entry_price) * shares
        call_payout = call_intrinsic(price, strike) * shares
        pnl = stock_pnl - call_payout + trade.total_premium
        # share proceeds, less the call's payout when assigned
        cash = price * shares - call_payout
    elif strategy is StrategyKind.CASH_SECURED_PUT:
        put_payout = put_intrinsic(price, strike) * shares
        pnl = trade.total_premium - put_payout
        # release the reserve, less the loss taken on assignment
        cash = strike * shares - put_payout
    elif strategy is StrategyKind.PROTECTIVE_PUT:
        stock_pnl = (price - trade.entry_price) * shares
        put_payout = put_intrinsic(price, strike) * shares
        pnl = stock_pnl + put_payout - trade.total_premium
        cash = stock_pnl + put_payout
    elif strategy is StrategyKind.BULL_CALL_SPREAD:
        long_call = call_intrinsic(price, strike)
        short_call = call_intrinsic(price, _second_strike(trade))
        pnl = (long_call - short_call - trade.premium) * shares
        cash = (long_call - short_call) * shares
    elif strategy is StrategyKind.BEAR_PUT_SPREAD:
        long_put = put_intrinsic(price, strike)
        short_put = put_intrinsic(price, _second_strike(trade))
        pnl = (long_put - short_put - trade.premium) * shares
        cash = (long_put - short_put) * shares
    else:
        raise TradeKindMismatch(f"Unsupported strategy: {strategy}", trade.id)

    return Settlement(realized_pnl=pnl, cash_effect=cash)


def close_settlement(trade: Trade, price: Decimal) -> Settlement:
    if isinstance(trade, SpotTrade):
        return settle_spot(trade, price)
    if isinstance(trade, OptionTrade):
        return settle_option(trade, price)
    raise TradeKindMismatch(f"Unsupported trade type: {type(trade).__name__}")


def return_percent(trade: Trade, pnl: Decimal) -> Decimal:
    """P&L as a percentage of premium (options) or cost basis (spot)."""
    if isinstance(trade, OptionTrade):
        basis = trade.total_premium
    else:
        basis = trade.entry_price * trade.quantity
    if basis > ZERO:
        return pnl / basis * HUNDRED
    return ZERO


# ─── Marking open trades ────────────────────────────────────

def unrealized_pnl(trade: Trade, price: Decimal) -> Decimal:
    """P&L a close at ``price`` would realize; zero once settled."""
    if not trade.is_open:
        return ZERO
    return close_settlement(trade, price).realized_pnl


def days_to_expiry(trade: OptionTrade, now: Optional[datetime] = None) -> Decimal:
    now = now or utc_now()
    expiry = datetime.combine(trade.expiration_date, time.min, tzinfo=timezone.utc)
    days = (expiry - now).total_seconds() / 86400
    return _clamp(Decimal(str(days)))


def estimate_close_premium(trade: Trade, now: Optional[datetime] = None) -> Decimal:
    """Rough remaining premium: premium × √(days_left / 30) × 0.8."""
    if not isinstance(trade, OptionTrade):
        raise TradeKindMismatch("premium estimate requested for a non-option trade", trade.id)
    decay = (days_to_expiry(trade, now) / DECAY_REFERENCE_DAYS).sqrt()
    return (trade.premium * decay * DECAY_HAIRCUT).quantize(PREMIUM_QUANTUM)


def payoff_bounds(trade: Trade) -> tuple[Optional[Decimal], Optional[Decimal]]:
    """(max_profit, max_loss) at settlement; None where unbounded."""
    if isinstance(trade, SpotTrade):
        notional = trade.entry_price * trade.quantity
        if trade.direction == Direction.LONG:
            return None, notional
        return notional, None

    shares = Decimal(trade.shares)
    strike = trade.strike_price
    premium_paid = trade.total_premium
    strategy = trade.strategy

    if strategy is StrategyKind.COVERED_CALL:
        return (strike - trade.entry_price) * shares + premium_paid, trade.entry_price * shares - premium_paid
    if strategy is StrategyKind.CASH_SECURED_PUT:
        return premium_paid, strike * shares - premium_paid
    if strategy is StrategyKind.PROTECTIVE_PUT:
        return None, (trade.entry_price - strike) * shares + premium_paid
    width = abs(_second_strike(trade) - strike)
    return (width - trade.premium) * shares, premium_paid
