"""
Statistics Aggregator — read-only performance metrics over an Account.

Everything here is a pure function of the account snapshot and is recomputed
on every call; nothing is cached on the account.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

import pandas as pd

from papertrade.engine.contracts import Account, Trade, TradeStatus
from papertrade.engine.payoff import HUNDRED, ZERO, unrealized_pnl
from papertrade.utils.exceptions import PriceUnavailable

TRADE_COLUMNS = [
    "id", "tradeType", "symbol", "direction", "strategy", "status",
    "entryPrice", "quantity", "strikePrice", "strikePrice2", "contracts",
    "shares", "premium", "totalPremium", "expirationDate", "openedAt",
    "closedAt", "closePrice", "closePremium", "pnl", "pnlPercent",
    "signal", "notes",
]

NUMERIC_COLUMNS = [
    "entryPrice", "quantity", "strikePrice", "strikePrice2", "premium",
    "totalPremium", "closePrice", "closePremium", "pnl", "pnlPercent",
]


def open_trades(account: Account) -> list[Trade]:
    return [t for t in account.trades if t.status == TradeStatus.OPEN]


def closed_trades(account: Account) -> list[Trade]:
    """Settled trades: explicitly closed or expired."""
    return [t for t in account.trades if t.status != TradeStatus.OPEN]


def _pnl(trade: Trade) -> Decimal:
    return trade.pnl if trade.pnl is not None else ZERO


def _split(trades: list[Trade]) -> tuple[list[Decimal], list[Decimal]]:
    pnls = [_pnl(t) for t in trades]
    return [p for p in pnls if p > 0], [p for p in pnls if p <= 0]


def _mean(values: list[Decimal]) -> Decimal:
    return sum(values, ZERO) / len(values) if values else ZERO


def win_rate(account: Account) -> Decimal:
    closed = closed_trades(account)
    if not closed:
        return ZERO
    wins, _ = _split(closed)
    return Decimal(len(wins)) / Decimal(len(closed)) * HUNDRED


def profit_factor(account: Account) -> Decimal:
    """|average win| / |average loss|; 0 when there are no losses."""
    wins, losses = _split(closed_trades(account))
    avg_loss = _mean(losses)
    if avg_loss == 0:
        return ZERO
    return abs(_mean(wins)) / abs(avg_loss)


def total_return_pct(account: Account) -> Decimal:
    if account.starting_balance == 0:
        return ZERO
    return (account.balance - account.starting_balance) / account.starting_balance * HUNDRED


def total_unrealized_pnl(account: Account, prices: Mapping[str, Decimal]) -> Decimal:
    total = ZERO
    for trade in open_trades(account):
        if trade.symbol not in prices:
            raise PriceUnavailable(trade.symbol)
        total += unrealized_pnl(trade, prices[trade.symbol])
    return total


@dataclass
class AccountStats:
    balance: Decimal
    starting_balance: Decimal
    total_return_pct: Decimal
    total_pnl: Decimal
    total_trades: int
    open_trades: int
    win_rate: Decimal
    wins: int
    losses: int
    avg_win: Decimal
    avg_loss: Decimal
    profit_factor: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "balance": float(round(self.balance, 2)),
            "starting_balance": float(round(self.starting_balance, 2)),
            "total_return_pct": float(round(self.total_return_pct, 2)),
            "total_pnl": float(round(self.total_pnl, 2)),
            "total_trades": self.total_trades,
            "open_trades": self.open_trades,
            "win_rate": float(round(self.win_rate, 2)),
            "wins": self.wins,
            "losses": self.losses,
            "avg_win": float(round(self.avg_win, 2)),
            "avg_loss": float(round(self.avg_loss, 2)),
            "profit_factor": float(round(self.profit_factor, 2)),
        }


def compute_stats(account: Account) -> AccountStats:
    closed = closed_trades(account)
    wins, losses = _split(closed)
    return AccountStats(
        balance=account.balance,
        starting_balance=account.starting_balance,
        total_return_pct=total_return_pct(account),
        total_pnl=sum((_pnl(t) for t in closed), ZERO),
        total_trades=len(closed),
        open_trades=len(open_trades(account)),
        win_rate=win_rate(account),
        wins=len(wins),
        losses=len(losses),
        avg_win=_mean(wins),
        avg_loss=_mean(losses),
        profit_factor=profit_factor(account),
    )


def trades_frame(account: Account) -> pd.DataFrame:
    """Trade history as a DataFrame, one row per trade in insertion order."""
    records = [t.model_dump(by_alias=True, mode="json") for t in account.trades]
    df = pd.DataFrame.from_records(records).reindex(columns=TRADE_COLUMNS)
    for col in NUMERIC_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df
