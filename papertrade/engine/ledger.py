"""Account ledger — the single path for cash and trade-history changes."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from papertrade.engine.contracts import Account, Trade, utc_now
from papertrade.utils.exceptions import DuplicateTradeId, TradeNotFound


def create_account(starting_balance: Decimal, now: Optional[datetime] = None) -> Account:
    starting = Decimal(starting_balance)
    return Account(
        balance=starting,
        starting_balance=starting,
        trades=[],
        created_at=now or utc_now(),
    )


def apply_cash_effect(account: Account, amount: Decimal) -> Decimal:
    """Credit (positive) or debit (negative) the balance. Returns the new balance."""
    account.balance = account.balance + amount
    return account.balance


def append_trade(account: Account, trade: Trade) -> None:
    if any(t.id == trade.id for t in account.trades):
        raise DuplicateTradeId(trade.id)
    account.trades.append(trade)


def find_trade(account: Account, trade_id: str) -> Trade:
    for trade in account.trades:
        if trade.id == trade_id:
            return trade
    raise TradeNotFound(trade_id)


def remove_trade(account: Account, trade_id: str) -> Trade:
    """Drop a trade from the history. Balance is left untouched."""
    trade = find_trade(account, trade_id)
    account.trades = [t for t in account.trades if t.id != trade_id]
    return trade
