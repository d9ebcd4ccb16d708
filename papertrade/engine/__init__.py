"""
Paper-Trading Simulation Engine
===============================

A virtual brokerage ledger: one cash account, spot and option trades, and
the bookkeeping that keeps balance, lifecycle and P&L consistent.

Architecture:
  contracts.py  — Account and the tagged SpotTrade / OptionTrade union
  ledger.py     — balance and trade-history mutations
  payoff.py     — entry cash flow, close settlement, marking, decay estimate
  lifecycle.py  — open / close / expire / delete transitions and validation
  statistics.py — win rate, profit factor, total return, trade history frame
"""

from papertrade.engine.contracts import (
    CONTRACT_MULTIPLIER,
    Account,
    Direction,
    OptionTrade,
    SpotTrade,
    StrategyKind,
    Trade,
    TradeStatus,
    TradeType,
)
from papertrade.engine.ledger import (
    append_trade,
    apply_cash_effect,
    create_account,
    find_trade,
    remove_trade,
)
from papertrade.engine.lifecycle import (
    TradeRequest,
    close_trade,
    delete_trade,
    expire_trade,
    open_trade,
    reset_account,
    validate_request,
)
from papertrade.engine.payoff import (
    Settlement,
    close_settlement,
    entry_cash_flow,
    estimate_close_premium,
    payoff_bounds,
    unrealized_pnl,
)
from papertrade.engine.statistics import (
    AccountStats,
    closed_trades,
    compute_stats,
    open_trades,
    profit_factor,
    total_return_pct,
    total_unrealized_pnl,
    trades_frame,
    win_rate,
)

__all__ = [
    # Models
    "CONTRACT_MULTIPLIER", "Account", "Direction", "OptionTrade", "SpotTrade",
    "StrategyKind", "Trade", "TradeStatus", "TradeType",
    # Ledger
    "append_trade", "apply_cash_effect", "create_account", "find_trade", "remove_trade",
    # Lifecycle
    "TradeRequest", "close_trade", "delete_trade", "expire_trade", "open_trade",
    "reset_account", "validate_request",
    # Payoff
    "Settlement", "close_settlement", "entry_cash_flow", "estimate_close_premium",
    "payoff_bounds", "unrealized_pnl",
    # Statistics
    "AccountStats", "closed_trades", "compute_stats", "open_trades", "profit_factor",
    "total_return_pct", "total_unrealized_pnl", "trades_frame", "win_rate",
]
