"""
Paper trading service — load the account, run one engine operation, save it.

The service owns no account state between calls. It is wired with an
AccountStore and a PriceSource; both are plain collaborators passed in.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional, TypeVar

from papertrade.api.price_source import PriceSource, StaticPriceSource
from papertrade.engine import lifecycle
from papertrade.engine.contracts import Account, OptionTrade, Trade, utc_now
from papertrade.engine.ledger import create_account, find_trade
from papertrade.engine.payoff import days_to_expiry, estimate_close_premium, payoff_bounds, unrealized_pnl
from papertrade.engine.statistics import AccountStats, compute_stats, open_trades, trades_frame
from papertrade.store.account_store import AccountStore, build_store
from papertrade.utils.config import Settings, get_settings
from papertrade.utils.exceptions import AlreadyClosed
from papertrade.utils.logger import account_context, get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class PaperTradingService:
    def __init__(
        self,
        store: AccountStore,
        prices: PriceSource,
        settings: Optional[Settings] = None,
    ) -> None:
        self._store = store
        self._prices = prices
        self._settings = settings or get_settings()

    @property
    def accepts_quotes(self) -> bool:
        return isinstance(self._prices, StaticPriceSource)

    def set_quote(self, symbol: str, price: Decimal) -> None:
        if not isinstance(self._prices, StaticPriceSource):
            raise TypeError(f"{type(self._prices).__name__} does not accept quotes")
        self._prices.set_price(symbol, price)

    def quotes(self) -> dict[str, Decimal]:
        if not isinstance(self._prices, StaticPriceSource):
            raise TypeError(f"{type(self._prices).__name__} does not list quotes")
        return self._prices.snapshot()

    def _account_id(self, account_id: Optional[str]) -> str:
        return account_id or self._settings.default_account_id

    # ─── Account ────────────────────────────────────────────

    def get_account(self, account_id: Optional[str] = None) -> Account:
        """Load the account, creating it with the configured deposit on first use.

        Store failures propagate; they never turn into a fresh account.
        """
        aid = self._account_id(account_id)
        account = self._store.load(aid)
        if account is None:
            account = create_account(self._settings.starting_balance)
            self._store.save(aid, account)
            logger.info("account_created", account_id=aid, starting_balance=account.starting_balance)
        return account

    def _mutate(self, account_id: Optional[str], op: Callable[[Account], T]) -> T:
        aid = self._account_id(account_id)
        with account_context(aid):
            account = self.get_account(aid)
            result = op(account)
            self._store.save(aid, account)
        return result

    def reset_account(self, account_id: Optional[str] = None) -> Account:
        aid = self._account_id(account_id)
        account = lifecycle.reset_account(self._settings.starting_balance)
        self._store.save(aid, account)
        return account

    # ─── Trades ─────────────────────────────────────────────

    def open_trade(self, request: lifecycle.TradeRequest, account_id: Optional[str] = None) -> Trade:
        return self._mutate(
            account_id,
            lambda account: lifecycle.open_trade(
                account,
                request,
                allow_negative_balance=self._settings.allow_negative_balance,
                fractional_symbols=self._settings.fractional_symbols,
            ),
        )

    def close_trade(
        self,
        trade_id: str,
        close_price: Optional[Decimal] = None,
        close_premium: Optional[Decimal] = None,
        account_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Trade:
        """Close at the given price, or the current quote when none is given.

        Options closed without a premium get the time-decay estimate.
        """
        now = now or utc_now()

        def op(account: Account) -> Trade:
            trade = find_trade(account, trade_id)
            if not trade.is_open:
                raise AlreadyClosed(trade.id, trade.status.value)
            price = close_price if close_price is not None else self._prices.get_price(trade.symbol)
            premium = close_premium
            if premium is None and isinstance(trade, OptionTrade):
                premium = estimate_close_premium(trade, now)
            return lifecycle.close_trade(account, trade_id, price, premium, now)

        return self._mutate(account_id, op)

    def expire_trade(
        self,
        trade_id: str,
        settlement_price: Optional[Decimal] = None,
        account_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Trade:
        def op(account: Account) -> Trade:
            trade = find_trade(account, trade_id)
            if not trade.is_open:
                raise AlreadyClosed(trade.id, trade.status.value)
            price = settlement_price if settlement_price is not None else self._prices.get_price(trade.symbol)
            return lifecycle.expire_trade(account, trade_id, price, now)

        return self._mutate(account_id, op)

    def expire_due_trades(self, as_of: Optional[datetime] = None, account_id: Optional[str] = None) -> list[Trade]:
        """Expire every open option whose expiration date has passed."""
        as_of = as_of or utc_now()

        def op(account: Account) -> list[Trade]:
            due = [
                t for t in open_trades(account)
                if isinstance(t, OptionTrade) and t.expiration_date <= as_of.date()
            ]
            # quote everything first so a missing price leaves the account untouched
            quotes = {t.id: self._prices.get_price(t.symbol) for t in due}
            return [lifecycle.expire_trade(account, t.id, quotes[t.id], as_of) for t in due]

        expired = self._mutate(account_id, op)
        if expired:
            logger.info("trades_expired", count=len(expired), as_of=as_of.isoformat())
        return expired

    def delete_trade(
        self,
        trade_id: str,
        reverse_entry: bool = False,
        account_id: Optional[str] = None,
    ) -> Trade:
        return self._mutate(
            account_id,
            lambda account: lifecycle.delete_trade(account, trade_id, reverse_entry=reverse_entry),
        )

    # ─── Read-only views ────────────────────────────────────

    def get_stats(self, account_id: Optional[str] = None) -> AccountStats:
        return compute_stats(self.get_account(account_id))

    def get_open_positions(
        self,
        account_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        """Open trades marked to the current quote."""
        now = now or utc_now()
        positions = []
        for trade in open_trades(self.get_account(account_id)):
            price = self._prices.get_price(trade.symbol)
            max_profit, max_loss = payoff_bounds(trade)
            row = trade.model_dump(by_alias=True, mode="json")
            row["currentPrice"] = str(price)
            row["unrealizedPnl"] = str(unrealized_pnl(trade, price))
            row["maxProfit"] = None if max_profit is None else str(max_profit)
            row["maxLoss"] = None if max_loss is None else str(max_loss)
            if isinstance(trade, OptionTrade):
                row["daysToExpiry"] = float(round(days_to_expiry(trade, now), 2))
                row["estimatedPremium"] = str(estimate_close_premium(trade, now))
            positions.append(row)
        return positions

    def export_trades_csv(self, account_id: Optional[str] = None) -> str:
        return trades_frame(self.get_account(account_id)).to_csv(index=False)


class PaperTradingServiceManager:
    _instance: Optional[PaperTradingService] = None

    @classmethod
    def get_instance(cls) -> PaperTradingService:
        if cls._instance is None:
            settings = get_settings()
            store = build_store(settings.store_backend, settings.store_path)
            cls._instance = PaperTradingService(store, StaticPriceSource(), settings)
        return cls._instance

    @classmethod
    def set_instance(cls, service: Optional[PaperTradingService]) -> None:
        cls._instance = service
