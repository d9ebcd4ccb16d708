"""
Trade Lifecycle Tests — open / close / expire / delete.

Validates:
  - Request validation lists every violated constraint
  - Spread strike ordering
  - Negative-balance policy
  - Close freezes P&L and rejects a second close without side effects
  - Expiry is caller-driven and option-only
  - Delete forgets records without reversing cash unless asked
  - Balance conservation over long random open/close sequences
"""

from __future__ import annotations

import random
from datetime import timedelta
from decimal import Decimal

import pytest
from structlog.testing import capture_logs

from conftest import (
    EXPIRY,
    FIXED_NOW,
    STARTING_BALANCE,
    option_request,
    random_request,
    spot_request,
)
from papertrade.engine.contracts import (
    CONTRACT_MULTIPLIER,
    Direction,
    OptionTrade,
    SpotTrade,
    StrategyKind,
    TradeStatus,
)
from papertrade.engine.lifecycle import (
    close_trade,
    delete_trade,
    expire_trade,
    open_trade,
    reset_account,
    validate_request,
)
from papertrade.engine.payoff import close_settlement, entry_cash_flow
from papertrade.utils.exceptions import (
    AlreadyClosed,
    InsufficientFunds,
    InvalidTradeParameters,
    TradeKindMismatch,
    TradeNotFound,
)

D = Decimal


# ═══════════════════════════════════════════════════════════
# 1. VALIDATION
# ═══════════════════════════════════════════════════════════

class TestValidation:

    def test_valid_requests_have_no_violations(self):
        assert validate_request(spot_request()) == []
        assert validate_request(option_request()) == []

    def test_non_positive_entry_price(self, account):
        with pytest.raises(InvalidTradeParameters) as exc:
            open_trade(account, spot_request(entry_price="0"))
        assert "entry_price must be greater than 0" in exc.value.violations

    def test_non_positive_quantity(self, account):
        with pytest.raises(InvalidTradeParameters) as exc:
            open_trade(account, spot_request(quantity="-1"))
        assert "quantity must be greater than 0" in exc.value.violations

    def test_every_violation_is_listed(self):
        issues = validate_request(option_request(strike_price="0", contracts=0, premium="-1"))
        assert "contracts must be at least 1" in issues
        assert "strike_price must be greater than 0" in issues
        assert "premium must be 0 or greater" in issues

    def test_fractional_quantity_only_for_listed_symbols(self):
        assert validate_request(spot_request(symbol="MSTR", quantity="1.5"), ["BTC"]) == [
            "quantity must be a whole number for MSTR"
        ]
        assert validate_request(spot_request(symbol="BTC", quantity="0.015"), ["BTC"]) == []

    def test_second_strike_rejected_outside_spreads(self):
        issues = validate_request(option_request(StrategyKind.COVERED_CALL, strike_price2="120"))
        assert issues == ["strike_price2 only applies to spreads, not covered_call"]

    def test_spread_requires_second_strike(self):
        issues = validate_request(option_request(StrategyKind.BULL_CALL_SPREAD, strike_price="100"))
        assert issues == ["strike_price2 is required for spreads"]

    @pytest.mark.parametrize("strike2", ["100", "95", "50"])
    def test_bull_call_spread_needs_higher_second_strike(self, account, strike2):
        request = option_request(StrategyKind.BULL_CALL_SPREAD, strike_price="100", strike_price2=strike2)
        with pytest.raises(InvalidTradeParameters):
            open_trade(account, request)
        assert account.trades == []
        assert account.balance == STARTING_BALANCE

    @pytest.mark.parametrize("strike2", ["100", "105", "150"])
    def test_bear_put_spread_needs_lower_second_strike(self, account, strike2):
        request = option_request(StrategyKind.BEAR_PUT_SPREAD, strike_price="100", strike_price2=strike2)
        with pytest.raises(InvalidTradeParameters):
            open_trade(account, request)

    def test_equal_strikes_reported_as_such(self):
        issues = validate_request(
            option_request(StrategyKind.BEAR_PUT_SPREAD, strike_price="100", strike_price2="100")
        )
        assert issues == ["strike_price2 must differ from strike_price"]


# ═══════════════════════════════════════════════════════════
# 2. OPEN
# ═══════════════════════════════════════════════════════════

class TestOpenTrade:

    def test_spot_open_debits_and_appends(self, account):
        trade = open_trade(account, spot_request(), now=FIXED_NOW)
        assert isinstance(trade, SpotTrade)
        assert trade.status == TradeStatus.OPEN
        assert trade.opened_at == FIXED_NOW
        assert account.trades == [trade]
        assert account.balance == STARTING_BALANCE - D("1000")

    def test_option_open_derives_sizing(self, account):
        trade = open_trade(account, option_request(contracts=3, premium="2.5"))
        assert isinstance(trade, OptionTrade)
        assert trade.shares == 3 * CONTRACT_MULTIPLIER
        assert trade.total_premium == D("750")
        assert trade.direction == Direction.SHORT
        assert trade.strategy_name == "Covered Call"

    def test_ids_are_unique(self, account):
        ids = {open_trade(account, spot_request(quantity="1")).id for _ in range(50)}
        assert len(ids) == 50

    def test_signal_and_notes_are_kept(self, account):
        trade = open_trade(account, spot_request(signal="vault_buy", notes="breakout"))
        assert trade.signal == "vault_buy"
        assert trade.notes == "breakout"

    def test_insufficient_cash_rejected_without_side_effects(self, account):
        request = option_request(StrategyKind.CASH_SECURED_PUT, strike_price="2000", premium="5")
        with pytest.raises(InsufficientFunds):
            open_trade(account, request)
        assert account.balance == STARTING_BALANCE
        assert account.trades == []

    def test_negative_balance_allowed_when_configured(self, account):
        request = option_request(StrategyKind.CASH_SECURED_PUT, strike_price="2000", premium="5")
        open_trade(account, request, allow_negative_balance=True)
        assert account.balance == STARTING_BALANCE + D("500") - D("200000")
        assert account.is_overdrawn

    def test_overdrawn_account_still_takes_credits(self, account):
        open_trade(
            account,
            option_request(StrategyKind.CASH_SECURED_PUT, strike_price="2000", premium="5"),
            allow_negative_balance=True,
        )
        overdrawn = account.balance

        short = open_trade(account, spot_request(direction="short", entry_price="100", quantity="10"))

        assert short.status == TradeStatus.OPEN
        assert account.balance == overdrawn + D("1000")
        with pytest.raises(InsufficientFunds) as exc:
            open_trade(account, spot_request(direction="long", entry_price="100", quantity="10"))
        assert exc.value.required == D("1000")
        assert account.balance == overdrawn + D("1000")

    def test_symbol_is_trimmed_and_upper_cased(self, account):
        trade = open_trade(account, spot_request(symbol="  mstr "))
        assert trade.symbol == "MSTR"


# ═══════════════════════════════════════════════════════════
# 3. CLOSE
# ═══════════════════════════════════════════════════════════

class TestCloseTrade:

    def test_covered_call_round_trip(self, account):
        trade = open_trade(account, option_request())
        assert account.balance == STARTING_BALANCE - D("9800")

        close_trade(account, trade.id, D("115"), D("0.5"), now=FIXED_NOW)

        assert trade.status == TradeStatus.CLOSED
        assert trade.pnl == D("1200")
        assert trade.pnl_percent == D("600")
        assert trade.close_price == D("115")
        assert trade.close_premium == D("0.5")
        assert trade.closed_at == FIXED_NOW
        assert account.balance - STARTING_BALANCE == D("1200")

    def test_second_close_rejected_and_balance_untouched(self, account):
        trade = open_trade(account, spot_request())
        close_trade(account, trade.id, D("120"))
        balance = account.balance
        pnl = trade.pnl

        for price in ("50", "120", "500"):
            with pytest.raises(AlreadyClosed):
                close_trade(account, trade.id, D(price))

        assert account.balance == balance
        assert trade.pnl == pnl

    def test_unknown_trade(self, account):
        with pytest.raises(TradeNotFound):
            close_trade(account, "missing", D("100"))

    def test_option_close_data_on_spot_fails_closed(self, account):
        trade = open_trade(account, spot_request())
        balance = account.balance
        with pytest.raises(TradeKindMismatch):
            close_trade(account, trade.id, D("110"), close_premium=D("1"))
        assert trade.status == TradeStatus.OPEN
        assert account.balance == balance

    def test_spot_pnl_percent_on_cost_basis(self, account):
        trade = open_trade(account, spot_request(direction="short", entry_price="200", quantity="5"))
        close_trade(account, trade.id, D("150"))
        assert trade.pnl == D("250")
        assert trade.pnl_percent == D("25")

    @pytest.mark.parametrize("price", ["0", "-50"])
    def test_non_positive_close_price_rejected(self, account, price):
        trade = open_trade(account, option_request())
        balance = account.balance
        with pytest.raises(InvalidTradeParameters) as exc:
            close_trade(account, trade.id, D(price))
        assert exc.value.violations == ["close_price must be greater than 0"]
        assert trade.status == TradeStatus.OPEN
        assert trade.pnl is None
        assert account.balance == balance

    def test_close_into_overdraft_is_flagged(self, account):
        trade = open_trade(account, spot_request(direction="short", entry_price="100", quantity="500"))
        with capture_logs() as logs:
            close_trade(account, trade.id, D("1000"))

        assert account.balance == D("-350000")
        assert account.is_overdrawn
        flagged = [e for e in logs if e["event"] == "balance_negative"]
        assert len(flagged) == 1
        assert flagged[0]["log_level"] == "warning"
        assert flagged[0]["trade_id"] == trade.id

    def test_close_within_cash_not_flagged(self, account):
        trade = open_trade(account, spot_request())
        with capture_logs() as logs:
            close_trade(account, trade.id, D("90"))
        assert all(e["event"] != "balance_negative" for e in logs)


# ═══════════════════════════════════════════════════════════
# 4. EXPIRE
# ═══════════════════════════════════════════════════════════

class TestExpireTrade:

    def test_expire_after_expiration_date(self, account):
        trade = open_trade(account, option_request(StrategyKind.CASH_SECURED_PUT, strike_price="95", premium="3"))
        after = FIXED_NOW.replace(year=EXPIRY.year, month=EXPIRY.month, day=EXPIRY.day) + timedelta(hours=1)

        expire_trade(account, trade.id, D("100"), now=after)

        assert trade.status == TradeStatus.EXPIRED
        assert trade.close_premium == 0
        assert trade.pnl == D("300")
        assert account.balance == STARTING_BALANCE + D("300")

    def test_expire_before_expiration_rejected(self, account):
        trade = open_trade(account, option_request())
        with pytest.raises(InvalidTradeParameters):
            expire_trade(account, trade.id, D("100"), now=FIXED_NOW)
        assert trade.status == TradeStatus.OPEN

    def test_spot_cannot_expire(self, account):
        trade = open_trade(account, spot_request())
        with pytest.raises(TradeKindMismatch):
            expire_trade(account, trade.id, D("100"), now=FIXED_NOW + timedelta(days=365))

    def test_closed_trade_cannot_expire(self, account):
        trade = open_trade(account, option_request())
        close_trade(account, trade.id, D("100"))
        with pytest.raises(AlreadyClosed):
            expire_trade(account, trade.id, D("100"), now=FIXED_NOW + timedelta(days=365))

    def test_non_positive_settlement_price_rejected(self, account):
        trade = open_trade(account, option_request())
        balance = account.balance
        with pytest.raises(InvalidTradeParameters) as exc:
            expire_trade(account, trade.id, D("0"), now=FIXED_NOW + timedelta(days=365))
        assert exc.value.violations == ["settlement_price must be greater than 0"]
        assert trade.status == TradeStatus.OPEN
        assert account.balance == balance

    def test_expiry_into_overdraft_is_flagged(self, account):
        trade = open_trade(
            account,
            option_request(StrategyKind.PROTECTIVE_PUT, strike_price="95", premium="4", contracts=300),
            allow_negative_balance=True,
        )
        with capture_logs() as logs:
            expire_trade(account, trade.id, D("1"), now=FIXED_NOW + timedelta(days=365))

        assert account.is_overdrawn
        assert any(e["event"] == "balance_negative" and e["log_level"] == "warning" for e in logs)


# ═══════════════════════════════════════════════════════════
# 5. DELETE / RESET
# ═══════════════════════════════════════════════════════════

class TestDeleteTrade:

    def test_delete_open_keeps_cash_by_default(self, account):
        trade = open_trade(account, spot_request())
        delete_trade(account, trade.id)
        assert account.trades == []
        assert account.balance == STARTING_BALANCE - D("1000")

    def test_delete_open_with_reversal(self, account):
        trade = open_trade(account, option_request())
        delete_trade(account, trade.id, reverse_entry=True)
        assert account.trades == []
        assert account.balance == STARTING_BALANCE

    def test_delete_closed_never_reverses(self, account):
        trade = open_trade(account, spot_request())
        close_trade(account, trade.id, D("150"))
        balance = account.balance
        delete_trade(account, trade.id, reverse_entry=True)
        assert account.balance == balance

    def test_delete_unknown(self, account):
        with pytest.raises(TradeNotFound):
            delete_trade(account, "nope")

    def test_reset_account(self):
        account = reset_account(D("25000"))
        assert account.balance == account.starting_balance == D("25000")
        assert account.trades == []


# ═══════════════════════════════════════════════════════════
# 6. BALANCE CONSERVATION
# ═══════════════════════════════════════════════════════════

@pytest.mark.parametrize("seed", [1, 7, 42, 2024, 99999])
class TestBalanceConservation:
    """Random open/close sequences over every kind keep the ledger exact."""

    def test_balance_equals_start_plus_effects(self, account, mstr_path, seed):
        rng = random.Random(seed)
        effects: list[Decimal] = []

        for price in mstr_path:
            if rng.random() < 0.6:
                trade = open_trade(account, random_request(rng, price), allow_negative_balance=True)
                effects.append(entry_cash_flow(trade))
            open_ids = [t.id for t in account.trades if t.status == TradeStatus.OPEN]
            if open_ids and rng.random() < 0.5:
                trade_id = rng.choice(open_ids)
                trade = next(t for t in account.trades if t.id == trade_id)
                effects.append(close_settlement(trade, price).cash_effect)
                close_trade(account, trade_id, price)

            assert account.balance == STARTING_BALANCE + sum(effects, D("0"))

    def test_fully_closed_book_nets_to_realized_pnl(self, account, mstr_path, seed):
        rng = random.Random(seed)
        for price in mstr_path[:30]:
            open_trade(account, random_request(rng, price), allow_negative_balance=True)
        for trade, price in zip(list(account.trades), reversed(mstr_path)):
            close_trade(account, trade.id, price)

        realized = sum((t.pnl for t in account.trades), D("0"))
        assert account.balance - account.starting_balance == realized
