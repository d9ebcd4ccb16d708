"""
Shared fixtures and synthetic data generators for paper-trading tests.

Prices follow a seeded geometric random walk so property tests can replay
long open/close sequences deterministically. Money is Decimal throughout.

All engine, store, service and API tests share these fixtures.
"""

from __future__ import annotations

import math
import random
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from papertrade.api.price_source import StaticPriceSource
from papertrade.api.service import PaperTradingService
from papertrade.api.webapp import app, get_service
from papertrade.engine.contracts import Account, StrategyKind, TradeType
from papertrade.engine.ledger import create_account
from papertrade.engine.lifecycle import TradeRequest
from papertrade.store.account_store import InMemoryAccountStore
from papertrade.utils.config import Settings

D = Decimal

FIXED_NOW = datetime(2026, 3, 2, 15, 30, tzinfo=timezone.utc)
EXPIRY = date(2026, 3, 20)
STARTING_BALANCE = D("100000")


# ─────────────────────────────────────────────────────────
# Request builders
# ─────────────────────────────────────────────────────────

def spot_request(
    symbol: str = "MSTR",
    direction: str = "long",
    entry_price: str = "100",
    quantity: str = "10",
    **extra,
) -> TradeRequest:
    return TradeRequest(
        trade_type=TradeType.SPOT,
        symbol=symbol,
        direction=direction,
        entry_price=D(entry_price),
        quantity=D(quantity),
        **extra,
    )


def option_request(
    strategy: StrategyKind = StrategyKind.COVERED_CALL,
    entry_price: str = "100",
    strike_price: str = "110",
    premium: str = "2",
    contracts: int = 1,
    strike_price2: Optional[str] = None,
    symbol: str = "MSTR",
    expiration_date: date = EXPIRY,
    **extra,
) -> TradeRequest:
    return TradeRequest(
        trade_type=TradeType.OPTION,
        symbol=symbol,
        strategy=strategy,
        entry_price=D(entry_price),
        strike_price=D(strike_price),
        strike_price2=D(strike_price2) if strike_price2 is not None else None,
        contracts=contracts,
        premium=D(premium),
        expiration_date=expiration_date,
        **extra,
    )


# ─────────────────────────────────────────────────────────
# Synthetic price path
# ─────────────────────────────────────────────────────────

def generate_price_path(
    start_price: float = 130.0,
    steps: int = 50,
    daily_vol: float = 0.04,
    seed: int = 42,
) -> list[Decimal]:
    """Seeded lognormal walk rounded to cents, never below one cent."""
    rng = random.Random(seed)
    price = start_price
    path = []
    for _ in range(steps):
        price *= math.exp(rng.gauss(0.0, daily_vol) - 0.5 * daily_vol ** 2)
        path.append(max(D("0.01"), D(str(round(price, 2)))))
    return path


def random_request(rng: random.Random, price: Decimal) -> TradeRequest:
    """Valid request of a random kind sized around ``price``."""
    kind = rng.choice(["spot_long", "spot_short"] + [s.value for s in StrategyKind])
    entry = str(price)
    if kind.startswith("spot"):
        return spot_request(
            direction=kind.split("_")[1],
            entry_price=entry,
            quantity=str(rng.randint(1, 50)),
        )

    strategy = StrategyKind(kind)
    strike = max(D("1"), (price * D(str(rng.uniform(0.85, 1.15)))).quantize(D("1")))
    premium = D(str(round(rng.uniform(0.5, 8.0), 2)))
    width = D(rng.choice([5, 10, 20]))
    strike2 = None
    if strategy is StrategyKind.BULL_CALL_SPREAD:
        strike2 = str(strike + width)
    elif strategy is StrategyKind.BEAR_PUT_SPREAD:
        if strike <= width:
            strike = strike + width
        strike2 = str(strike - width)
    return option_request(
        strategy=strategy,
        entry_price=entry,
        strike_price=str(strike),
        premium=str(premium),
        contracts=rng.randint(1, 3),
        strike_price2=strike2,
    )


# ─────────────────────────────────────────────────────────
# Pytest Fixtures
# ─────────────────────────────────────────────────────────

@pytest.fixture
def account() -> Account:
    """Fresh $100k account."""
    return create_account(STARTING_BALANCE, now=FIXED_NOW)


@pytest.fixture(scope="session")
def mstr_path() -> list[Decimal]:
    """60 steps of MSTR-like prices."""
    return generate_price_path(start_price=133.88, steps=60, seed=7)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        starting_balance=STARTING_BALANCE,
        default_account_id="test",
        store_backend="memory",
        allow_negative_balance=False,
        fractional_symbols=["BTC"],
        log_file="",
    )


@pytest.fixture
def prices() -> StaticPriceSource:
    return StaticPriceSource({"MSTR": "133.88", "BTC": "65000"})


@pytest.fixture
def store() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def service(store: InMemoryAccountStore, prices: StaticPriceSource, settings: Settings) -> PaperTradingService:
    return PaperTradingService(store, prices, settings)


@pytest.fixture
def client(service: PaperTradingService):
    app.dependency_overrides[get_service] = lambda: service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
