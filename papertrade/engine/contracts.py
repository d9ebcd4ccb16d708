"""
Paper Account Models — the ledger's data model.

Account holds the cash balance and the full trade history. A trade is a
tagged union over two families selected by ``trade_type``:

  SpotTrade   — long/short units of the underlying
  OptionTrade — one of the supported option strategies, sized in contracts

Serialized form is camelCase JSON (``startingBalance``, ``strikePrice``, ...)
so records written by earlier dashboard versions load unchanged. Unknown fields
are ignored and missing optional fields default.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

CONTRACT_MULTIPLIER = 100

# Implicit second-strike width applied to legacy spread records saved without one
LEGACY_SPREAD_WIDTH = Decimal("20")


class TradeType(str, Enum):
    SPOT = "spot"
    OPTION = "option"


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"


class TradeStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    EXPIRED = "expired"


class StrategyKind(str, Enum):
    COVERED_CALL = "covered_call"
    CASH_SECURED_PUT = "cash_secured_put"
    PROTECTIVE_PUT = "protective_put"
    BULL_CALL_SPREAD = "bull_call_spread"
    BEAR_PUT_SPREAD = "bear_put_spread"


SPREAD_KINDS = frozenset({StrategyKind.BULL_CALL_SPREAD, StrategyKind.BEAR_PUT_SPREAD})

# Premium sellers are short the option; everything else buys premium.
STRATEGY_DIRECTION = {
    StrategyKind.COVERED_CALL: Direction.SHORT,
    StrategyKind.CASH_SECURED_PUT: Direction.SHORT,
    StrategyKind.PROTECTIVE_PUT: Direction.LONG,
    StrategyKind.BULL_CALL_SPREAD: Direction.LONG,
    StrategyKind.BEAR_PUT_SPREAD: Direction.LONG,
}

STRATEGY_LABELS = {
    StrategyKind.COVERED_CALL: "Covered Call",
    StrategyKind.CASH_SECURED_PUT: "Cash-Secured Put",
    StrategyKind.PROTECTIVE_PUT: "Protective Put",
    StrategyKind.BULL_CALL_SPREAD: "Bull Call Spread",
    StrategyKind.BEAR_PUT_SPREAD: "Bear Put Spread",
}

STRATEGY_OPTION_TYPE = {
    StrategyKind.COVERED_CALL: "call",
    StrategyKind.CASH_SECURED_PUT: "put",
    StrategyKind.PROTECTIVE_PUT: "put",
    StrategyKind.BULL_CALL_SPREAD: "spread",
    StrategyKind.BEAR_PUT_SPREAD: "spread",
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        use_enum_values=False,
    )


class TradeBase(_Record):
    """Fields shared by every trade, whatever its family."""
    id: str
    symbol: str
    direction: Direction
    entry_price: Decimal
    opened_at: datetime = Field(default_factory=utc_now)
    status: TradeStatus = TradeStatus.OPEN
    notes: Optional[str] = None
    signal: Optional[str] = None       # entry-time tag, informational only

    # Frozen at the close/expire transition
    closed_at: Optional[datetime] = None
    close_price: Optional[Decimal] = None
    pnl: Optional[Decimal] = None
    pnl_percent: Optional[Decimal] = None

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN


class SpotTrade(TradeBase):
    trade_type: Literal["spot"] = "spot"
    quantity: Decimal

    @property
    def cost_basis(self) -> Decimal:
        return self.entry_price * self.quantity


class OptionTrade(TradeBase):
    trade_type: Literal["option"] = "option"
    strategy: StrategyKind
    strategy_name: str = ""
    option_type: str = ""
    strike_price: Decimal
    strike_price2: Optional[Decimal] = None   # spreads only
    contracts: int
    shares: int = 0
    premium: Decimal
    total_premium: Decimal = Decimal("0")
    expiration_date: date
    iv: Optional[Decimal] = None
    close_premium: Optional[Decimal] = None

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        try:
            strategy = StrategyKind(data.get("strategy"))
        except ValueError:
            strategy = None
        strike = data.get("strikePrice", data.get("strike_price"))
        has_second = data.get("strikePrice2", data.get("strike_price2")) is not None
        if strategy in SPREAD_KINDS and not has_second and strike is not None:
            width = LEGACY_SPREAD_WIDTH
            if strategy is StrategyKind.BEAR_PUT_SPREAD:
                width = -width
            data["strikePrice2"] = Decimal(str(strike)) + width
        contracts = data.get("contracts")
        if contracts is not None and not data.get("shares"):
            data["shares"] = int(contracts) * CONTRACT_MULTIPLIER
        return data

    @field_validator("expiration_date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        # legacy records stored full ISO timestamps
        if isinstance(value, str) and len(value) > 10:
            return value[:10]
        if isinstance(value, datetime):
            return value.date()
        return value


def _trade_kind(value: Any) -> str:
    if isinstance(value, dict):
        kind = value.get("tradeType", value.get("trade_type"))
        # records written before spot trading existed were all options
        return kind or TradeType.OPTION.value
    return getattr(value, "trade_type", TradeType.OPTION.value)


Trade = Annotated[
    Union[
        Annotated[SpotTrade, Tag(TradeType.SPOT.value)],
        Annotated[OptionTrade, Tag(TradeType.OPTION.value)],
    ],
    Discriminator(_trade_kind),
]


class Account(_Record):
    """Single cash account plus its insertion-ordered trade history."""
    balance: Decimal
    starting_balance: Decimal
    trades: list[Trade] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def is_overdrawn(self) -> bool:
        return self.balance < 0

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Account":
        return cls.model_validate_json(raw)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Account":
        return cls.model_validate(d)
