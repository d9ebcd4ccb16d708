from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STATE = "state"
    INTEGRITY = "integrity"
    STORAGE = "storage"
    PRICING = "pricing"
    SYSTEM = "system"


class PaperTradingError(Exception):
    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        trade_id: Optional[str] = None,
    ) -> None:
        self.message = message
        self.category = category
        self.trade_id = trade_id
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.category.value}] {self.message}"]
        if self.trade_id:
            parts.append(f"Trade: {self.trade_id}")
        return " | ".join(parts)


class InvalidTradeParameters(PaperTradingError):
    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__("; ".join(self.violations), ErrorCategory.VALIDATION)


class InsufficientFunds(InvalidTradeParameters):
    def __init__(self, required: object, available: object) -> None:
        self.required = required
        self.available = available
        super().__init__(
            [f"insufficient cash: trade needs {required}, balance is {available}"]
        )


class TradeNotFound(PaperTradingError):
    def __init__(self, trade_id: str) -> None:
        super().__init__("Trade not found", ErrorCategory.NOT_FOUND, trade_id)


class AlreadyClosed(PaperTradingError):
    def __init__(self, trade_id: str, status: str) -> None:
        self.status = status
        super().__init__(f"Trade is not open (status={status})", ErrorCategory.STATE, trade_id)


class DuplicateTradeId(PaperTradingError):
    def __init__(self, trade_id: str) -> None:
        super().__init__("Trade id already exists in account", ErrorCategory.INTEGRITY, trade_id)


class TradeKindMismatch(PaperTradingError):
    def __init__(self, message: str, trade_id: Optional[str] = None) -> None:
        super().__init__(message, ErrorCategory.SYSTEM, trade_id)


class StoreUnavailable(PaperTradingError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCategory.STORAGE)


class PriceUnavailable(PaperTradingError):
    def __init__(self, symbol: str, message: str = "No price available") -> None:
        self.symbol = symbol
        super().__init__(f"{message}: {symbol}", ErrorCategory.PRICING)
