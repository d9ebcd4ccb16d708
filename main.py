from __future__ import annotations

import uvicorn

from papertrade.api.service import PaperTradingServiceManager
from papertrade.engine.contracts import OptionTrade, utc_now
from papertrade.engine.statistics import open_trades
from papertrade.utils.config import get_settings
from papertrade.utils.exceptions import StoreUnavailable
from papertrade.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def _check_overdue_options() -> None:
    """Pre-startup check: warn about open options already past expiration."""
    try:
        account = PaperTradingServiceManager.get_instance().get_account()
    except StoreUnavailable as e:
        logger.error("startup_store_unavailable", error=str(e))
        raise
    today = utc_now().date()
    overdue = [
        t.id for t in open_trades(account)
        if isinstance(t, OptionTrade) and t.expiration_date <= today
    ]
    if overdue:
        logger.warning(
            "overdue_options_open",
            count=len(overdue),
            trade_ids=overdue,
            hint="POST /api/paper/trades/{id}/expire with a settlement price",
        )


def main() -> None:
    setup_logging()
    settings = get_settings()
    _check_overdue_options()

    uvicorn.run(
        "papertrade.api.webapp:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
