"""
FX collaborator — latest currency table and USD conversion.

Rates are stored as "units of currency per 1 USD", so converting to USD divides.
"""
import logging
from typing import Dict, Optional

from minerchecker.database import get_session
from minerchecker.models.fx_rate import FxRateSnapshot
from minerchecker.profitability.units import to_finite

logger = logging.getLogger('services.fx')


def get_latest_fx_rates() -> Optional[Dict[str, float]]:
    """Latest FX snapshot as {CODE: rate}, USD always 1. None when no snapshot exists."""
    session = get_session()
    try:
        latest = (
            session.query(FxRateSnapshot)
            .order_by(FxRateSnapshot.fetched_at.desc(), FxRateSnapshot.id.desc())
            .first()
        )
        if latest is None or not isinstance(latest.rates, dict):
            return None

        rates = {}
        for code, raw in latest.rates.items():
            n = to_finite(raw)
            if n is not None and n > 0:
                rates[str(code).upper()] = n
        rates['USD'] = 1.0
        return rates
    except Exception:
        logger.error("Failed to load FX rates", exc_info=True)
        return None
    finally:
        session.close()


def convert_to_usd(amount, currency, rates) -> Optional[float]:
    """Convert amount in currency to USD; None when the rate is unknown."""
    value = to_finite(amount)
    if value is None:
        return None
    code = str(currency or 'USD').strip().upper()
    if code == 'USD':
        return value
    if not rates:
        return None
    rate = rates.get(code)
    if not rate or rate <= 0:
        return None
    return value / rate
