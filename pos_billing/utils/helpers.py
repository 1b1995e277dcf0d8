# utils/helpers.py
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging
from typing import Union, Optional

from ..constants import MONEY_PLACES

NumberLike = Union[float, int, str, Decimal]

CENT = Decimal(1).scaleb(-MONEY_PLACES)
ZERO = Decimal("0.00")

_log = logging.getLogger(__name__)


def today_str() -> str:
    """Return today's date as ISO string (YYYY-MM-DD)."""
    return date.today().isoformat()


def to_decimal(v: NumberLike | None) -> Decimal:
    """
    Parse a loosely typed number into a Decimal.

    Floats go through str() so 0.1 stays 0.1. Anything unparsable
    (None, "", "abc", NaN) becomes 0; callers clamp instead of rejecting.
    """
    if isinstance(v, Decimal):
        d = v
    else:
        try:
            d = Decimal(str(v).strip().replace(",", "")) if v is not None else Decimal(0)
        except (InvalidOperation, ValueError):
            _log.debug("to_decimal: could not parse %r, using 0", v)
            return Decimal(0)
    if not d.is_finite():
        return Decimal(0)
    return d


def money(v: NumberLike | None) -> Decimal:
    """Quantize to the smallest currency unit (half-up)."""
    return to_decimal(v).quantize(CENT, rounding=ROUND_HALF_UP)


def clamp(v: Decimal, lo: Decimal, hi: Decimal) -> Decimal:
    return max(lo, min(hi, v))


def fmt_money(
    v: NumberLike,
    places: int = MONEY_PLACES,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format a number as money with thousands separators and a fixed number of decimals.

    Behavior on parse failure:
      - By default (strict=False, sentinel=None), returns str(v).
      - If `sentinel` is provided (e.g., "N/A"), returns that sentinel instead.
      - If `strict=True`, raises ValueError on parse failures.
    """
    try:
        x = float(v)
    except (TypeError, ValueError) as e:
        _log.debug("fmt_money: failed to parse %r as float: %s", v, e)
        if strict:
            raise ValueError(f"Could not parse {v!r} as a number.") from e
        return str(sentinel) if sentinel is not None else str(v)
    return f"{x:,.{places}f}"
