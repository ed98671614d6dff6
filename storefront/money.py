from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

MoneyLike = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: MoneyLike) -> Decimal:
    """
    Приводит число или строку к Decimal.
    float идёт через str(), чтобы 5.99 не превратилось в 5.9900000000000002131...
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary value: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary value: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a monetary value: {value!r}")
    return result


def round_money(value: MoneyLike) -> Decimal:
    """Округление до центов, половина - вверх"""
    return to_money(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: MoneyLike, symbol: str = "$") -> str:
    return f"{symbol}{round_money(value):,.2f}"
