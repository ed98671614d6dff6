from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional

from .config import settings
from .money import MoneyLike, round_money, to_money

# Упрощённые ставки налога с продаж по штатам.
# Нулевые ставки - явные, к запасной ставке не сводятся.
TAX_RATES: Mapping[str, Decimal] = MappingProxyType(
    {
        "CA": Decimal("0.0725"),
        "NY": Decimal("0.08"),
        "TX": Decimal("0.0625"),
        "FL": Decimal("0.06"),
        "WA": Decimal("0.065"),
        "OR": Decimal("0"),
        "NH": Decimal("0"),
        "MT": Decimal("0"),
        "DE": Decimal("0"),
        "AK": Decimal("0"),
    }
)


def tax_rate_for(region_code: Optional[str]) -> Decimal:
    code = (region_code or "").strip().upper()
    rate = TAX_RATES.get(code)
    return rate if rate is not None else to_money(settings.default_tax_rate)


def calculate_tax(subtotal: MoneyLike, region_code: Optional[str]) -> Decimal:
    """round(subtotal * rate, 2); для регионов без налога ровно 0.00"""
    return round_money(to_money(subtotal) * tax_rate_for(region_code))
