"""
Трекинг посетителей: сессии, просмотры, события корзины, конверсии.
Состояние меняется только через шину событий (storefront.frp), Tracker
лишь хранит текущий снимок и сериализует публикации.
"""

import threading
from collections import Counter
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from loguru import logger

from storefront.frp import create_event, create_tracking_bus, initial_state
from storefront.money import round_money

# Упрощённо: без GeoIP, локальные адреса считаем США
IP_TO_COUNTRY: Dict[str, str] = {"127.0.0.1": "US", "::1": "US"}

COUNTRY_TO_LANGUAGE: Dict[str, str] = {
    "BR": "pt",
    "ES": "es",
    "MX": "es",
    "AR": "es",
    "FR": "fr",
    "CN": "zh",
    "TW": "zh",
    "HK": "zh",
    "US": "en",
    "GB": "en",
    "CA": "en",
    "AU": "en",
}

CART_EVENT_TYPES = ("add", "remove", "update", "clear", "checkout_start")
CONVERSION_TYPES = ("purchase", "signup", "newsletter", "contact")
TOP_LIMIT = 10


def country_from_ip(ip: str) -> str:
    return IP_TO_COUNTRY.get(ip, "US")


def language_from_country(country: str) -> str:
    return COUNTRY_TO_LANGUAGE.get(country, "en")


def _top(counts: dict, key_name: str, value_name: str, k: int = TOP_LIMIT) -> List[dict]:
    ranked = sorted(counts.items(), key=lambda x: x[1], reverse=True)[:k]
    return [{key_name: key, value_name: value} for key, value in ranked]


class Tracker:
    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.bus = create_tracking_bus()
        self.state = initial_state()
        self.clock = clock
        self._lock = threading.Lock()

    def _publish(self, name: str, payload: dict) -> None:
        event = create_event(name, payload, ts=self.clock())
        with self._lock:
            self.state = self.bus.publish(event, self.state)

    def start_session(
        self,
        session_id: str,
        ip_address: str,
        user_agent: str = "",
        user_id: Optional[str] = None,
    ) -> dict:
        country = country_from_ip(ip_address)
        self._publish(
            "SESSION_START",
            {
                "session_id": session_id,
                "ip_address": ip_address,
                "user_agent": user_agent,
                "user_id": user_id,
                "country": country,
                "language": language_from_country(country),
            },
        )
        logger.bind(session_id=session_id, country=country).debug("Session started")
        return self.session(session_id)

    def page_view(self, session_id: str, path: str, referrer: Optional[str] = None) -> None:
        self._publish(
            "PAGE_VIEW", {"session_id": session_id, "path": path, "referrer": referrer}
        )

    def cart_event(
        self,
        session_id: str,
        kind: str,
        product_id: Optional[str] = None,
        quantity: Optional[int] = None,
        value=None,
    ) -> None:
        if kind not in CART_EVENT_TYPES:
            raise ValueError(f"Unknown cart event type: {kind}")
        self._publish(
            "CART_EVENT",
            {
                "session_id": session_id,
                "type": kind,
                "product_id": product_id,
                "quantity": quantity,
                "value": value,
            },
        )

    def conversion(
        self, session_id: str, kind: str, order_id: Optional[str] = None, value=None
    ) -> None:
        if kind not in CONVERSION_TYPES:
            raise ValueError(f"Unknown conversion type: {kind}")
        self._publish(
            "CONVERSION",
            {"session_id": session_id, "type": kind, "order_id": order_id, "value": value},
        )

    def session(self, session_id: str) -> Optional[dict]:
        return self.state["sessions"].get(session_id)

    def daily_stats(self, date: str) -> Optional[dict]:
        """Статистика за день (ГГГГ-ММ-ДД) с топ-10 страниц и товаров"""
        day = self.state["days"].get(date)
        if day is None:
            return None
        return {
            "date": day["date"],
            "unique_visitors": day["unique_visitors"],
            "page_views": day["page_views"],
            "cart_additions": day["cart_additions"],
            "checkouts": day["checkouts"],
            "conversions": day["conversions"],
            "revenue": round_money(day["revenue"]),
            "top_pages": _top(day["page_counts"], "path", "views"),
            "top_products": _top(day["product_counts"], "product_id", "additions"),
        }

    def analytics_summary(self, days: int = 7) -> dict:
        """Сводка по сессиям, начатым за последние days дней"""
        since = self.clock() - timedelta(days=days)
        sessions = [
            s
            for s in self.state["sessions"].values()
            if datetime.fromisoformat(s["created_at"]) >= since
        ]

        total_sessions = len(sessions)
        converted = [s for s in sessions if s["conversions"]]
        revenue = sum(
            (c["value"] for s in converted for c in s["conversions"]), Decimal("0")
        )

        conversion_rate = (
            len(converted) / total_sessions * 100 if total_sessions > 0 else 0.0
        )
        average_order_value = revenue / len(converted) if converted else Decimal("0")

        countries = Counter(s["country"] for s in sessions)
        languages = Counter(s["language"] for s in sessions)

        return {
            "total_sessions": total_sessions,
            "total_page_views": sum(len(s["page_views"]) for s in sessions),
            "total_revenue": round_money(revenue),
            "conversion_rate": round(conversion_rate, 2),
            "average_order_value": round_money(average_order_value),
            "top_countries": _top(countries, "country", "sessions", k=5),
            "top_languages": _top(languages, "language", "sessions", k=5),
        }
