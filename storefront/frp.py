from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from functools import reduce
from typing import Callable, Optional, Tuple
import uuid

from .domain import Event
from .money import to_money


@dataclass(frozen=True)
class EventBus:
    """
    Иммутабельная шина событий трекинга
    Подписчики - чистые функции: (Event, State) -> State
    """

    subscribers: Tuple[Tuple[str, Callable], ...] = ()

    def subscribe(
        self, event_name: str, handler: Callable[[Event, dict], dict]
    ) -> "EventBus":
        """Новая шина с добавленным подписчиком"""
        return EventBus(subscribers=self.subscribers + ((event_name, handler),))

    def publish(self, event: Event, state: dict) -> dict:
        """Применяет подходящих подписчиков по очереди (fold), возвращает новое состояние"""
        matching_handlers = tuple(
            handler for name, handler in self.subscribers if name == event.name
        )
        return reduce(lambda s, handler: handler(event, s), matching_handlers, state)


# ============ Конструкторы событий ============


def create_event(name: str, payload: dict, ts: Optional[datetime] = None) -> Event:
    """Событие с меткой времени (по умолчанию - сейчас)"""
    return Event(
        id=str(uuid.uuid4()),
        ts=(ts or datetime.now()).isoformat(),
        name=name,
        payload=payload,
    )


# ============ Дневная статистика ============


def empty_day(date: str) -> dict:
    return {
        "date": date,
        "unique_visitors": 0,
        "page_views": 0,
        "cart_additions": 0,
        "checkouts": 0,
        "conversions": 0,
        "revenue": Decimal("0"),
        "page_counts": {},
        "product_counts": {},
    }


def _bump_day(state: dict, event: Event, update: Callable[[dict], dict]) -> dict:
    date = event.ts[:10]
    days = state.get("days", {})
    day = days.get(date, empty_day(date))
    return {**days, date: update(day)}


def _touch_session(state: dict, session_id: str, event: Event, **changes) -> dict:
    sessions = state["sessions"]
    session = sessions[session_id]
    return {**sessions, session_id: {**session, **changes, "last_activity": event.ts}}


# ============ Чистые обработчики ============


def handle_session_start(event: Event, state: dict) -> dict:
    """Новый визит: сессия + уникальный посетитель за день"""
    session_id = event.payload["session_id"]
    if session_id in state.get("sessions", {}):
        return state

    session = {
        "session_id": session_id,
        "user_id": event.payload.get("user_id"),
        "ip_address": event.payload.get("ip_address", ""),
        "user_agent": event.payload.get("user_agent", ""),
        "country": event.payload.get("country", "US"),
        "language": event.payload.get("language", "en"),
        "created_at": event.ts,
        "last_activity": event.ts,
        "page_views": (),
        "cart_events": (),
        "conversions": (),
    }
    return {
        **state,
        "sessions": {**state.get("sessions", {}), session_id: session},
        "days": _bump_day(
            state, event, lambda d: {**d, "unique_visitors": d["unique_visitors"] + 1}
        ),
        "last_event": event.name,
    }


def handle_page_view(event: Event, state: dict) -> dict:
    """
    Просмотр страницы. Предыдущему просмотру проставляется время на странице.
    События неизвестной сессии игнорируются.
    """
    session_id = event.payload.get("session_id")
    if session_id not in state.get("sessions", {}):
        return state

    path = event.payload.get("path", "/")
    views = state["sessions"][session_id]["page_views"]
    if views and views[-1]["time_on_page_ms"] is None:
        last = views[-1]
        spent = datetime.fromisoformat(event.ts) - datetime.fromisoformat(last["ts"])
        views = views[:-1] + (
            {**last, "time_on_page_ms": int(spent.total_seconds() * 1000)},
        )
    view = {
        "path": path,
        "ts": event.ts,
        "referrer": event.payload.get("referrer"),
        "time_on_page_ms": None,
    }

    def count(day: dict) -> dict:
        pages = day["page_counts"]
        return {
            **day,
            "page_views": day["page_views"] + 1,
            "page_counts": {**pages, path: pages.get(path, 0) + 1},
        }

    return {
        **state,
        "sessions": _touch_session(state, session_id, event, page_views=views + (view,)),
        "days": _bump_day(state, event, count),
        "last_event": event.name,
    }


def handle_cart_event(event: Event, state: dict) -> dict:
    """add считается в добавления в корзину, checkout_start - в начатые оформления"""
    session_id = event.payload.get("session_id")
    if session_id not in state.get("sessions", {}):
        return state

    kind = event.payload.get("type")
    product_id = event.payload.get("product_id")
    record = {
        "type": kind,
        "product_id": product_id,
        "quantity": event.payload.get("quantity"),
        "value": event.payload.get("value"),
        "ts": event.ts,
    }
    cart_events = state["sessions"][session_id]["cart_events"] + (record,)

    def count(day: dict) -> dict:
        if kind == "add":
            products = day["product_counts"]
            if product_id:
                products = {**products, product_id: products.get(product_id, 0) + 1}
            return {
                **day,
                "cart_additions": day["cart_additions"] + 1,
                "product_counts": products,
            }
        if kind == "checkout_start":
            return {**day, "checkouts": day["checkouts"] + 1}
        return day

    return {
        **state,
        "sessions": _touch_session(state, session_id, event, cart_events=cart_events),
        "days": _bump_day(state, event, count),
        "last_event": event.name,
    }


def handle_conversion(event: Event, state: dict) -> dict:
    """Конверсия (покупка, подписка...) и выручка за день"""
    session_id = event.payload.get("session_id")
    if session_id not in state.get("sessions", {}):
        return state

    value = to_money(event.payload.get("value") or 0)
    record = {
        "type": event.payload.get("type"),
        "order_id": event.payload.get("order_id"),
        "value": value,
        "ts": event.ts,
    }
    conversions = state["sessions"][session_id]["conversions"] + (record,)

    return {
        **state,
        "sessions": _touch_session(state, session_id, event, conversions=conversions),
        "days": _bump_day(
            state,
            event,
            lambda d: {
                **d,
                "conversions": d["conversions"] + 1,
                "revenue": d["revenue"] + value,
            },
        ),
        "last_event": event.name,
    }


def create_tracking_bus() -> EventBus:
    """Шина с обработчиками трекинга витрины"""
    return (
        EventBus()
        .subscribe("SESSION_START", handle_session_start)
        .subscribe("PAGE_VIEW", handle_page_view)
        .subscribe("CART_EVENT", handle_cart_event)
        .subscribe("CONVERSION", handle_conversion)
    )


def initial_state() -> dict:
    return {"sessions": {}, "days": {}, "last_event": None}


def apply_events(bus: EventBus, events: Tuple[Event, ...], state: dict) -> dict:
    """(events, initial_state) -> final_state"""
    return reduce(lambda s, e: bus.publish(e, s), events, state)
