import sys
import os
import uuid
from datetime import date, datetime, time

import streamlit as st

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storefront.config import settings
from storefront.domain import (
    ORDER_STATUSES,
    PRODUCT_STATUSES,
    USER_STATUSES,
    Cart,
    Customer,
    DealStatus,
    DiscountType,
)
from storefront.log import configure_logging
from storefront.money import format_money
from storefront.service import (
    CatalogService,
    CheckoutService,
    DealService,
    OrderService,
    UserService,
    run_sync,
)
from storefront.shipping import cheapest_rate
from storefront.storage import MemStorage, StorageError
from storefront.transforms import (
    add_to_cart,
    by_category,
    by_min_rating,
    by_price_range,
    by_search,
    cart_item_count,
    cart_subtotal,
    clear_cart,
    remove_from_cart,
    update_quantity,
)
from storefront.checkout import compute_totals
from Tracking_Service.report import (
    dashboard_stats,
    sales_by_period,
    sales_summary,
    top_products_report,
)
from Tracking_Service.tracking import Tracker


# ============ Общие ресурсы (переживают перезапуски скрипта) ============
@st.cache_resource
def get_storage() -> MemStorage:
    configure_logging(settings.log_level)
    return MemStorage.from_seed(settings.seed_path)


@st.cache_resource
def get_tracker() -> Tracker:
    return Tracker()


storage = get_storage()
tracker = get_tracker()
catalog = CatalogService(storage)
deal_service = DealService(storage)
order_service = OrderService(storage)
checkout_service = CheckoutService(storage)
user_service = UserService(storage)


def money(value) -> str:
    return format_money(value, settings.currency_symbol)


def show_checkout_error(error: dict) -> None:
    st.error(f"❌ {error.get('error', 'Неизвестная ошибка')}")


def complete_checkout(order) -> None:
    tracker.conversion(st.session_state.session_id, "purchase", order.id, str(order.total))
    st.session_state.cart = clear_cart(st.session_state.cart)
    st.session_state.checkout_started = False
    st.success(f"🎉 Заказ {order.id} оформлен! Сумма: {money(order.total)}")
    st.balloons()


# ============ Инициализация ============
st.set_page_config(
    page_title="Storefront",
    page_icon="🛒",
    layout="wide",
    initial_sidebar_state="expanded",
)

if "session_id" not in st.session_state:
    st.session_state.session_id = f"session_{uuid.uuid4().hex[:9]}"
    tracker.start_session(st.session_state.session_id, "127.0.0.1")

if "cart" not in st.session_state:
    st.session_state.cart = Cart(id="cart_default", user_id="u1", items=())

session_id = st.session_state.session_id
products = run_sync(catalog.products())
categories = run_sync(catalog.categories())


# ============ SIDEBAR - Навигация ============
with st.sidebar:
    st.header("📂 Навигация")
    page = st.radio(
        "Раздел:",
        [
            "🏪 Каталог",
            "🛒 Корзина",
            "💳 Оформление",
            "🏷️ Акции",
            "🗂️ Товары",
            "👥 Пользователи",
            "📦 Заказы",
            "📈 Аналитика",
        ],
        label_visibility="collapsed",
    )
    st.divider()
    st.metric("🛒 В корзине", cart_item_count(st.session_state.cart))

if st.session_state.get("last_page") != page:
    tracker.page_view(session_id, page)
    st.session_state.last_page = page


# ============ PAGE: КАТАЛОГ ============
if page == "🏪 Каталог":
    st.header("🏪 Каталог товаров")

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        selected_cat = st.selectbox("📂 Категория", ["Все"] + [c.name for c in categories])
    with col2:
        price_range = st.slider("💰 Цена", 0, 1500, (0, 1500), step=50)
    with col3:
        query = st.text_input("🔍 Поиск")
    with col4:
        min_rating = st.slider("⭐ Рейтинг от", 0.0, 5.0, 0.0, step=0.5)

    filters = [by_price_range(price_range[0], price_range[1]), by_min_rating(min_rating)]
    if selected_cat != "Все":
        cat_id = next(c.id for c in categories if c.name == selected_cat)
        filters.append(by_category(cat_id))
    if query:
        filters.append(by_search(query))

    filtered = run_sync(catalog.products(*filters))
    st.info(f"🔍 Найдено товаров: **{len(filtered)}**")

    for p in filtered:
        cols = st.columns([5, 2, 2, 2])
        with cols[0]:
            st.markdown(f"**{p.name}**  ⭐ {p.rating} ({p.review_count})")
            st.caption(p.description)
        with cols[1]:
            st.write(money(p.price))
            if p.original_price:
                st.caption(f"~~{money(p.original_price)}~~")
        with cols[2]:
            qty = st.number_input(
                "Кол-во", min_value=1, value=1, key=f"qty_{p.id}", label_visibility="collapsed"
            )
        with cols[3]:
            if st.button("➕ В корзину", key=f"add_{p.id}", disabled=p.stock <= 0):
                st.session_state.cart = add_to_cart(st.session_state.cart, p.id, qty)
                tracker.cart_event(session_id, "add", p.id, qty, str(p.price * qty))
                st.success(f"✅ {p.name} × {qty}")
        st.divider()


# ============ PAGE: КОРЗИНА ============
elif page == "🛒 Корзина":
    st.header("🛒 Ваша корзина")
    cart = st.session_state.cart

    if not cart.items:
        st.info("🛍️ Корзина пуста. Перейдите в каталог!")
    else:
        by_id = {p.id: p for p in products}
        for pid, qty in cart.items:
            product = by_id.get(pid)
            if product is None:
                continue
            cols = st.columns([5, 2, 2, 1])
            with cols[0]:
                st.write(f"**{product.name}**")
            with cols[1]:
                new_qty = st.number_input("Кол-во", min_value=0, value=qty, key=f"cart_{pid}")
                if new_qty != qty:
                    st.session_state.cart = update_quantity(cart, pid, new_qty)
                    tracker.cart_event(session_id, "update", pid, new_qty)
                    st.rerun()
            with cols[2]:
                st.write(money(product.price * qty))
            with cols[3]:
                if st.button("🗑️", key=f"remove_{pid}"):
                    st.session_state.cart = remove_from_cart(cart, pid)
                    tracker.cart_event(session_id, "remove", pid)
                    st.rerun()

        st.divider()
        st.markdown(f"### 💰 Подытог: **{money(cart_subtotal(cart, products))}**")
        if st.button("Очистить корзину"):
            st.session_state.cart = clear_cart(cart)
            tracker.cart_event(session_id, "clear")
            st.rerun()


# ============ PAGE: ОФОРМЛЕНИЕ ============
elif page == "💳 Оформление":
    st.header("💳 Оформление заказа")
    cart = st.session_state.cart

    if not cart.items:
        st.info("🛍️ Корзина пуста.")
    else:
        if not st.session_state.get("checkout_started"):
            tracker.cart_event(session_id, "checkout_start")
            st.session_state.checkout_started = True
        subtotal = cart_subtotal(cart, products)

        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Имя и фамилия")
            email = st.text_input("Email")
            phone = st.text_input("Телефон")
            address = st.text_input("Адрес")
        with col2:
            city = st.text_input("Город")
            region = st.text_input("Штат (код)", max_chars=2)
            zip_code = st.text_input("Индекс")

        selected_rate = None
        tax = 0
        if region:
            quoted = checkout_service.quote(region, subtotal, cart_item_count(cart))
            if quoted.is_left:
                st.error(quoted.value["error"])
            else:
                shipping_quote = quoted.value
                default = cheapest_rate(shipping_quote.rates)
                labels = {
                    f"{r.description}: {money(r.cost)} ({r.estimated_days} дн.)": r
                    for r in shipping_quote.rates
                }
                choice = st.radio(
                    f"🚚 Доставка (зона {shipping_quote.zone})",
                    list(labels),
                    index=shipping_quote.rates.index(default),
                )
                selected_rate = labels[choice]
                tax = shipping_quote.tax

        deals = run_sync(deal_service.available_for(subtotal, [pid for pid, _ in cart.items]))
        deal_options = {"Без акции": None, **{f"{d.title} ({d.description})": d for d in deals}}
        deal = deal_options[st.selectbox("🏷️ Акция", list(deal_options))]

        totals = compute_totals(subtotal, selected_rate, tax, deal)
        st.divider()
        st.write(f"Подытог: {money(totals.subtotal)}")
        if totals.discount:
            st.write(f"Скидка: −{money(totals.discount)}")
        st.write(f"Доставка: {money(totals.shipping)}")
        st.write(f"Налог: {money(totals.tax)}")
        st.markdown(f"### Итого: **{money(totals.total)}**")

        if st.button("✅ Оформить заказ", type="primary", use_container_width=True):
            if selected_rate is None:
                st.error("Выберите способ доставки")
            else:
                customer = Customer(
                    name=name,
                    email=email,
                    address=address,
                    city=city,
                    region=region,
                    zip_code=zip_code,
                    phone=phone,
                )
                result = run_sync(
                    checkout_service.place_order(
                        cart, customer, selected_rate.method, deal.id if deal else None
                    )
                )
                result.fold(show_checkout_error, complete_checkout)


# ============ PAGE: АКЦИИ ============
elif page == "🏷️ Акции":
    st.header("🏷️ Управление акциями")

    for d in run_sync(deal_service.deals()):
        status = deal_service.status_of(d)
        cols = st.columns([4, 2, 2, 2, 1])
        with cols[0]:
            st.write(f"**{d.title}** - {d.description}")
        with cols[1]:
            value = f"{d.discount_value}%" if d.discount_type == DiscountType.PERCENTAGE else money(d.discount_value)
            st.write(value)
        with cols[2]:
            uses = "∞" if d.max_uses is None else d.max_uses
            st.write(f"{d.current_uses}/{uses}")
        with cols[3]:
            badge = st.success if status == DealStatus.ACTIVE else st.warning
            badge(status.value)
        with cols[4]:
            if st.button("🗑️", key=f"del_{d.id}"):
                run_sync(deal_service.delete(d.id))
                st.rerun()

        with st.expander(f"✏️ Изменить «{d.title}»"):
            with st.form(f"edit_deal_{d.id}"):
                new_title = st.text_input("Название", value=d.title)
                new_value = st.number_input(
                    "Размер", min_value=0.0, value=float(d.discount_value)
                )
                new_min = st.number_input(
                    "Мин. сумма заказа", min_value=0.0, value=float(d.min_order_amount)
                )
                new_end = st.date_input("Окончание", value=d.end_date.date())
                new_active = st.checkbox("Активна", value=d.is_active)
                if st.form_submit_button("Сохранить"):
                    try:
                        run_sync(
                            deal_service.update(
                                d.id,
                                {
                                    "title": new_title,
                                    "discount_value": str(new_value),
                                    "min_order_amount": str(new_min),
                                    "end_date": datetime.combine(new_end, time.max),
                                    "is_active": new_active,
                                },
                            )
                        )
                        st.rerun()
                    except ValueError as exc:
                        st.error(f"❌ {exc}")

    st.divider()
    with st.form("new_deal"):
        st.subheader("➕ Новая акция")
        title = st.text_input("Название")
        description = st.text_input("Описание")
        discount_type = st.selectbox("Тип", ["percentage", "fixed"])
        discount_value = st.number_input("Размер", min_value=0.0, value=10.0)
        start = st.date_input("Начало", value=date.today())
        end = st.date_input("Окончание", value=date.today())
        min_order = st.number_input("Мин. сумма заказа", min_value=0.0, value=0.0)
        max_uses = st.number_input("Лимит применений (0 - без лимита)", min_value=0, value=0)
        if st.form_submit_button("Создать"):
            try:
                run_sync(
                    deal_service.create(
                        {
                            "title": title,
                            "description": description,
                            "discount_type": discount_type,
                            "discount_value": str(discount_value),
                            "start_date": datetime.combine(start, time.min),
                            "end_date": datetime.combine(end, time.max),
                            "min_order_amount": str(min_order),
                            "max_uses": max_uses or None,
                        }
                    )
                )
                st.rerun()
            except ValueError as exc:
                st.error(f"❌ {exc}")


# ============ PAGE: ТОВАРЫ И КАТЕГОРИИ ============
elif page == "🗂️ Товары":
    st.header("🗂️ Управление товарами")
    category_names = {c.id: c.name for c in categories}

    for p in products:
        cols = st.columns([4, 2, 2, 2, 1])
        with cols[0]:
            st.write(f"**{p.name}** ({p.sku or p.id})")
            st.caption(category_names.get(p.category_id, "-"))
        with cols[1]:
            st.write(money(p.price))
        with cols[2]:
            stock = st.number_input(
                "Остаток", min_value=0, value=p.stock, key=f"stock_{p.id}"
            )
            if stock != p.stock:
                run_sync(catalog.set_stock(p.id, int(stock)))
                st.rerun()
        with cols[3]:
            st.write(p.status)
        with cols[4]:
            if st.button("🗑️", key=f"del_prod_{p.id}"):
                run_sync(catalog.delete_product(p.id))
                st.rerun()

        with st.expander(f"✏️ Изменить «{p.name}»"):
            with st.form(f"edit_prod_{p.id}"):
                new_name = st.text_input("Название", value=p.name)
                new_price = st.number_input("Цена", min_value=0.0, value=float(p.price))
                new_status = st.selectbox(
                    "Статус", PRODUCT_STATUSES, index=PRODUCT_STATUSES.index(p.status)
                )
                new_description = st.text_area("Описание", value=p.description)
                if st.form_submit_button("Сохранить"):
                    run_sync(
                        catalog.update_product(
                            p.id,
                            {
                                "name": new_name,
                                "price": str(new_price),
                                "status": new_status,
                                "description": new_description,
                            },
                        )
                    )
                    st.rerun()

    st.divider()
    col1, col2 = st.columns(2)
    with col1:
        with st.form("new_product"):
            st.subheader("➕ Новый товар")
            name = st.text_input("Название")
            price = st.number_input("Цена", min_value=0.01, value=9.99)
            category = st.selectbox("Категория", list(category_names), format_func=category_names.get)
            stock = st.number_input("Остаток", min_value=0, value=10)
            sku = st.text_input("SKU")
            description = st.text_area("Описание")
            if st.form_submit_button("Создать"):
                if not name:
                    st.error("Укажите название")
                else:
                    run_sync(
                        catalog.create_product(
                            {
                                "name": name,
                                "price": str(price),
                                "category_id": category,
                                "stock": int(stock),
                                "sku": sku,
                                "description": description,
                            }
                        )
                    )
                    st.rerun()
    with col2:
        with st.form("new_category"):
            st.subheader("➕ Новая категория")
            cat_name = st.text_input("Название категории")
            cat_description = st.text_input("Описание категории")
            if st.form_submit_button("Создать") and cat_name:
                run_sync(
                    catalog.create_category({"name": cat_name, "description": cat_description})
                )
                st.rerun()
        for c in categories:
            st.write(f"• **{c.name}**: {c.description}")


# ============ PAGE: ПОЛЬЗОВАТЕЛИ ============
elif page == "👥 Пользователи":
    st.header("👥 Пользователи")

    for u in run_sync(user_service.users()):
        cols = st.columns([4, 2, 2])
        with cols[0]:
            st.write(f"**{u.name}** <{u.email}>")
            if u.created_at:
                st.caption(f"с {u.created_at:%Y-%m-%d}")
        with cols[1]:
            role = st.selectbox(
                "Роль",
                ("customer", "admin"),
                index=0 if u.role == "customer" else 1,
                key=f"role_{u.id}",
            )
            if role != u.role:
                run_sync(user_service.update(u.id, {"role": role}))
                st.rerun()
        with cols[2]:
            status = st.selectbox(
                "Статус", USER_STATUSES, index=USER_STATUSES.index(u.status), key=f"ust_{u.id}"
            )
            if status != u.status:
                try:
                    run_sync(user_service.set_status(u.id, status))
                    st.rerun()
                except StorageError as exc:
                    st.error(f"❌ {exc}")

    st.divider()
    with st.form("new_user"):
        st.subheader("➕ Новый пользователь")
        user_name = st.text_input("Имя")
        user_email = st.text_input("Email")
        if st.form_submit_button("Создать") and user_name and user_email:
            run_sync(user_service.create({"name": user_name, "email": user_email}))
            st.rerun()


# ============ PAGE: ЗАКАЗЫ ============
elif page == "📦 Заказы":
    st.header("📦 Заказы")
    orders = run_sync(order_service.orders())

    if not orders:
        st.info("Заказов пока нет")
    for o in sorted(orders, key=lambda o: o.created_at, reverse=True):
        cols = st.columns([3, 3, 2, 2])
        with cols[0]:
            st.write(f"**{o.id}**  {o.created_at:%Y-%m-%d %H:%M}")
            st.caption(f"{o.customer.name} <{o.customer.email}>")
        with cols[1]:
            st.write(
                f"{money(o.subtotal)} + {money(o.shipping)} + {money(o.tax)} = **{money(o.total)}**"
            )
        with cols[2]:
            st.write(o.shipping_method.value)
        with cols[3]:
            status = st.selectbox(
                "Статус", ORDER_STATUSES, index=ORDER_STATUSES.index(o.status), key=f"st_{o.id}"
            )
            if status != o.status:
                run_sync(order_service.update_status(o.id, status))
                st.rerun()


# ============ PAGE: АНАЛИТИКА ============
elif page == "📈 Аналитика":
    st.header("📈 Аналитика")
    orders = run_sync(order_service.orders())

    stats = dashboard_stats(orders, products)
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("💰 Выручка", money(stats["total_revenue"]))
    col2.metric("🧾 Заказы", stats["total_orders"])
    col3.metric("📦 Товары", stats["total_products"])
    col4.metric("👥 Покупатели", stats["active_customers"])

    tab1, tab2, tab3 = st.tabs(["📅 Продажи", "🏆 Товары", "👣 Посетители"])

    with tab1:
        days = st.slider("Дней:", 7, 90, 30)
        period = sales_by_period(orders, days, date.today())
        st.bar_chart({row["date"]: float(row["revenue"]) for row in period})
        summary = sales_summary(orders)
        st.write(f"Средний чек: {money(summary['average_order_value'])}")
        st.write(f"Скидки: {money(summary['total_discounts'])}")

    with tab2:
        for idx, item in enumerate(top_products_report(orders, products, 10), 1):
            st.write(
                f"{idx}. **{item['name']}**: {item['quantity_sold']} шт, {money(item['revenue'])}"
            )

    with tab3:
        summary = tracker.analytics_summary(settings.analytics_days)
        col1, col2, col3 = st.columns(3)
        col1.metric("Сессии", summary["total_sessions"])
        col2.metric("Конверсия", f"{summary['conversion_rate']:.1f}%")
        col3.metric("Средний чек", money(summary["average_order_value"]))
        today = tracker.daily_stats(date.today().isoformat())
        if today:
            st.subheader("Сегодня")
            for item in today["top_pages"]:
                st.write(f"• {item['path']}: {item['views']}")
