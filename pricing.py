# pricing.py: единая таблица валют и пересчёт цен.
# Все потоки, которым нужна цена в Stars/RUB, берут её только отсюда.

import math

from config import SUPPORT_CONTACT, TON_WALLET, YOOMONEY_WALLET

# Базовая валюта каталога - TON. Множители фиксированные.
BASE_CURRENCY = "TON"
CURRENCY_MULTIPLIERS = {
    "TON": 1,
    "STARS": 100,
    "RUB": 300,
}

PAYMENT_METHODS = {
    "STARS": {
        "name": "Telegram Stars",
        "currency": "STARS",
        "icon": "https://i.postimg.cc/3N3f5zhH/IMG-1243.png",
        "contact": SUPPORT_CONTACT,
    },
    "YOOMONEY": {
        "name": "ЮMoney (₽)",
        "currency": "RUB",
        "icon": "https://thumb.tildacdn.com/tild6365-6562-4437-a465-306531386233/-/format/webp/4.png",
        "wallet": YOOMONEY_WALLET,
    },
    "TON": {
        "name": "TON Wallet",
        "currency": "TON",
        "icon": "https://ton.org/download/ton_symbol.png",
        "wallet": TON_WALLET,
    },
}


def convert(price, currency: str):
    """Переводит цену из базовой валюты в `currency`. Stars и рубли округляются вверх."""
    if currency not in CURRENCY_MULTIPLIERS:
        raise KeyError(f"Неизвестная валюта: {currency}")
    if currency == BASE_CURRENCY:
        return price
    return math.ceil(price * CURRENCY_MULTIPLIERS[currency])


def item_prices(item: dict) -> dict:
    """Цены товара во всех валютах; явно заданные в каталоге имеют приоритет."""
    prices = dict(item.get("prices") or {})
    base = item.get("price") or 0
    for currency in CURRENCY_MULTIPLIERS:
        if prices.get(currency) is None:
            prices[currency] = convert(base, currency)
    return prices


def stars_price(item: dict) -> int:
    return math.ceil(item_prices(item)["STARS"])


def spent_in_stars(price, converted_price=None) -> int:
    """Сумма покупки в Stars для статистики: сохранённая цена, иначе пересчёт базовой."""
    if converted_price:
        return math.ceil(converted_price)
    return convert(price, "STARS") if price else 0


def payment_methods(item: dict) -> list:
    """Доступные способы оплаты товара с ценой в валюте каждого способа."""
    prices = item_prices(item)
    methods = []
    for method_id, method in PAYMENT_METHODS.items():
        price = prices.get(method["currency"]) or 0
        if price <= 0:
            continue
        entry = {
            "id": method_id,
            "name": method["name"],
            "icon": method["icon"],
            "price": price,
        }
        if "contact" in method:
            entry["contact"] = method["contact"]
        if "wallet" in method:
            entry["wallet"] = method["wallet"]
        methods.append(entry)
    return methods
