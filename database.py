import logging
import os
import time
import uuid
from datetime import datetime

from config import ACTIVITY_LIMIT, DATA_DIR
from pricing import item_prices
from storage import JsonDocument

logger = logging.getLogger(__name__)

DEFAULT_STATUS = 'Редкий'
PLACEHOLDER_USERNAME = 'user_{user_id}'


def parse_positive_int(value):
    """Приводит значение к положительному int или возвращает None."""
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def parse_user_id(value):
    """Идентификатор пользователя Telegram: положительное целое."""
    return parse_positive_int(value)


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_inventory_id() -> str:
    """Время в миллисекундах плюс случайный хвост - на случай двух записей за одну миллисекунду."""
    return f"{_now_ms()}-{uuid.uuid4().hex[:8]}"


class LedgerStore:
    """Балансы Stars: user_id -> {stars, username}."""

    def __init__(self, doc: JsonDocument):
        self.doc = doc

    def get_balance(self, user_id) -> int:
        entry = self.doc.load().get(str(user_id))
        return int(entry.get('stars', 0)) if entry else 0

    def set_balance(self, user_id, stars: int, username: str):
        """Полная перезапись записи. Изменение баланса - только через read-modify-write вызывающего."""
        if stars < 0:
            raise ValueError(f"Отрицательный баланс для user {user_id}: {stars}")
        with self.doc.transaction() as balances:
            balances[str(user_id)] = {'stars': stars, 'username': username}


class CatalogStore:
    """Упорядоченный список товаров с остатками."""

    def __init__(self, doc: JsonDocument):
        self.doc = doc

    @staticmethod
    def _present(row: dict) -> dict:
        return {
            'id': row.get('id'),
            'name': row.get('name'),
            'image': row.get('image'),
            'description': row.get('description') or '',
            'price': row.get('price'),
            'prices': item_prices(row),
            'quantity': row.get('quantity'),
            'stock': row.get('stock'),
            'tag': row.get('tag'),
            'tagColor': row.get('tagColor'),
            'status': row.get('status'),
            'statusColor': row.get('statusColor'),
        }

    def list_items(self) -> list:
        return [self._present(row) for row in self.doc.load() if isinstance(row, dict)]

    def get_item(self, item_id):
        for row in self.doc.load():
            if row.get('id') == item_id:
                return self._present(row)
        return None

    def insert(self, item: dict) -> int:
        """Добавляет товар с id = максимальный существующий + 1."""
        with self.doc.transaction() as items:
            new_item = dict(item)
            new_item['id'] = max((row.get('id') or 0 for row in items), default=0) + 1
            items.append(new_item)
        logger.info(f"Добавлен товар {new_item['id']}: {new_item.get('name')}")
        return new_item['id']

    def update(self, item_id, fields: dict) -> bool:
        """Обновляет только переданные поля. Товар с остатком 0 снимается с витрины."""
        fields = {k: v for k, v in fields.items() if k != 'id'}
        with self.doc.transaction() as items:
            row = next((r for r in items if r.get('id') == item_id), None)
            if row is None:
                return False
            row.update(fields)
            if (row.get('stock') or 0) <= 0:
                items.remove(row)
                logger.info(f"Товар {item_id} без остатка и снят с витрины")
        return True

    def remove(self, item_id) -> bool:
        with self.doc.transaction() as items:
            remaining = [row for row in items if row.get('id') != item_id]
            if len(remaining) == len(items):
                return False
            items[:] = remaining
        return True

    def decrement_stock(self, item_id):
        """
        Списывает одну единицу. Товар с нулевым остатком удаляется из каталога.
        Возвращает новый остаток или None, если товара нет или он уже распродан.
        """
        with self.doc.transaction() as items:
            row = next((r for r in items if r.get('id') == item_id), None)
            if row is None or (row.get('stock') or 0) <= 0:
                return None
            row['stock'] -= 1
            if row['stock'] == 0:
                items.remove(row)
                logger.info(f"Товар {item_id} распродан и снят с витрины")
        return row['stock']


class InventoryStore:
    """Купленные и полученные предметы, разделённые по владельцу (userId)."""

    def __init__(self, doc: JsonDocument):
        self.doc = doc

    @staticmethod
    def _present(row: dict) -> dict:
        return {
            'inventoryId': row.get('inventoryId'),
            'id': row.get('id') or 0,
            'name': row.get('name') or 'Неизвестный предмет',
            'image': row.get('image') or '📦',
            'price': row.get('price') or 0,
            'convertedPrice': row.get('convertedPrice') or row.get('price') or 0,
            'prices': row.get('prices') or {},
            'quantity': row.get('quantity') or 'x1',
            'owner': row.get('owner') or 'Неизвестно',
            'userId': row.get('userId'),
            'username': row.get('username') or 'user',
            'status': row.get('status') or DEFAULT_STATUS,
            'comment': row.get('comment'),
            'transferDate': row.get('transferDate'),
            'fromUsername': row.get('fromUsername'),
            'originalOwner': row.get('originalOwner'),
            'createdAt': row.get('createdAt'),
        }

    def list_by_owner(self, user_id) -> list:
        user_id = parse_user_id(user_id)
        if user_id is None:
            logger.info("Запрошен инвентарь для некорректного userId")
            return []
        items = [
            self._present(row)
            for row in self.doc.load()
            if isinstance(row, dict) and row.get('userId') == user_id
        ]
        logger.info(f"Найдено {len(items)} предметов у user {user_id}")
        return items

    def find_owned(self, user_id, inventory_id=None, item_id=None, name=None):
        """Ищет запись владельца по inventoryId, иначе по паре (id, name)."""
        owned = self.list_by_owner(user_id)
        if inventory_id is not None:
            match = next((r for r in owned if r['inventoryId'] == inventory_id), None)
            if match:
                return match
        if item_id is None:
            return None
        return next((r for r in owned if r['id'] == item_id and r['name'] == name), None)

    def append(self, record: dict) -> dict:
        """Сохраняет новую запись с новым inventoryId."""
        new_record = {
            'inventoryId': new_inventory_id(),
            'id': record.get('id'),
            'name': record.get('name'),
            'image': record.get('image'),
            'price': record.get('price'),
            'convertedPrice': record.get('convertedPrice') or record.get('price'),
            'prices': record.get('prices'),
            'quantity': record.get('quantity'),
            'owner': record.get('owner'),
            'userId': record.get('userId'),
            'username': record.get('username'),
            'status': record.get('status') or DEFAULT_STATUS,
            'comment': record.get('comment'),
            'transferDate': record.get('transferDate'),
            'fromUsername': record.get('fromUsername'),
            'originalOwner': record.get('originalOwner'),
            'createdAt': datetime.now().isoformat(),
        }
        if record.get('buyerNumber') is not None:
            new_record['buyerNumber'] = record['buyerNumber']
        with self.doc.transaction() as items:
            items.append(new_record)
        return new_record

    def remove(self, inventory_id, user_id) -> bool:
        """Удаляет запись, только если совпадают и inventoryId, и владелец."""
        user_id = parse_user_id(user_id)
        with self.doc.transaction() as items:
            items[:] = [
                row for row in items
                if not (row.get('inventoryId') == inventory_id and row.get('userId') == user_id)
            ]
        return True

    def backfill_username(self, user_id, username: str) -> int:
        """Подставляет настоящий username вместо заглушки, оставленной при передаче подарка."""
        user_id = parse_user_id(user_id)
        if user_id is None or not username:
            return 0
        placeholder = PLACEHOLDER_USERNAME.format(user_id=user_id)
        updated = 0
        with self.doc.transaction() as items:
            for row in items:
                if row.get('userId') == user_id and row.get('username') == placeholder:
                    row['username'] = username
                    updated += 1
        if updated:
            logger.info(f"Обновлён username у {updated} предметов user {user_id}")
        return updated


class ActivityLog:
    """Лента покупок, новые записи сверху."""

    def __init__(self, doc: JsonDocument, limit: int = ACTIVITY_LIMIT):
        self.doc = doc
        self.limit = limit

    def append(self, record: dict) -> dict:
        now = datetime.now()
        entry = {
            'id': record.get('id'),
            'name': record.get('name'),
            'image': record.get('image'),
            'price': record.get('price'),
            'convertedPrice': record.get('convertedPrice') or record.get('price'),
            'prices': record.get('prices'),
            'paymentMethod': record.get('paymentMethod'),
            'userId': record.get('userId'),
            'username': record.get('username'),
            'buyerNumber': record.get('buyerNumber'),
            'date': now.strftime('%d.%m.%Y'),
            'time': now.strftime('%H:%M'),
        }
        with self.doc.transaction() as activity:
            activity.insert(0, entry)
        return entry

    def list(self, limit: int = None) -> list:
        return self.doc.load()[:self.limit if limit is None else limit]

    def count_by_item(self, item_id) -> int:
        # Считаем по всему файлу, а не по урезанной витрине
        return sum(1 for a in self.doc.load() if a.get('id') == item_id)


class StatsStore:
    """Статистика покупок и рефералов по пользователям."""

    def __init__(self, doc: JsonDocument):
        self.doc = doc

    @staticmethod
    def _empty() -> dict:
        return {'totalPurchases': 0, 'totalSpent': 0, 'referralCount': 0, 'referralEarnings': 0}

    def get(self, user_id) -> dict:
        stats = self.doc.load().get(str(user_id)) or {}
        return {
            'totalPurchases': stats.get('totalPurchases') or 0,
            'totalSpent': stats.get('totalSpent') or 0,
            'referralCount': stats.get('referralCount') or 0,
            'referralEarnings': stats.get('referralEarnings') or 0,
            'username': stats.get('username') or '',
        }

    def record_purchase(self, user_id, username: str, spent: int):
        with self.doc.transaction() as stats:
            entry = stats.setdefault(str(user_id), self._empty())
            entry['totalPurchases'] = entry.get('totalPurchases', 0) + 1
            entry['totalSpent'] = entry.get('totalSpent', 0) + spent
            entry['username'] = username

    def record_referral(self, referrer_id, earned: int = 0, new_referral: bool = False):
        with self.doc.transaction() as stats:
            entry = stats.setdefault(str(referrer_id), self._empty())
            if new_referral:
                entry['referralCount'] = entry.get('referralCount', 0) + 1
            entry['referralEarnings'] = entry.get('referralEarnings', 0) + earned


class ReferralStore:
    """Кто кого пригласил: referrer_id -> [user_id, ...]."""

    def __init__(self, doc: JsonDocument):
        self.doc = doc

    def referrer_of(self, user_id):
        for referrer_id, users in self.doc.load().items():
            if user_id in users:
                return int(referrer_id)
        return None

    def register(self, referrer_id, user_id) -> bool:
        """Привязывает пользователя к пригласившему. Первая привязка окончательная."""
        if referrer_id == user_id:
            return False
        with self.doc.transaction() as referrals:
            if any(user_id in users for users in referrals.values()):
                return False
            referrals.setdefault(str(referrer_id), []).append(user_id)
        return True


class PaymentRequestStore:
    """Заявки на оплату товара вне платформы и на пополнение баланса."""

    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'

    def __init__(self, doc: JsonDocument):
        self.doc = doc

    def create(self, request: dict) -> str:
        with self.doc.transaction() as requests:
            existing = {r.get('id') for r in requests}
            stamp = _now_ms()
            while str(stamp) in existing:
                stamp += 1
            entry = dict(request, id=str(stamp), status=self.PENDING, date=datetime.now().isoformat())
            requests.append(entry)
        return entry['id']

    def list_pending(self) -> list:
        return [r for r in self.doc.load() if r.get('status') == self.PENDING]

    def get(self, request_id):
        return next((r for r in self.doc.load() if r.get('id') == request_id), None)

    def get_pending(self, request_id, request_type=None):
        request = self.get(request_id)
        if not request or request.get('status') != self.PENDING:
            return None
        if request_type and request.get('type') != request_type:
            return None
        return request

    def set_status(self, request_id, status: str) -> bool:
        with self.doc.transaction() as requests:
            request = next((r for r in requests if r.get('id') == request_id), None)
            if request is None:
                return False
            request['status'] = status
        return True


class Database:
    """Все JSON-документы магазина в одном каталоге."""

    def __init__(self, data_dir: str = DATA_DIR):
        self.data_dir = data_dir
        self.init_database()

    def _doc(self, file_name: str, default) -> JsonDocument:
        return JsonDocument(os.path.join(self.data_dir, file_name), default)

    def init_database(self):
        """Создаёт каталог данных и пустые документы, если их ещё нет."""
        os.makedirs(self.data_dir, exist_ok=True)
        self.catalog = CatalogStore(self._doc('items.json', []))
        self.activity = ActivityLog(self._doc('activity.json', []))
        self.inventory = InventoryStore(self._doc('inventory.json', []))
        self.ledger = LedgerStore(self._doc('user-balance.json', {}))
        self.stats = StatsStore(self._doc('user-stats.json', {}))
        self.referrals = ReferralStore(self._doc('referrals.json', {}))
        self.payment_requests = PaymentRequestStore(self._doc('payment-requests.json', []))

        for store in (self.catalog, self.activity, self.inventory, self.ledger,
                      self.stats, self.referrals, self.payment_requests):
            store.doc.ensure()
        logger.info(f"Хранилище инициализировано: {len(self.catalog.list_items())} товаров")


# Единый экземпляр для всего приложения
db = Database()
