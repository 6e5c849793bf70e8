"""
Движок транзакций магазина: покупка с баланса, подтверждение заявок,
пополнение баланса и передача подарков.

Все изменяющие операции выполняются под одной блокировкой движка, поэтому
проверка остатка/баланса и запись результата не перемешиваются между
параллельными запросами. Уведомления отправляются уже после снятия блокировки
и никогда не откатывают операцию.
"""
import logging
import threading
from datetime import datetime

import pricing
from config import REFERRAL_PERCENT, TON_WALLET
from database import PLACEHOLDER_USERNAME, PaymentRequestStore, db, parse_positive_int, parse_user_id

logger = logging.getLogger(__name__)

ITEM_REQUEST = 'item_purchase'
TOPUP_REQUEST = 'stars_topup'


class ShopError(Exception):
    """Базовая ошибка магазина; status_code уходит в HTTP-ответ."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ShopError):
    status_code = 400


class NotFoundError(ShopError):
    status_code = 404


class PreconditionFailed(ShopError):
    status_code = 400


class ItemUnavailable(PreconditionFailed):
    def __init__(self, message: str = 'Товар недоступен или распродан'):
        super().__init__(message)


class InsufficientBalance(PreconditionFailed):
    def __init__(self, message: str = 'Недостаточно Stars на балансе'):
        super().__init__(message)


class PriceChanged(PreconditionFailed):
    def __init__(self, message: str = 'Цена товара изменилась, обновите витрину'):
        super().__init__(message)


def _wallet_label(wallet: str) -> str:
    return f"{wallet[:4]}...{wallet[-4:]}" if len(wallet) > 8 else wallet


class Shop:

    def __init__(self, database, notifier=None):
        self.db = database
        self.notifier = notifier
        self._lock = threading.RLock()

    async def _notify(self, chat_id, text: str) -> bool:
        if self.notifier is None:
            logger.info(f"Уведомление для {chat_id} пропущено: бот не подключён")
            return False
        try:
            return await self.notifier.notify(chat_id, text)
        except Exception as e:
            logger.error(f"Не удалось уведомить {chat_id}: {e}")
            return False

    # --- Общая часть покупки ---

    def _deliver(self, user_id: int, username: str, snapshot: dict, spent: int,
                 payment_method: str, owner: str, referrer_id=None) -> int:
        """Запись в ленту, инвентарь и статистику. Вызывается только под self._lock."""
        buyer_number = self.db.activity.count_by_item(snapshot['id']) + 1
        self.db.activity.append({
            **snapshot,
            'paymentMethod': payment_method,
            'userId': user_id,
            'username': username,
            'buyerNumber': buyer_number,
        })
        self.db.inventory.append({
            **snapshot,
            'owner': owner,
            'userId': user_id,
            'username': username,
            'buyerNumber': buyer_number,
        })
        self.db.stats.record_purchase(user_id, username, spent)
        self._credit_referrer(user_id, spent, referrer_id)
        logger.info(f"User {user_id} получил товар {snapshot['id']} (покупатель №{buyer_number})")
        return buyer_number

    def _credit_referrer(self, user_id: int, spent: int, referrer_id=None):
        referrer_id = parse_user_id(referrer_id)
        new_referral = False
        if referrer_id is not None:
            new_referral = self.db.referrals.register(referrer_id, user_id)
        referrer_id = self.db.referrals.referrer_of(user_id)
        if referrer_id is None:
            return
        earned = spent * REFERRAL_PERCENT // 100
        self.db.stats.record_referral(referrer_id, earned, new_referral=new_referral)

    # --- Покупка с баланса ---

    async def purchase_with_balance(self, item_id, user_id, username: str,
                                    stars_price=None, referrer_id=None) -> dict:
        user_id = parse_user_id(user_id)
        if user_id is None:
            raise ValidationError('Некорректный ID пользователя')

        with self._lock:
            item = self.db.catalog.get_item(item_id)
            if not item or (item.get('stock') or 0) <= 0:
                raise ItemUnavailable()

            price = pricing.stars_price(item)
            if stars_price is not None and stars_price != price:
                raise PriceChanged()

            balance = self.db.ledger.get_balance(user_id)
            if balance < price:
                raise InsufficientBalance()

            new_balance = balance - price
            self.db.ledger.set_balance(user_id, new_balance, username)
            self.db.catalog.decrement_stock(item_id)

            snapshot = {
                'id': item['id'],
                'name': item['name'],
                'image': item['image'],
                'price': item['price'],
                'convertedPrice': price,
                'prices': item['prices'],
                'quantity': item['quantity'],
                'status': item.get('status'),
            }
            self._deliver(user_id, username, snapshot, price, 'STARS',
                          owner=f"@{username}", referrer_id=referrer_id)
            self.db.inventory.backfill_username(user_id, username)

        return {'success': True, 'newBalance': new_balance, 'message': 'Покупка успешна!'}

    # --- Заявки на оплату вне платформы ---

    def create_payment_request(self, item_id, user_id, username: str, price,
                               converted_price=None, payment_method: str = None,
                               item_name: str = None, item_image: str = None,
                               referrer_id=None) -> str:
        user_id = parse_user_id(user_id)
        if user_id is None or parse_positive_int(item_id) is None:
            raise ValidationError('Некорректный ID пользователя или товара')

        item = self.db.catalog.get_item(int(item_id)) or {}
        request_id = self.db.payment_requests.create({
            'type': ITEM_REQUEST,
            'itemId': int(item_id),
            'userId': user_id,
            'username': username,
            'price': price,
            'convertedPrice': converted_price or price,
            'paymentMethod': payment_method or 'TON',
            'itemName': item_name or item.get('name'),
            'itemImage': item_image or item.get('image'),
            'referrerId': referrer_id,
        })
        logger.info(f"Новая заявка на оплату {request_id}: товар {item_id}, user {user_id}")
        return request_id

    def create_topup_request(self, user_id, username: str, amount,
                             request_type: str = TOPUP_REQUEST) -> str:
        user_id = parse_user_id(user_id)
        amount = parse_positive_int(amount)
        if user_id is None or amount is None:
            raise ValidationError('Некорректный ID пользователя или сумма пополнения')

        request_id = self.db.payment_requests.create({
            'type': request_type or TOPUP_REQUEST,
            'userId': user_id,
            'username': username,
            'amount': amount,
        })
        logger.info(f"Новая заявка на пополнение {request_id}: {amount} Stars для user {user_id}")
        return request_id

    async def approve_payment_request(self, request_id: str) -> dict:
        """
        Подтверждение оплаты админом. Заявка становится approved в любом случае;
        товар выдаётся, только если он ещё есть в наличии. Цена берётся из заявки,
        а не из текущего каталога.
        """
        with self._lock:
            request = self.db.payment_requests.get_pending(request_id, ITEM_REQUEST)
            if not request:
                raise NotFoundError('Payment request not found')

            self.db.payment_requests.set_status(request_id, PaymentRequestStore.APPROVED)

            delivered = False
            item = self.db.catalog.get_item(request['itemId'])
            if item and (item.get('stock') or 0) > 0:
                self.db.catalog.decrement_stock(request['itemId'])
                snapshot = {
                    'id': request['itemId'],
                    'name': request.get('itemName'),
                    'image': request.get('itemImage'),
                    'price': request.get('price'),
                    'convertedPrice': request.get('convertedPrice'),
                    'prices': None,
                    'quantity': item.get('quantity'),
                    'status': None,
                }
                spent = pricing.spent_in_stars(request.get('price'), request.get('convertedPrice'))
                self._deliver(request['userId'], request.get('username'), snapshot, spent,
                              request.get('paymentMethod'), owner=_wallet_label(TON_WALLET),
                              referrer_id=request.get('referrerId'))
                delivered = True
            else:
                logger.warning(f"Заявка {request_id} подтверждена, но товар {request['itemId']} уже распродан")

        if delivered:
            await self._notify(
                request['userId'],
                f"✅ <b>Оплата подтверждена!</b>\n\n"
                f"📦 Подарок: {request.get('itemName')}\n\n"
                f"Подарок добавлен в ваш инвентарь!"
            )
        return {'success': True, 'delivered': delivered}

    def reject_payment_request(self, request_id: str) -> dict:
        with self._lock:
            if not self.db.payment_requests.get_pending(request_id):
                raise NotFoundError('Payment request not found')
            self.db.payment_requests.set_status(request_id, PaymentRequestStore.REJECTED)
        logger.info(f"Заявка {request_id} отклонена")
        return {'success': True}

    async def approve_topup_request(self, request_id: str) -> dict:
        with self._lock:
            request = self.db.payment_requests.get_pending(request_id, TOPUP_REQUEST)
            if not request:
                raise NotFoundError('Top up request not found')

            self.db.payment_requests.set_status(request_id, PaymentRequestStore.APPROVED)
            user_id = request['userId']
            new_balance = self.db.ledger.get_balance(user_id) + request['amount']
            self.db.ledger.set_balance(user_id, new_balance, request.get('username'))
        logger.info(f"Пополнение {request_id}: user {user_id} +{request['amount']} Stars")

        await self._notify(
            user_id,
            f"💰 <b>Пополнение баланса подтверждено!</b>\n\n"
            f"⭐ Начислено: {request['amount']} Stars\n"
            f"💳 Текущий баланс: {new_balance} Stars\n\n"
            f"Теперь вы можете покупать подарки с баланса! 🎁"
        )
        return {'success': True, 'newBalance': new_balance}

    # --- Передача подарка ---

    async def transfer_item(self, from_user_id, from_username: str, to_user_id,
                            item: dict, comment: str = None) -> dict:
        """Перенос предмета: старая запись удаляется, получателю создаётся новая."""
        item = item or {}
        sender_id = parse_user_id(from_user_id)
        if not item.get('id') or not item.get('name') or sender_id is None \
                or not from_username or to_user_id in (None, ''):
            raise ValidationError('Отсутствуют обязательные данные для передачи')

        recipient_id = parse_user_id(to_user_id)
        if recipient_id is None:
            raise ValidationError('Некорректный ID получателя')
        if sender_id == recipient_id:
            raise PreconditionFailed('Нельзя передать подарок самому себе')

        with self._lock:
            record = self.db.inventory.find_owned(
                sender_id, item.get('inventoryId'), item.get('id'), item.get('name'))
            if not record:
                raise NotFoundError('Предмет не найден в вашем инвентаре')

            self.db.inventory.remove(record['inventoryId'], sender_id)
            self.db.inventory.append({
                **record,
                'userId': recipient_id,
                'username': PLACEHOLDER_USERNAME.format(user_id=recipient_id),
                'owner': f"ID: {recipient_id}",
                'comment': comment or None,
                'transferDate': datetime.now().isoformat(),
                'fromUsername': from_username,
                'originalOwner': record.get('originalOwner') or record.get('owner'),
            })
        logger.info(f"Предмет {record['inventoryId']} передан от {sender_id} к {recipient_id}")

        await self._notify(
            recipient_id,
            f"🎁 <b>Вы получили подарок!</b>\n\n"
            f"📦 Подарок: {record['name']}\n"
            f"👤 От: {from_username}\n"
            f"💬 Комментарий: {comment or 'Без комментария'}\n\n"
            f"Подарок добавлен в ваш инвентарь!"
        )
        return {'success': True}

    def register_user(self, user_id, username: str) -> int:
        """Пользователь открыл бота: подставляем его username в полученные подарки."""
        with self._lock:
            return self.db.inventory.backfill_username(user_id, username)


# Единый экземпляр движка для всего приложения
shop = Shop(db)
