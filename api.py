from fastapi import APIRouter, HTTPException
import logging

import pricing
from database import db, parse_user_id
from models import ItemIn, ItemUpdate, PaymentRequestIn, PurchaseRequest, TopUpRequestIn, TransferRequest
from shop import ShopError, shop

# Настройка логгера
logger = logging.getLogger(__name__)

# Создание роутера
router = APIRouter(prefix="/api")


def _shop_error(e: ShopError) -> HTTPException:
    logger.info(f"Отказ: {e.message}")
    return HTTPException(status_code=e.status_code, detail=e.message)


# --- Витрина ---

@router.get("/items")
async def get_items_endpoint():
    items = db.catalog.list_items()
    logger.info(f"API: загружено {len(items)} товаров")
    return items


@router.get("/activity")
async def get_activity_endpoint():
    """Последние покупки (не больше ACTIVITY_LIMIT)."""
    return db.activity.list()


@router.get("/inventory/{user_id}")
async def get_inventory_endpoint(user_id: str):
    if parse_user_id(user_id) is None:
        logger.error(f"Некорректный ID пользователя: {user_id}")
        raise HTTPException(status_code=400, detail="Invalid user ID")
    return db.inventory.list_by_owner(user_id)


@router.get("/user-stats/{user_id}")
async def get_user_stats_endpoint(user_id: str):
    return db.stats.get(user_id)


@router.get("/user-balance/{user_id}")
async def get_user_balance_endpoint(user_id: str):
    return {"stars": db.ledger.get_balance(user_id)}


@router.get("/payment-methods/{item_id}")
async def get_payment_methods_endpoint(item_id: int):
    """Способы оплаты товара с ценой в валюте каждого способа."""
    item = db.catalog.get_item(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return {"paymentMethods": pricing.payment_methods(item)}


# --- Администрирование каталога ---

@router.post("/items")
async def add_item_endpoint(item: ItemIn):
    item_id = db.catalog.insert(item.model_dump(by_alias=True, exclude_none=True))
    return {"success": True, "id": item_id}


@router.put("/items/{item_id}")
async def update_item_endpoint(item_id: int, fields: ItemUpdate):
    if not db.catalog.update(item_id, fields.model_dump(by_alias=True, exclude_unset=True)):
        raise HTTPException(status_code=404, detail="Item not found")
    return {"success": True}


@router.delete("/items/{item_id}")
async def delete_item_endpoint(item_id: int):
    if not db.catalog.remove(item_id):
        raise HTTPException(status_code=404, detail="Item not found")
    return {"success": True}


# --- Покупки и заявки ---

@router.post("/purchase-with-balance")
async def purchase_with_balance_endpoint(purchase: PurchaseRequest):
    try:
        return await shop.purchase_with_balance(
            purchase.item_id, purchase.user_id, purchase.username,
            stars_price=purchase.stars_price, referrer_id=purchase.referrer_id,
        )
    except ShopError as e:
        raise _shop_error(e)
    except Exception as e:
        logger.error(f"Ошибка покупки с баланса для user {purchase.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Ошибка сервера")


@router.post("/payment-request")
async def payment_request_endpoint(request: PaymentRequestIn):
    try:
        shop.create_payment_request(
            request.item_id, request.user_id, request.username, request.price,
            converted_price=request.converted_price, payment_method=request.payment_method,
            item_name=request.item_name, item_image=request.item_image,
            referrer_id=request.referrer_id,
        )
    except ShopError as e:
        raise _shop_error(e)
    return {"success": True}


@router.post("/topup-request")
async def topup_request_endpoint(request: TopUpRequestIn):
    try:
        shop.create_topup_request(request.user_id, request.username, request.amount, request.type)
    except ShopError as e:
        raise _shop_error(e)
    return {"success": True}


@router.get("/payment-requests")
async def get_payment_requests_endpoint():
    """Только ожидающие подтверждения заявки."""
    return db.payment_requests.list_pending()


@router.post("/payment-request/{request_id}/approve")
async def approve_payment_request_endpoint(request_id: str):
    try:
        return await shop.approve_payment_request(request_id)
    except ShopError as e:
        raise _shop_error(e)
    except Exception as e:
        logger.error(f"Ошибка подтверждения заявки {request_id}: {e}")
        raise HTTPException(status_code=500, detail="Server error")


@router.post("/payment-request/{request_id}/reject")
async def reject_payment_request_endpoint(request_id: str):
    try:
        return shop.reject_payment_request(request_id)
    except ShopError as e:
        raise _shop_error(e)


@router.post("/topup-request/{request_id}/approve")
async def approve_topup_request_endpoint(request_id: str):
    try:
        return await shop.approve_topup_request(request_id)
    except ShopError as e:
        raise _shop_error(e)
    except Exception as e:
        logger.error(f"Ошибка подтверждения пополнения {request_id}: {e}")
        raise HTTPException(status_code=500, detail="Server error")


@router.post("/transfer-item")
async def transfer_item_endpoint(transfer: TransferRequest):
    item = transfer.item.model_dump(by_alias=True) if transfer.item else None
    try:
        return await shop.transfer_item(
            transfer.from_user_id, transfer.from_username, transfer.to_user_id,
            item, comment=transfer.comment,
        )
    except ShopError as e:
        raise _shop_error(e)
    except Exception as e:
        logger.error(f"Ошибка передачи подарка от {transfer.from_user_id}: {e}")
        raise HTTPException(status_code=500, detail="Произошла ошибка при передаче подарка")
