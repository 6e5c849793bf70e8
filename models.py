# models.py: Pydantic модели для валидации данных.
# Описывает, какую структуру данных ожидает API. Mini App шлёт поля в camelCase.

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Optional


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class PurchaseRequest(ApiModel):
    """Покупка товара со Stars-баланса."""
    item_id: int = Field(..., alias="itemId")
    user_id: int = Field(..., alias="userId")
    username: str = "user"
    stars_price: Optional[int] = Field(None, alias="starsPrice")  # цена, которую видел покупатель
    referrer_id: Optional[int] = Field(None, alias="referrerId")


class PaymentRequestIn(ApiModel):
    """Заявка об оплате товара вне платформы (TON, ЮMoney, Stars через поддержку)."""
    item_id: int = Field(..., alias="itemId")
    user_id: int = Field(..., alias="userId")
    username: Optional[str] = None
    price: float
    converted_price: Optional[float] = Field(None, alias="convertedPrice")
    payment_method: Optional[str] = Field(None, alias="paymentMethod", pattern="^(STARS|YOOMONEY|TON)$")
    item_name: Optional[str] = Field(None, alias="itemName")
    item_image: Optional[str] = Field(None, alias="itemImage")
    referrer_id: Optional[int] = Field(None, alias="referrerId")


class TopUpRequestIn(ApiModel):
    user_id: int = Field(..., alias="userId")
    username: Optional[str] = None
    amount: int = Field(..., gt=0)
    type: Optional[str] = None


class TransferItem(ApiModel):
    """Предмет из инвентаря отправителя. Обязательность полей проверяет движок."""
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, extra="allow")

    inventory_id: Optional[str] = Field(None, alias="inventoryId")
    id: Optional[int] = None
    name: Optional[str] = None


class TransferRequest(ApiModel):
    from_user_id: Optional[int] = Field(None, alias="fromUserId")
    from_username: Optional[str] = Field(None, alias="fromUsername")
    to_user_id: Optional[str] = Field(None, alias="toUserId")
    comment: Optional[str] = None
    item: Optional[TransferItem] = None


class ItemIn(ApiModel):
    """Новый товар каталога. id назначает сервер."""
    name: str
    image: Optional[str] = None
    description: Optional[str] = ""
    price: float = Field(..., ge=0)
    prices: Optional[Dict[str, float]] = None
    quantity: Optional[str] = None
    stock: int = Field(1, gt=0)
    tag: Optional[str] = None
    tag_color: Optional[str] = Field(None, alias="tagColor")
    status: Optional[str] = None
    status_color: Optional[str] = Field(None, alias="statusColor")


class ItemUpdate(ApiModel):
    """Частичное обновление: сохраняются только переданные поля."""
    name: Optional[str] = None
    image: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    prices: Optional[Dict[str, float]] = None
    quantity: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    tag: Optional[str] = None
    tag_color: Optional[str] = Field(None, alias="tagColor")
    status: Optional[str] = None
    status_color: Optional[str] = Field(None, alias="statusColor")
