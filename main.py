import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from telegram import Update
from telegram.error import RetryAfter, TelegramError

# Импортируем роутер, конфигурацию и логику бота
from api import router as api_router
from bot import metagift_bot, setup_bot_handlers
from config import PORT
from shop import shop

# Настройка логгера
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
logger = logging.getLogger(__name__)

# Уведомления движка уходят через бота
shop.notifier = metagift_bot


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Функция, выполняемая при старте и остановке приложения.
    """
    logger.info("Запуск приложения...")
    await setup_bot_handlers()

    if metagift_bot.application:
        try:
            await metagift_bot.application.bot.set_webhook(
                url=metagift_bot.webhook_url,
                allowed_updates=["message"]
            )
            logger.info(f"Вебхук установлен на: {metagift_bot.webhook_url}")
        except RetryAfter as e:
            logger.warning(f"Telegram flood control: повтор через {e.retry_after} с. Вебхук, вероятно, уже установлен.")
        except TelegramError as e:
            logger.error(f"Ошибка при установке вебхука: {e}")

    yield

    logger.info("Остановка приложения...")
    if metagift_bot.application:
        try:
            await metagift_bot.application.bot.delete_webhook()
            logger.info("Вебхук удалён.")
        except TelegramError as e:
            logger.error(f"Ошибка при удалении вебхука: {e}")
        await metagift_bot.application.shutdown()


# Создаём FastAPI приложение
app = FastAPI(lifespan=lifespan, title="MetaGift")

# Подключаем API магазина (/api/items, /api/purchase-with-balance, ...)
app.include_router(api_router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Некорректное тело запроса - ошибка клиента, отвечаем 400."""
    logger.info(f"Некорректный запрос {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"detail": "Некорректные данные запроса"})


@app.get("/health", include_in_schema=False)
async def health():
    return {"status": "ok"}


@app.post("/webhook")
async def telegram_webhook(request: Request):
    """
    Вебхук для обновлений от Telegram. Всегда отвечает 200 OK.
    """
    try:
        json_data = await request.json()
        if not metagift_bot.application:
            logger.warning("Вебхук получен до инициализации бота, обновление пропущено.")
        else:
            update = Update.de_json(json_data, metagift_bot.application.bot)
            await metagift_bot.application.process_update(update)
    except Exception as e:
        logger.error(f"Ошибка обработки вебхука: {e}")
    return PlainTextResponse("OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=PORT)
