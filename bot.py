import logging
from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, WebAppInfo
from telegram.ext import Application, CommandHandler, ContextTypes
from telegram.constants import ParseMode
from telegram.error import TelegramError

# Импортируем конфигурацию и движок магазина
from config import BOT_TOKEN, WEBAPP_URL, WEBHOOK_URL
from shop import shop

# Настройка логгера
logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
    "🎁 <b>Добро пожаловать в MetaGift!</b>\n\n"
    "<b>Mini App для покупки и дарения уникальных подарков прямо в Telegram!</b>\n\n"
    "🌟 <b>Возможности приложения:</b>\n"
    "• 🛍️ Покупка эксклюзивных цифровых подарков\n"
    "• 🎁 Передача подарков друзьям с личными сообщениями\n"
    "• ⭐ Пополнение баланса Telegram Stars\n"
    "• 👥 Реферальная программа с бонусами\n"
    "• 📦 Личный инвентарь с коллекцией подарков\n"
    "• 📊 Статистика покупок и активности\n\n"
    "Нажмите кнопку ниже, чтобы открыть магазин! 👇"
)


class MetaGiftBot:
    """
    Telegram-бот магазина: приветствие по /start и уведомления пользователям.
    """
    def __init__(self):
        self.application = None
        self.webhook_url = WEBHOOK_URL

    def main_keyboard(self) -> InlineKeyboardMarkup:
        keyboard = [[InlineKeyboardButton("🛍️ Открыть магазин", web_app=WebAppInfo(url=f"{WEBAPP_URL}/"))]]
        return InlineKeyboardMarkup(keyboard)

    async def start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Обработка команды /start."""
        user = update.effective_user
        if user and user.username:
            shop.register_user(user.id, user.username)

        await update.message.reply_html(WELCOME_MESSAGE, reply_markup=self.main_keyboard())

    async def notify(self, chat_id: int, text: str) -> bool:
        """Отправляет HTML-сообщение. Ошибки только логируются."""
        if not self.application:
            logger.info(f"Бот не настроен, сообщение для {chat_id} не отправлено")
            return False
        try:
            await self.application.bot.send_message(chat_id=chat_id, text=text, parse_mode=ParseMode.HTML)
            logger.info(f"✅ Сообщение отправлено пользователю {chat_id}")
            return True
        except TelegramError as e:
            logger.error(f"❌ Не удалось отправить сообщение пользователю {chat_id}: {e}")
            return False


# Создаём единственный экземпляр бота
metagift_bot = MetaGiftBot()


async def setup_bot_handlers():
    """Создаёт и настраивает приложение бота."""
    if not BOT_TOKEN:
        logger.warning("BOT_TOKEN не задан: вебхук и уведомления отключены.")
        return
    logger.info("Инициализация приложения Telegram-бота...")
    application = Application.builder().token(BOT_TOKEN).build()

    # Регистрируем обработчики
    application.add_handler(CommandHandler("start", metagift_bot.start))

    await application.initialize()
    metagift_bot.application = application
    logger.info("Обработчики команд добавлены.")
