import os
from dotenv import load_dotenv

# Загружаем переменные из .env файла (для локальной разработки)
load_dotenv()

# --- Ключевые настройки ---

# Токен Telegram-бота. Без него уведомления не отправляются, магазин продолжает работать.
BOT_TOKEN = os.getenv('BOT_TOKEN', '').strip() or None

# URL, на котором открывается Mini App.
WEBAPP_URL = os.getenv('WEBAPP_URL', 'https://metagiftnew1.onrender.com').rstrip('/')

# Порт для запуска Uvicorn
PORT = int(os.getenv('PORT', 8000))

# Каталог с JSON-документами (items.json, activity.json, ...)
DATA_DIR = os.getenv('DATA_DIR', 'data')

# Сколько последних записей активности отдаём на витрину
ACTIVITY_LIMIT = int(os.getenv('ACTIVITY_LIMIT', 100))

# --- Платёжные реквизиты ---
SUPPORT_CONTACT = os.getenv('SUPPORT_CONTACT', '@MetaGift_support')
YOOMONEY_WALLET = os.getenv('YOOMONEY_WALLET', '4100118542839036')
TON_WALLET = os.getenv('TON_WALLET', 'UQDy5hhPvhwcNY9g-lP-nkjdmx4rAVZGFEnhOKzdF-JcIiDW')

# Процент от потраченных Stars, который записывается пригласившему в referralEarnings
REFERRAL_PERCENT = int(os.getenv('REFERRAL_PERCENT', 5))

# URL для вебхука бота
WEBHOOK_URL = f"{WEBAPP_URL}/webhook"
