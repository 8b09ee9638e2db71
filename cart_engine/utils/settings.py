# cart_engine/utils/settings.py
import os
from dotenv import load_dotenv

load_dotenv()

CART_API_URL = os.getenv("CART_API_URL", "http://cart-backend:8000/api")
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", 5))

# reguly biznesowe koszyka
MAX_QUANTITY_PER_ITEM = int(os.getenv("MAX_QUANTITY_PER_ITEM", 10))
MAX_CART_ITEMS = int(os.getenv("MAX_CART_ITEMS", 50))
TAX_RATE = os.getenv("TAX_RATE", "0.16")  # VAT 16%
FREE_SHIPPING_THRESHOLD = os.getenv("FREE_SHIPPING_THRESHOLD", "5000")
DEFAULT_SHIPPING_COST = os.getenv("DEFAULT_SHIPPING_COST", "300")
EXPRESS_SHIPPING_MULTIPLIER = int(os.getenv("EXPRESS_SHIPPING_MULTIPLIER", 2))
CURRENCY = os.getenv("CURRENCY", "KES")

# koszyk goscia
GUEST_CART_KEY = os.getenv("GUEST_CART_KEY", "guest_cart")
GUEST_STORAGE = os.getenv("GUEST_STORAGE", "memory")  # memory | redis

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# storefront: ile CartService trzymamy w pamieci (jeden na X-Device-Id)
MAX_DEVICE_SESSIONS = int(os.getenv("MAX_DEVICE_SESSIONS", 1000))
DEVICE_IDLE_SECONDS = float(os.getenv("DEVICE_IDLE_SECONDS", 1800))
