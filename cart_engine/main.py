# cart_engine/main.py
import uvicorn

from cart_engine.api import create_app
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)

app = create_app()

if __name__ == "__main__":
    logger.info("Starting storefront cart API")
    uvicorn.run(app, host="0.0.0.0", port=8000)
