"""Instance unique de l'application (importée par clubpay.asgi)."""
import logging
import os

from clubpay.app_setup.factory import create_app

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

app = create_app()
