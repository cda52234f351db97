"""
Configuration centrale de clubpay.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose l'URL de l'API du club, les timeouts réseau et la passerelle de paiement
- Expose l'emplacement du stockage local des clés d'idempotence
"""
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _float_env(name: str, default: float) -> float:
    try:
        return float(_clean_env(os.getenv(name)) or default)
    except ValueError:
        return default

# API du club (backend Spring): URL de base, sans slash final
CLUB_API_URL = _clean_env(os.getenv("CLUB_API_URL") or "http://localhost:8080/api")
if CLUB_API_URL and not CLUB_API_URL.startswith("http"):
    CLUB_API_URL = "http://" + CLUB_API_URL
CLUB_API_URL = CLUB_API_URL.rstrip("/")

# Timeouts (secondes): chargements/réservation et intention de paiement
CLUB_API_TIMEOUT = _float_env("CLUB_API_TIMEOUT", 10.0)
PAYMENT_TIMEOUT = _float_env("PAYMENT_TIMEOUT", 15.0)

# Passerelle hébergée: "konnect" (relayée par l'API du club) ou "stripe"
GATEWAY_PROVIDER = (_clean_env(os.getenv("GATEWAY_PROVIDER")) or "konnect").lower()

# Stripe (si GATEWAY_PROVIDER=stripe)
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
CURRENCY = (_clean_env(os.getenv("CURRENCY")) or "eur").lower()
CHECKOUT_SUCCESS_URL = _clean_env(os.getenv("CHECKOUT_SUCCESS_URL") or "http://localhost:8000/payment-confirmation?payment=success")
CHECKOUT_CANCEL_URL = _clean_env(os.getenv("CHECKOUT_CANCEL_URL") or "http://localhost:8000/payment-confirmation?payment=cancel")

# Indicatif appliqué aux numéros nationaux (ex: 20 000 000 -> +21620000000)
DEFAULT_PHONE_COUNTRY_CODE = (_clean_env(os.getenv("DEFAULT_PHONE_COUNTRY_CODE")) or "216").lstrip("+")

# Clés d'idempotence: fichier local (défaut) ou Redis si KEY_STORE_REDIS_URL est défini
KEY_STORE_PATH = Path(_clean_env(os.getenv("KEY_STORE_PATH")) or (BASE_DIR / ".clubpay_keys.json"))
KEY_STORE_REDIS_URL = _clean_env(os.getenv("KEY_STORE_REDIS_URL") or "")

# Rate limiting (fastapi-limiter)
RATE_LIMIT_REDIS_URL = _clean_env(os.getenv("RATE_LIMIT_REDIS_URL") or "redis://127.0.0.1:6379/0")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Brouillons inactifs évincés du registre après ce délai
DRAFT_TTL_SECONDS = _float_env("DRAFT_TTL_SECONDS", 1800.0)
