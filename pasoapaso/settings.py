# pasoapaso/settings.py
import os

SECRET_KEY = os.getenv("SECRET_KEY", "pasoapaso_secret_key_2025")

# sslmode anexado às URLs Postgres sem sslmode próprio ("" desliga)
DATABASE_SSLMODE = os.getenv("DATABASE_SSLMODE", "require")

# URLs públicas (back_urls do checkout e notification_url dos webhooks)
APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")
API_URL = os.getenv("API_URL", "http://localhost:5000").rstrip("/")

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv(
        "CORS_ORIGINS",
        "https://pasoapasoshoes.com,https://www.pasoapasoshoes.com",
    ).split(",")
    if o.strip()
]

# Timeout das chamadas aos provedores (segundos)
PAYMENT_PROVIDER_TIMEOUT = float(os.getenv("PAYMENT_PROVIDER_TIMEOUT", "15"))
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "ARS")

# Papéis que podem alterar o estado de entrega
STAFF_ROLES = {"ADMIN_CMS", "VENDEDOR", "GERENTE_COMERCIAL", "DUENA", "SUPER_SU"}
