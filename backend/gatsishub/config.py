import os

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/gatsishub")
SQL_ECHO = os.getenv("SQL_ECHO", "0").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [o.strip() for o in os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000, http://localhost:5173"
).split(",") if o.strip()]

# Email relay (Resend). The key is looked up again at send time so a missing
# key fails the request instead of the import.
RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
CONTACT_INBOX = os.getenv("CONTACT_INBOX", "gatsishub@gmail.com")
CONTACT_SENDER = os.getenv("CONTACT_SENDER", "GatsisHub Contact Form <noreply@gatsishub.com>")
EMAIL_TIMEOUT = int(os.getenv("EMAIL_TIMEOUT", "10"))

# Payment proof storage
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(BASE_DIR, "uploads"))
MAX_PROOF_BYTES = int(os.getenv("MAX_PROOF_BYTES", str(5 * 1024 * 1024)))

# Pagination
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

MIN_ORDER_QUANTITY = int(os.getenv("MIN_ORDER_QUANTITY", "100"))

# Events buffered per websocket before a slow subscriber is disconnected
REALTIME_QUEUE_SIZE = int(os.getenv("REALTIME_QUEUE_SIZE", "1000"))


def resend_api_key():
    return os.getenv("RESEND_API_KEY")
