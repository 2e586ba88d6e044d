import os
import logging
from dotenv import load_dotenv
from botocore.client import Config as BotoConfig
import boto3

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    try:
        load_dotenv()
    except Exception:
        pass

# Environment
APP_NAME = os.getenv("APP_NAME", "Sargood On Collaroy").strip()
APP_URL = (os.getenv("APP_URL", "http://localhost:3000") or "").strip().rstrip("/")
EMAIL_SUBJECT_PREFIX = os.getenv("EMAIL_SUBJECT_PREFIX", APP_NAME).strip()
ADMIN_NOTIFICATIONS_EMAIL = os.getenv("ADMIN_NOTIFICATIONS_EMAIL", "info@sargoodoncollaroy.com.au").strip()

ALLOWED_ORIGINS = [o.strip() for o in (os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []) if o.strip()]

# Restricted bucket holding guest uploads and booking exports
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID", "")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID", "")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY", "")
R2_BUCKET = os.getenv("R2_BUCKET", "")
R2_CUSTOM_DOMAIN = (os.getenv("R2_CUSTOM_DOMAIN", "") or "").strip().strip('"').strip("'").strip('`')
URL_CACHE_TTL_SEC = int(os.getenv("URL_CACHE_TTL_SEC", "300") or "300")

MAIL_FROM = os.getenv("MAIL_FROM", "Sargood On Collaroy <no-reply@sargoodoncollaroy.com.au>")
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")

# Background task guards
PDF_EXPORT_COOLDOWN_SEC = int(os.getenv("PDF_EXPORT_COOLDOWN_SEC", "30"))
EXPORT_TEMP_DIR = os.path.abspath(os.getenv("EXPORT_TEMP_DIR", os.path.join(os.path.dirname(__file__), "..", "templates", "exports", "temp")))

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("staybook")

# Static dir helper
STATIC_DIR = os.path.join(os.path.dirname(__file__), "..", "static")
STATIC_DIR = os.path.abspath(STATIC_DIR)

# S3/R2 client for storage operations
s3 = None
s3_presign_client = None  # Separate client for presigned URLs with custom domain

if R2_ACCOUNT_ID and R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY:
    s3 = boto3.resource(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=BotoConfig(signature_version="s3v4"),
        region_name="auto",
    )

    # Normalize custom domain to remove protocol if mistakenly included
    _CUSTOM = R2_CUSTOM_DOMAIN.replace("https://", "").replace("http://", "") if R2_CUSTOM_DOMAIN else ""
    if _CUSTOM:
        s3_presign_client = boto3.client(
            "s3",
            endpoint_url=f"https://{_CUSTOM}",
            aws_access_key_id=R2_ACCESS_KEY_ID,
            aws_secret_access_key=R2_SECRET_ACCESS_KEY,
            config=BotoConfig(signature_version="s3v4"),
            region_name="auto",
        )
