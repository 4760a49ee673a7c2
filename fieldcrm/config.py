import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fieldcrm.db")

# Firebase Configuration
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# Shared secret for the external scheduler calling /cron/*
CRON_SECRET = os.getenv("CRON_SECRET")

# Business identity used in customer-facing messages
COMPANY_NAME = os.getenv("COMPANY_NAME", "Dirt Free Carpet")
PORTAL_URL = os.getenv("PORTAL_URL", "http://localhost:3000/portal")
GOOGLE_REVIEW_URL = os.getenv("GOOGLE_REVIEW_URL", "https://g.page/r/review")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", f"{COMPANY_NAME} <noreply@example.com>")

# Twilio SMS Configuration
# Credentials may be stored Fernet-encrypted; set TWILIO_ENCRYPTION_KEY in that case
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")
TWILIO_MESSAGING_SERVICE_SID = os.getenv("TWILIO_MESSAGING_SERVICE_SID")
TWILIO_ENCRYPTION_KEY = os.getenv("TWILIO_ENCRYPTION_KEY")

# Quiet hours (local time of the business)
QUIET_HOURS_TIMEZONE = os.getenv("QUIET_HOURS_TIMEZONE", "America/Chicago")
QUIET_HOURS_START = int(os.getenv("QUIET_HOURS_START", "21"))  # 9 PM
QUIET_HOURS_END = int(os.getenv("QUIET_HOURS_END", "8"))  # 8 AM

# Reminder dispatch
REMINDER_BATCH_SIZE = int(os.getenv("REMINDER_BATCH_SIZE", "50"))
REMINDER_MAX_ATTEMPTS = int(os.getenv("REMINDER_MAX_ATTEMPTS", "3"))

# Opportunity pipeline
OPPORTUNITY_EXPIRY_DAYS = int(os.getenv("OPPORTUNITY_EXPIRY_DAYS", "90"))
OPPORTUNITY_OFFER_VALID_DAYS = int(os.getenv("OPPORTUNITY_OFFER_VALID_DAYS", "14"))

# Review escalation
REVIEW_ESCALATION_HOURS = int(os.getenv("REVIEW_ESCALATION_HOURS", "48"))

# Security
IS_PRODUCTION = os.getenv("ENVIRONMENT", "development").lower() == "production"
SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")

API_VERSION = "v1"
