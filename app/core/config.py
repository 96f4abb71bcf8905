import os
from urllib.parse import quote_plus
from dotenv import load_dotenv

load_dotenv()


def _bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _build_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        # Heroku/Railway style URLs
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql://", 1)
        return url

    user = os.getenv("DB_USER", "postgres")
    password = quote_plus(os.getenv("DB_PASSWORD", ""))
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "dental_lead_genius")
    return f"postgresql://{user}:{password}@{host}:{port}/{name}"


class Settings:
    DATABASE_URL = _build_database_url()

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",") if o.strip()]

    # AUTH
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
    COOKIE_SECURE = _bool(os.getenv("COOKIE_SECURE", "false"))

    # External importers (Zapier, scrapers) authenticate with this key
    IMPORT_API_KEY = os.getenv("IMPORT_API_KEY")

    # SITE
    SITE_NAME = os.getenv("SITE_NAME", "DentalLeadGenius")
    SITE_URL = os.getenv("SITE_URL", "https://dentalleadgenius.com")
    SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "support@dentalleadgenius.com")
    DEMO_LINK = os.getenv("DEMO_LINK", "https://dentalleadgenius.com/demo")
    DEMO_TOKEN_TTL_HOURS = int(os.getenv("DEMO_TOKEN_TTL_HOURS", "24"))

    # UPLOADS (clinic logos, served under /uploads)
    UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
    MAX_LOGO_BYTES = int(os.getenv("MAX_LOGO_BYTES", str(5 * 1024 * 1024)))

    # ZEPTO MAIL SETTINGS
    ZEPTO_API_URL = os.getenv("ZEPTO_API_URL", "https://api.zeptomail.com/v1.1/email")
    ZEPTO_API_KEY = os.getenv("ZEPTO_API_KEY")
    ZEPTO_FROM_ADDRESS = os.getenv("ZEPTO_FROM_ADDRESS", "hello@dentalleadgenius.com")

    # TWILIO (SMS + WhatsApp)
    TWILIO_API_URL = os.getenv("TWILIO_API_URL", "https://api.twilio.com/2010-04-01")
    TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")
    TWILIO_WHATSAPP_FROM = os.getenv("TWILIO_WHATSAPP_FROM")

    # LLM (chatbot + campaign drafts)
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL")
    OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    # SCHEDULER
    SCHEDULER_ENABLED = _bool(os.getenv("SCHEDULER_ENABLED", "true"))
    SEQUENCE_TICK_MINUTES = int(os.getenv("SEQUENCE_TICK_MINUTES", "5"))
    CAMPAIGN_TICK_MINUTES = int(os.getenv("CAMPAIGN_TICK_MINUTES", "10"))
    OUTREACH_TICK_MINUTES = int(os.getenv("OUTREACH_TICK_MINUTES", "10"))
    JOB_LEASE_SECONDS = int(os.getenv("JOB_LEASE_SECONDS", "600"))

    # GENIUS ENGINE LIMITS
    GENIUS_DAILY_EMAIL_LIMIT = int(os.getenv("GENIUS_DAILY_EMAIL_LIMIT", "1666"))
    GENIUS_MONTHLY_BUDGET_CENTS = int(os.getenv("GENIUS_MONTHLY_BUDGET_CENTS", "10000"))  # $100
    GENIUS_EMAIL_COST_CENTS = float(os.getenv("GENIUS_EMAIL_COST_CENTS", "0.4"))  # $0.004 per email
    GENIUS_PAUSE_THRESHOLD_PERCENT = int(os.getenv("GENIUS_PAUSE_THRESHOLD_PERCENT", "70"))
    GENIUS_BATCH_SIZE = int(os.getenv("GENIUS_BATCH_SIZE", "50"))
    GENIUS_SEQUENCE_DAYS = int(os.getenv("GENIUS_SEQUENCE_DAYS", "7"))
    GENIUS_DAY_DELAY_HOURS = int(os.getenv("GENIUS_DAY_DELAY_HOURS", "24"))
    GENIUS_SEND_STAGGER_SECONDS = float(os.getenv("GENIUS_SEND_STAGGER_SECONDS", "0.2"))
    GENIUS_CYCLE_MINUTES = int(os.getenv("GENIUS_CYCLE_MINUTES", "10"))

    # DEFAULT OUTREACH CAMPAIGN LIMIT
    DEFAULT_CAMPAIGN_DAILY_LIMIT = 50

    # AUTOMATED OUTREACH (auto campaigns for new clinic leads)
    AUTO_OUTREACH_ENABLED = _bool(os.getenv("AUTO_OUTREACH_ENABLED", "true"))
    AUTO_OUTREACH_LEADS_PER_CLINIC = int(os.getenv("AUTO_OUTREACH_LEADS_PER_CLINIC", "10"))
    AUTO_OUTREACH_SENDS_PER_TICK = int(os.getenv("AUTO_OUTREACH_SENDS_PER_TICK", "10"))

settings = Settings()
