import os
from dotenv import load_dotenv
from pathlib import Path

# Go up one level from concisely/ to root/
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# LLM
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

# Search providers (a provider without its key is skipped)
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")
GOOGLE_SEARCH_ENGINE_ID = os.getenv("GOOGLE_SEARCH_ENGINE_ID", "")
YOUTUBE_API_KEY = os.getenv("YOUTUBE_API_KEY", "")
BRAVE_API_KEY = os.getenv("BRAVE_API_KEY", "")

# Email
EMAIL_FROM = os.getenv("EMAIL_FROM", "noreply@concisely.app")
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY", "")

# App
APP_URL = os.getenv("APP_URL", "http://localhost:8000")
TIMEZONE = os.getenv("TIMEZONE", "UTC")
DB_URL = os.getenv("DB_URL", "sqlite:///concisely.db")
REQUESTS_TIMEOUT = float(os.getenv("REQUESTS_TIMEOUT", "15"))

# Scheduler
DAILY_HOUR = int(os.getenv("DAILY_HOUR", "3"))
WEEKLY_HOUR = int(os.getenv("WEEKLY_HOUR", "4"))
MONTHLY_HOUR = int(os.getenv("MONTHLY_HOUR", "5"))
DISPATCH_INTERVAL_MINUTES = int(os.getenv("DISPATCH_INTERVAL_MINUTES", "5"))
