import os

from dotenv import load_dotenv

load_dotenv()

SECRET_KEY = os.getenv(
    "SECRET_KEY",
    "5b1d0f7c2e9a4c3f8d6b1a0e7f2c4d9b8a3e6f1c0d2b5a7e9f4c8d1b3a6e0f2c",
)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017/autotester")
MONGO_DB = os.getenv("MONGO_DB", "autotester")

APP_ENV = os.getenv("APP_ENV", "production")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", "gemini-2.5-flash")
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.7"))

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
# Vertex AI is used instead of the AI Studio key when a project is configured
GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT")
GOOGLE_CLOUD_LOCATION = os.getenv("GOOGLE_CLOUD_LOCATION", "us-central1")

DAILY_AI_LIMIT = int(os.getenv("DAILY_AI_LIMIT", "3"))
QUOTA_TIMEZONE = os.getenv("QUOTA_TIMEZONE", "UTC")

FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "10"))
FETCH_MAX_BYTES = int(os.getenv("FETCH_MAX_BYTES", str(1 * 1024 * 1024)))
FETCH_MAX_CHARS = int(os.getenv("FETCH_MAX_CHARS", "7000"))

ENGINE_CALLBACK_TOKEN = os.getenv("ENGINE_CALLBACK_TOKEN", "")
