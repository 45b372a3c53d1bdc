import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")

if not DATABASE_URL:
    DB_USER = os.getenv("DB_USER")
    DB_PASSWORD = os.getenv("DB_PASSWORD")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME")

    if not DB_PASSWORD:
        raise ValueError("DB_PASSWORD environment variable is required when DATABASE_URL is not set")

    DATABASE_URL = f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"

# Path to the Firebase service account key. Unset means application default credentials.
FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS")

# Must match the channel registered by the mobile app
ANDROID_CHANNEL_ID = os.getenv("ANDROID_CHANNEL_ID", "blood_donation_high_importance")
NEW_REQUESTS_TOPIC = os.getenv("NEW_REQUESTS_TOPIC", "new_requests")

EXPIRY_INTERVAL_HOURS = float(os.getenv("EXPIRY_INTERVAL_HOURS", "24"))
ORPHAN_SWEEP_INTERVAL_MINUTES = float(os.getenv("ORPHAN_SWEEP_INTERVAL_MINUTES", "60"))
ENABLE_SCHEDULER = os.getenv("ENABLE_SCHEDULER", "false").lower() in ("1", "true", "yes")
