"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_THERAPY_NAME_LENGTH = 100
MAX_NOTES_LENGTH = 1000
MAX_NOTIFICATION_TITLE_LENGTH = 200

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:3000",      # Next.js dev server
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Appointment listing
DEFAULT_UPCOMING_APPOINTMENTS_LIMIT = 5
MAX_APPOINTMENTS_PAGE_SIZE = 500

# Feedback rating bounds
MIN_FEEDBACK_RATING = 1
MAX_FEEDBACK_RATING = 5

# Delivery worker batch size for due notification queries
NOTIFICATION_DUE_BATCH_SIZE = 100
