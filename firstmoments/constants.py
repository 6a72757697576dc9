"""
Application constants and environment-driven configuration.
"""
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ===== ENVIRONMENT =====

DATABASE_URL = os.getenv("FIRST_MOMENTS_DATABASE_URL", "sqlite:///./first_moments.db")

JWT_SECRET = os.getenv("FIRST_MOMENTS_JWT_SECRET", "change-me-access-secret")
JWT_REFRESH_SECRET = os.getenv("FIRST_MOMENTS_JWT_REFRESH_SECRET", "change-me-refresh-secret")
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("FIRST_MOMENTS_ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("FIRST_MOMENTS_REFRESH_TOKEN_EXPIRE_DAYS", "7"))
BCRYPT_ROUNDS = int(os.getenv("FIRST_MOMENTS_BCRYPT_ROUNDS", "12"))

DEFAULT_LOG_DIRECTORY_PROD = "/var/log/first-moments"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"
LOG_DIR = os.getenv("FIRST_MOMENTS_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD)
LOG_FILE = os.getenv("FIRST_MOMENTS_LOG_FILE", "app.log")

CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "FIRST_MOMENTS_CORS_ORIGINS",
        "http://localhost:3000,http://localhost:8081,http://localhost:19006"
    ).split(",")
    if origin.strip()
]

RATE_LIMIT = os.getenv("FIRST_MOMENTS_RATE_LIMIT", "100 per 15 minutes")
RATE_LIMIT_ENABLED = _env_bool("FIRST_MOMENTS_RATE_LIMIT_ENABLED", True)

SMTP_HOST = os.getenv("FIRST_MOMENTS_SMTP_HOST")
SMTP_PORT = int(os.getenv("FIRST_MOMENTS_SMTP_PORT", "587"))
SMTP_USER = os.getenv("FIRST_MOMENTS_SMTP_USER")
SMTP_PASSWORD = os.getenv("FIRST_MOMENTS_SMTP_PASSWORD")
MAIL_FROM = os.getenv("FIRST_MOMENTS_MAIL_FROM", "First Moments <noreply@firstmoments.app>")
FRONTEND_URL = os.getenv("FIRST_MOMENTS_FRONTEND_URL", "http://localhost:3000")

CLEANUP_ENABLED = _env_bool("FIRST_MOMENTS_CLEANUP_ENABLED", True)


# ===== AUTH =====

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)

GENDERS = ("male", "female", "other")

MAX_LOGIN_ATTEMPTS = 5
ACCOUNT_LOCK_MINUTES = 30
EMAIL_VERIFICATION_HOURS = 24
PASSWORD_RESET_MINUTES = 60
VERIFICATION_RESEND_COOLDOWN_SECONDS = 60

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"


# ===== PAGINATION =====

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


# ===== PROFILES =====

PROFILE_TYPE_SELF = "self"
PROFILE_TYPE_CHILD = "child"
PROFILE_TYPE_PET = "pet"
PROFILE_TYPE_OTHER = "other"
PROFILE_TYPES = (PROFILE_TYPE_SELF, PROFILE_TYPE_CHILD, PROFILE_TYPE_PET, PROFILE_TYPE_OTHER)


# ===== MOMENTS =====

MOMENT_CATEGORIES = ("milestone", "daily", "growth", "travel", "celebration", "health", "other")
MOMENT_MOODS = (
    "happy", "sad", "excited", "calm", "angry",
    "surprised", "love", "grateful", "proud", "other"
)
MEDIA_TYPES = ("image", "video", "audio")

PRIVACY_PUBLIC = "public"
PRIVACY_PRIVATE = "private"
PRIVACY_FRIENDS = "friends"
PRIVACY_LEVELS = (PRIVACY_PUBLIC, PRIVACY_PRIVATE, PRIVACY_FRIENDS)

MAX_TAGS = 20
MAX_TAG_LENGTH = 20


# ===== ACHIEVEMENTS =====

ACHIEVEMENT_TYPES = ("milestone", "streak", "collection", "social", "exploration", "creative")
ACHIEVEMENT_CATEGORIES = ("records", "social", "exploration", "creativity", "persistence", "milestone")
ACHIEVEMENT_DIFFICULTIES = ("easy", "medium", "hard", "legendary")
CONDITION_TYPES = ("count", "streak", "time", "location", "social", "custom")

TEMPLATE_STATUS_ACTIVE = "active"
TEMPLATE_STATUS_INACTIVE = "inactive"
TEMPLATE_STATUS_DEPRECATED = "deprecated"
TEMPLATE_STATUSES = (TEMPLATE_STATUS_ACTIVE, TEMPLATE_STATUS_INACTIVE, TEMPLATE_STATUS_DEPRECATED)

ACHIEVEMENT_STATUS_NOT_STARTED = "not_started"
ACHIEVEMENT_STATUS_IN_PROGRESS = "in_progress"
ACHIEVEMENT_STATUS_ACHIEVED = "achieved"
ACHIEVEMENT_STATUSES = (
    ACHIEVEMENT_STATUS_NOT_STARTED,
    ACHIEVEMENT_STATUS_IN_PROGRESS,
    ACHIEVEMENT_STATUS_ACHIEVED,
)

PROGRESS_TRIGGERS = (
    "record_created", "profile_updated", "social_interaction",
    "location_visit", "manual", "user_update"
)

LEADERBOARD_TYPES = ("total_points", "achievement_count")
LEADERBOARD_PERIODS = {
    "week": 7,
    "month": 30,
    "year": 365,
    "all_time": None,
}


# ===== LOCATIONS =====

PLACE_TYPES = (
    "home", "work", "school", "restaurant", "cafe", "shop", "hospital",
    "park", "gym", "cinema", "hotel", "airport", "station", "beach",
    "mountain", "museum", "library", "other"
)
VISIT_TYPES = ("checkin", "visit", "live", "work", "travel")

CHECKIN_MERGE_RADIUS_METERS = 100
CHECKIN_MERGE_WINDOW_MINUTES = 60
FAVORITE_MERGE_RADIUS_METERS = 50
DEFAULT_NEARBY_RADIUS_METERS = 1000


# ===== NOTIFICATIONS =====

NOTIFICATION_TYPES = (
    "like", "comment", "follow", "mention", "share", "achievement",
    "reminder", "system", "update", "security", "invitation", "milestone"
)

CATEGORY_SOCIAL = "social"
CATEGORY_ACHIEVEMENT = "achievement"
CATEGORY_SYSTEM = "system"
CATEGORY_REMINDER = "reminder"
CATEGORY_SECURITY = "security"
NOTIFICATION_CATEGORIES = (
    CATEGORY_SOCIAL, CATEGORY_ACHIEVEMENT, CATEGORY_SYSTEM, CATEGORY_REMINDER, CATEGORY_SECURITY
)

# Category a notification falls into when the sender does not name one
NOTIFICATION_TYPE_CATEGORY = {
    "like": CATEGORY_SOCIAL,
    "comment": CATEGORY_SOCIAL,
    "follow": CATEGORY_SOCIAL,
    "mention": CATEGORY_SOCIAL,
    "share": CATEGORY_SOCIAL,
    "invitation": CATEGORY_SOCIAL,
    "achievement": CATEGORY_ACHIEVEMENT,
    "milestone": CATEGORY_ACHIEVEMENT,
    "reminder": CATEGORY_REMINDER,
    "system": CATEGORY_SYSTEM,
    "update": CATEGORY_SYSTEM,
    "security": CATEGORY_SECURITY,
}

NOTIFICATION_PRIORITIES = ("low", "normal", "high", "urgent")

DELIVERY_IN_APP = "in_app"
DELIVERY_PUSH = "push"
DELIVERY_EMAIL = "email"
DELIVERY_METHODS = (DELIVERY_IN_APP, DELIVERY_PUSH, DELIVERY_EMAIL)

NOTIFICATION_TITLE_MAX = 200
NOTIFICATION_MESSAGE_MAX = 1000

DEFAULT_QUIET_HOURS_START = "22:00"
DEFAULT_QUIET_HOURS_END = "08:00"

PUSH_PLATFORMS = ("ios", "android", "web")
