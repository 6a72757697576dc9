from datetime import datetime, date
from typing import Optional, List, Any, Dict

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from firstmoments.constants import (
    USERNAME_PATTERN, MAX_TAGS, MAX_TAG_LENGTH,
    NOTIFICATION_TITLE_MAX, NOTIFICATION_MESSAGE_MAX,
)

GENDER_PATTERN = r"^(male|female|other)$"
PROFILE_TYPE_PATTERN = r"^(self|child|pet|other)$"
MOMENT_CATEGORY_PATTERN = r"^(milestone|daily|growth|travel|celebration|health|other)$"
MOOD_PATTERN = r"^(happy|sad|excited|calm|angry|surprised|love|grateful|proud|other)$"
PRIVACY_PATTERN = r"^(public|private|friends)$"
MEDIA_TYPE_PATTERN = r"^(image|video|audio)$"
ACHIEVEMENT_TYPE_PATTERN = r"^(milestone|streak|collection|social|exploration|creative)$"
ACHIEVEMENT_CATEGORY_PATTERN = r"^(records|social|exploration|creativity|persistence|milestone)$"
DIFFICULTY_PATTERN = r"^(easy|medium|hard|legendary)$"
CONDITION_TYPE_PATTERN = r"^(count|streak|time|location|social|custom)$"
TEMPLATE_STATUS_PATTERN = r"^(active|inactive|deprecated)$"
PLACE_TYPE_PATTERN = (
    r"^(home|work|school|restaurant|cafe|shop|hospital|park|gym|cinema|hotel|"
    r"airport|station|beach|mountain|museum|library|other)$"
)
VISIT_TYPE_PATTERN = r"^(checkin|visit|live|work|travel)$"
TRIGGER_PATTERN = r"^(record_created|profile_updated|social_interaction|location_visit|manual|user_update)$"
TIME_OF_DAY_PATTERN = r"^([01][0-9]|2[0-3]):[0-5][0-9]$"
PUSH_PLATFORM_PATTERN = r"^(ios|android|web)$"


def to_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive local time"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def clean_tags(tags: Optional[List[str]]) -> List[str]:
    """Strip, drop empties and duplicates, enforce tag limits"""
    if not tags:
        return []
    cleaned = []
    for tag in tags:
        tag = tag.strip()
        if not tag or tag in cleaned:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"Tag '{tag}' is longer than {MAX_TAG_LENGTH} characters")
        cleaned.append(tag)
    if len(cleaned) > MAX_TAGS:
        raise ValueError(f"At most {MAX_TAGS} tags are allowed")
    return cleaned


def check_password_strength(value: str) -> str:
    if not any(c.islower() for c in value) or not any(c.isupper() for c in value) \
            or not any(c.isdigit() for c in value):
        raise ValueError("Password must contain a lowercase letter, an uppercase letter and a digit")
    return value


# ===== AUTH =====

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=20, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=64)
    confirm_password: str

    @field_validator("password")
    @classmethod
    def password_strength(cls, value):
        return check_password_strength(value)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6, max_length=64)
    confirm_password: str

    @field_validator("password")
    @classmethod
    def password_strength(cls, value):
        return check_password_strength(value)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class ResendVerificationRequest(BaseModel):
    email: EmailStr


# ===== USERS =====

class NotificationPreferences(BaseModel):
    social: Optional[bool] = None
    achievement: Optional[bool] = None
    system: Optional[bool] = None
    reminder: Optional[bool] = None
    security: Optional[bool] = None
    email: Optional[bool] = None
    push: Optional[bool] = None


class UserUpdate(BaseModel):
    nickname: Optional[str] = Field(None, max_length=50)
    bio: Optional[str] = Field(None, max_length=500)
    avatar: Optional[str] = None
    birthday: Optional[date] = None
    gender: Optional[str] = Field(None, pattern=GENDER_PATTERN)
    notification_preferences: Optional[NotificationPreferences] = None


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=64)
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value):
        return check_password_strength(value)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class DeleteAccountRequest(BaseModel):
    password: str = Field(..., min_length=1)


class PublicUserResponse(BaseModel):
    id: int
    username: str
    nickname: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserResponse(PublicUserResponse):
    email: str
    birthday: Optional[date] = None
    gender: Optional[str] = None
    role: str
    is_active: bool
    is_email_verified: bool
    last_login_at: Optional[datetime] = None
    notify_social: bool = True
    notify_achievement: bool = True
    notify_system: bool = True
    notify_reminder: bool = True
    notify_security: bool = True
    notify_email: bool = True
    notify_push: bool = True
    updated_at: Optional[datetime] = None


# ===== PROFILES =====

class ProfileCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    type: str = Field(default="self", pattern=PROFILE_TYPE_PATTERN)
    avatar: Optional[str] = None
    cover_image: Optional[str] = None
    birthday: Optional[date] = None
    is_public: bool = False

    @field_validator("name")
    @classmethod
    def strip_name(cls, value):
        value = value.strip()
        if not value:
            raise ValueError("Profile name must not be blank")
        return value


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    type: Optional[str] = Field(None, pattern=PROFILE_TYPE_PATTERN)
    avatar: Optional[str] = None
    cover_image: Optional[str] = None
    birthday: Optional[date] = None
    is_public: Optional[bool] = None
    is_default: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value):
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("Profile name must not be blank")
        return value


class ProfileResponse(BaseModel):
    id: int
    user_id: int
    name: str
    description: Optional[str] = None
    type: str
    avatar: Optional[str] = None
    cover_image: Optional[str] = None
    birthday: Optional[date] = None
    is_public: bool
    is_default: bool
    moment_count: int = 0
    last_moment_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ===== MOMENTS =====

class MediaItem(BaseModel):
    type: str = Field(..., pattern=MEDIA_TYPE_PATTERN)
    url: str = Field(..., min_length=1)
    thumbnail: Optional[str] = None
    size: Optional[int] = Field(None, ge=0)
    filename: Optional[str] = None
    mime_type: Optional[str] = None


class MomentLocation(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = None
    place_name: Optional[str] = None


class MomentCreate(BaseModel):
    profile_id: int
    title: str = Field(..., min_length=1, max_length=100)
    content: Optional[str] = Field(None, max_length=2000)
    category: str = Field(default="daily", pattern=MOMENT_CATEGORY_PATTERN)
    tags: List[str] = Field(default_factory=list)
    media: List[MediaItem] = Field(default_factory=list)
    location: Optional[MomentLocation] = None
    mood: Optional[str] = Field(None, pattern=MOOD_PATTERN)
    privacy: str = Field(default="private", pattern=PRIVACY_PATTERN)
    moment_date: Optional[datetime] = None
    is_pinned: bool = False

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value):
        return clean_tags(value)

    @field_validator("moment_date")
    @classmethod
    def naive_moment_date(cls, value):
        return to_naive(value)


class MomentUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    content: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, pattern=MOMENT_CATEGORY_PATTERN)
    tags: Optional[List[str]] = None
    media: Optional[List[MediaItem]] = None
    location: Optional[MomentLocation] = None
    mood: Optional[str] = Field(None, pattern=MOOD_PATTERN)
    privacy: Optional[str] = Field(None, pattern=PRIVACY_PATTERN)
    moment_date: Optional[datetime] = None
    is_pinned: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value):
        if value is None:
            return value
        return clean_tags(value)

    @field_validator("moment_date")
    @classmethod
    def naive_moment_date(cls, value):
        return to_naive(value)


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=500)

    @field_validator("content")
    @classmethod
    def strip_content(cls, value):
        value = value.strip()
        if not value:
            raise ValueError("Comment must not be blank")
        return value


class CommentResponse(BaseModel):
    id: int
    user_id: int
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


class MomentResponse(BaseModel):
    id: int
    profile_id: int
    creator_id: int
    title: str
    content: Optional[str] = None
    category: str
    tags: List[str] = []
    media: List[Dict[str, Any]] = []
    location: Optional[MomentLocation] = None
    mood: Optional[str] = None
    privacy: str
    moment_date: datetime
    is_pinned: bool
    view_count: int = 0
    like_count: int = 0
    comment_count: int = 0
    comments: List[CommentResponse] = []
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ===== ACHIEVEMENTS =====

class AchievementTemplateBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    type: str = Field(..., pattern=ACHIEVEMENT_TYPE_PATTERN)
    category: str = Field(..., pattern=ACHIEVEMENT_CATEGORY_PATTERN)
    difficulty: str = Field(default="easy", pattern=DIFFICULTY_PATTERN)
    icon: str = Field(..., min_length=1)
    badge: Optional[str] = None
    points: int = Field(default=10, ge=0)
    condition_type: str = Field(..., pattern=CONDITION_TYPE_PATTERN)
    condition_target: int = Field(..., ge=1)
    condition_params: Dict[str, Any] = Field(default_factory=dict)
    prerequisites: List[int] = Field(default_factory=list)
    status: str = Field(default="active", pattern=TEMPLATE_STATUS_PATTERN)
    is_hidden: bool = False
    is_limited: bool = False
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)


class AchievementTemplateCreate(AchievementTemplateBase):

    @field_validator("valid_from", "valid_to")
    @classmethod
    def naive_window(cls, value):
        return to_naive(value)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value):
        return clean_tags(value)


class AchievementTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    type: Optional[str] = Field(None, pattern=ACHIEVEMENT_TYPE_PATTERN)
    category: Optional[str] = Field(None, pattern=ACHIEVEMENT_CATEGORY_PATTERN)
    difficulty: Optional[str] = Field(None, pattern=DIFFICULTY_PATTERN)
    icon: Optional[str] = Field(None, min_length=1)
    badge: Optional[str] = None
    points: Optional[int] = Field(None, ge=0)
    condition_type: Optional[str] = Field(None, pattern=CONDITION_TYPE_PATTERN)
    condition_target: Optional[int] = Field(None, ge=1)
    condition_params: Optional[Dict[str, Any]] = None
    prerequisites: Optional[List[int]] = None
    status: Optional[str] = Field(None, pattern=TEMPLATE_STATUS_PATTERN)
    is_hidden: Optional[bool] = None
    is_limited: Optional[bool] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    tags: Optional[List[str]] = None

    @field_validator("valid_from", "valid_to")
    @classmethod
    def naive_window(cls, value):
        return to_naive(value)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value):
        if value is None:
            return value
        return clean_tags(value)


class AchievementTemplateResponse(AchievementTemplateBase):
    id: int
    achieved_count: int = 0
    in_progress_count: int = 0
    is_available: bool
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProgressUpdate(BaseModel):
    current: int = Field(..., ge=0)
    trigger: str = Field(default="manual", pattern=TRIGGER_PATTERN)


class GrantAchievementRequest(BaseModel):
    user_id: int
    template_id: int
    reason: Optional[str] = Field(None, max_length=200)


class UserAchievementResponse(BaseModel):
    id: int
    user_id: int
    template_id: int
    status: str
    progress_current: int
    progress_target: int
    progress_percentage: float
    remaining: int
    progress_history: List[Dict[str, Any]] = []
    started_at: Optional[datetime] = None
    achieved_at: Optional[datetime] = None
    is_manually_granted: bool = False
    granted_by: Optional[int] = None
    grant_reason: Optional[str] = None
    points_awarded: int = 0
    notified: bool = False
    template: Optional[AchievementTemplateResponse] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ===== LOCATIONS =====

class LocationCreate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str = Field(..., min_length=1, max_length=500)
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    place_name: Optional[str] = Field(None, max_length=100)
    place_type: str = Field(default="other", pattern=PLACE_TYPE_PATTERN)
    visit_type: str = Field(default="checkin", pattern=VISIT_TYPE_PATTERN)
    visited_at: Optional[datetime] = None
    duration: Optional[int] = Field(None, ge=0)
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=500)
    privacy: str = Field(default="private", pattern=PRIVACY_PATTERN)
    is_favorite: bool = False

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value):
        return clean_tags(value)

    @field_validator("visited_at")
    @classmethod
    def naive_visited_at(cls, value):
        return to_naive(value)


class LocationUpdate(BaseModel):
    address: Optional[str] = Field(None, min_length=1, max_length=500)
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    place_name: Optional[str] = Field(None, max_length=100)
    place_type: Optional[str] = Field(None, pattern=PLACE_TYPE_PATTERN)
    visit_type: Optional[str] = Field(None, pattern=VISIT_TYPE_PATTERN)
    duration: Optional[int] = Field(None, ge=0)
    tags: Optional[List[str]] = None
    notes: Optional[str] = Field(None, max_length=500)
    privacy: Optional[str] = Field(None, pattern=PRIVACY_PATTERN)
    is_favorite: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value):
        if value is None:
            return value
        return clean_tags(value)


class LocationResponse(BaseModel):
    id: int
    user_id: int
    latitude: float
    longitude: float
    address: str
    city: Optional[str] = None
    country: Optional[str] = None
    place_name: Optional[str] = None
    place_type: str
    visit_type: str
    visited_at: datetime
    duration: Optional[int] = None
    tags: List[str] = []
    notes: Optional[str] = None
    privacy: str
    is_favorite: bool
    visit_count: int
    last_visit_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    distance: Optional[float] = None  # meters, populated by nearby search

    class Config:
        from_attributes = True


class FavoritePlaceResponse(BaseModel):
    id: int
    name: str
    latitude: float
    longitude: float
    address: Optional[str] = None
    type: str
    visit_count: int
    last_visit_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ===== NOTIFICATIONS =====

class NotificationCreate(BaseModel):
    """
    Notification payload. Enum and length rules are enforced by the
    notification service so they surface as business validation errors.
    """
    recipient_id: int
    type: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    category: Optional[str] = None
    priority: str = "normal"
    data: Optional[Any] = None
    delivery_method: str = "in_app"
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def naive_expires_at(cls, value):
        return to_naive(value)


class BatchDeleteRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1, max_length=100)


class NotificationResponse(BaseModel):
    id: int
    recipient_id: int
    sender_id: Optional[int] = None
    type: str
    category: str
    priority: str
    title: str = Field(..., max_length=NOTIFICATION_TITLE_MAX)
    message: str = Field(..., max_length=NOTIFICATION_MESSAGE_MAX)
    data: Dict[str, Any] = {}
    is_read: bool
    read_at: Optional[datetime] = None
    is_delivered: bool
    delivered_at: Optional[datetime] = None
    delivery_method: str
    expires_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class QuietHoursUpdate(BaseModel):
    enabled: Optional[bool] = None
    start: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)
    end: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)


class NotificationSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    quiet_hours: Optional[QuietHoursUpdate] = None
    preferences: Optional[NotificationPreferences] = None


class PushTokenCreate(BaseModel):
    token: str = Field(..., min_length=1)
    platform: str = Field(..., pattern=PUSH_PLATFORM_PATTERN)
    device_id: str = Field(..., min_length=1, max_length=100)


class PushTokenResponse(BaseModel):
    platform: str
    device_id: str
    is_active: bool
    last_used_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SendNotificationRequest(BaseModel):
    """Channels to deliver through; defaults to the notification's own method"""
    channels: Optional[List[str]] = Field(None, min_length=1)
