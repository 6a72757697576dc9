from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Float, Date, Text, JSON,
    ForeignKey, UniqueConstraint, event
)
from sqlalchemy.orm import relationship

from firstmoments.database import Base
from firstmoments.constants import (
    ROLE_USER, PROFILE_TYPE_SELF, PRIVACY_PUBLIC, PRIVACY_PRIVATE,
    TEMPLATE_STATUS_ACTIVE, ACHIEVEMENT_STATUS_NOT_STARTED,
    ACHIEVEMENT_STATUS_IN_PROGRESS, ACHIEVEMENT_STATUS_ACHIEVED,
    DELIVERY_IN_APP, DEFAULT_QUIET_HOURS_START, DEFAULT_QUIET_HOURS_END,
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(20), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)

    nickname = Column(String(50), nullable=True)
    avatar = Column(String, nullable=True)
    bio = Column(String(500), nullable=True)
    birthday = Column(Date, nullable=True)
    gender = Column(String, nullable=True)  # male, female, other

    role = Column(String, default=ROLE_USER)  # user, admin
    is_active = Column(Boolean, default=True)
    is_email_verified = Column(Boolean, default=False)

    email_verification_token = Column(String, nullable=True, index=True)
    email_verification_expires = Column(DateTime, nullable=True)
    password_reset_token = Column(String, nullable=True, index=True)
    password_reset_expires = Column(DateTime, nullable=True)
    password_changed_at = Column(DateTime, nullable=True)

    # Brute-force protection
    login_attempts = Column(Integer, default=0)
    last_login_attempt = Column(DateTime, nullable=True)
    lock_until = Column(DateTime, nullable=True)

    last_login_at = Column(DateTime, nullable=True)
    last_login_ip = Column(String, nullable=True)

    # Notification preferences, one flag per category plus channels
    notify_social = Column(Boolean, default=True)
    notify_achievement = Column(Boolean, default=True)
    notify_system = Column(Boolean, default=True)
    notify_reminder = Column(Boolean, default=True)
    notify_security = Column(Boolean, default=True)
    notify_email = Column(Boolean, default=True)
    notify_push = Column(Boolean, default=True)
    notifications_enabled = Column(Boolean, default=True)
    quiet_hours_enabled = Column(Boolean, default=False)
    quiet_hours_start = Column(String(5), default=DEFAULT_QUIET_HOURS_START)  # HH:MM
    quiet_hours_end = Column(String(5), default=DEFAULT_QUIET_HOURS_END)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan"
    )
    push_tokens = relationship(
        "PushToken", back_populates="user", cascade="all, delete-orphan",
        order_by="PushToken.created_at"
    )

    @property
    def is_locked(self) -> bool:
        return self.lock_until is not None and self.lock_until > datetime.now()

    @property
    def display_name(self) -> str:
        return self.nickname or self.username

    def accepts_category(self, category: str) -> bool:
        """Whether the user receives notifications of the given category"""
        if self.notifications_enabled is False:
            return False
        return bool(getattr(self, f"notify_{category}", True))

    def in_quiet_hours(self, now=None) -> bool:
        """Whether now falls inside the quiet window; the window may span midnight"""
        if not self.quiet_hours_enabled:
            return False
        current = (now or datetime.now()).strftime("%H:%M")
        start = self.quiet_hours_start or DEFAULT_QUIET_HOURS_START
        end = self.quiet_hours_end or DEFAULT_QUIET_HOURS_END
        if start <= end:
            return start <= current < end
        return current >= start or current < end


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String, nullable=False, unique=True, index=True)
    user_agent = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    user = relationship("User", back_populates="refresh_tokens")


class PushToken(Base):
    __tablename__ = "push_tokens"
    __table_args__ = (UniqueConstraint("user_id", "device_id", name="uq_push_token_device"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String, nullable=False)
    platform = Column(String, nullable=False)  # ios, android, web
    device_id = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True)
    last_used_at = Column(DateTime, default=datetime.now)
    created_at = Column(DateTime, default=datetime.now)

    user = relationship("User", back_populates="push_tokens")


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    description = Column(String(500), nullable=True)
    type = Column(String, default=PROFILE_TYPE_SELF)  # self, child, pet, other
    avatar = Column(String, nullable=True)
    cover_image = Column(String, nullable=True)
    birthday = Column(Date, nullable=True)
    is_public = Column(Boolean, default=False)
    is_default = Column(Boolean, default=False)

    # Stats
    moment_count = Column(Integer, default=0)
    last_moment_at = Column(DateTime, nullable=True)

    is_deleted = Column(Boolean, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    def has_access(self, user_id: int) -> bool:
        """Owner always has access, others only to public profiles"""
        return self.user_id == user_id or bool(self.is_public)


class Moment(Base):
    __tablename__ = "moments"

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    creator_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(100), nullable=False)
    content = Column(Text, nullable=True)
    category = Column(String, default="daily", index=True)
    tags = Column(JSON, default=list)
    media = Column(JSON, default=list)  # [{type, url, thumbnail, size, filename, mime_type}]
    mood = Column(String, nullable=True)
    privacy = Column(String, default=PRIVACY_PRIVATE)  # public, private, friends

    # Optional location
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    address = Column(String, nullable=True)
    place_name = Column(String, nullable=True)

    moment_date = Column(DateTime, default=datetime.now, index=True)
    is_pinned = Column(Boolean, default=False)
    view_count = Column(Integer, default=0)

    is_deleted = Column(Boolean, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    likes = relationship("MomentLike", cascade="all, delete-orphan", lazy="selectin")
    comments = relationship(
        "MomentComment", cascade="all, delete-orphan",
        order_by="MomentComment.created_at", lazy="selectin"
    )
    # One row per tag so filters compare plain text instead of serialized JSON
    tag_entries = relationship("MomentTag", cascade="all, delete-orphan")

    @property
    def location(self):
        if self.latitude is None or self.longitude is None:
            return None
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "place_name": self.place_name,
        }

    @property
    def like_count(self) -> int:
        return len(self.likes)

    @property
    def comment_count(self) -> int:
        return len(self.comments)

    @property
    def is_public(self) -> bool:
        return self.privacy == PRIVACY_PUBLIC

    def is_liked_by(self, user_id: int) -> bool:
        return any(like.user_id == user_id for like in self.likes)


class MomentTag(Base):
    __tablename__ = "moment_tags"

    id = Column(Integer, primary_key=True, index=True)
    moment_id = Column(Integer, ForeignKey("moments.id", ondelete="CASCADE"), nullable=False, index=True)
    tag = Column(String(20), nullable=False, index=True)


@event.listens_for(Moment.tags, "set")
def _sync_moment_tags(target, value, oldvalue, initiator):
    target.tag_entries = [MomentTag(tag=tag) for tag in (value or [])]


class MomentLike(Base):
    __tablename__ = "moment_likes"
    __table_args__ = (UniqueConstraint("moment_id", "user_id", name="uq_moment_like"),)

    id = Column(Integer, primary_key=True, index=True)
    moment_id = Column(Integer, ForeignKey("moments.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.now)


class MomentComment(Base):
    __tablename__ = "moment_comments"

    id = Column(Integer, primary_key=True, index=True)
    moment_id = Column(Integer, ForeignKey("moments.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=datetime.now)


class AchievementTemplate(Base):
    __tablename__ = "achievement_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(500), nullable=False)
    type = Column(String, nullable=False)  # milestone, streak, collection, social, exploration, creative
    category = Column(String, nullable=False)  # records, social, exploration, creativity, persistence, milestone
    difficulty = Column(String, default="easy")  # easy, medium, hard, legendary
    icon = Column(String, nullable=False)
    badge = Column(String, nullable=True)
    points = Column(Integer, default=10)

    # Unlock condition
    condition_type = Column(String, nullable=False)  # count, streak, time, location, social, custom
    condition_target = Column(Integer, nullable=False, default=1)
    condition_params = Column(JSON, default=dict)

    prerequisites = Column(JSON, default=list)  # template ids
    status = Column(String, default=TEMPLATE_STATUS_ACTIVE, index=True)
    is_hidden = Column(Boolean, default=False)
    is_limited = Column(Boolean, default=False)
    valid_from = Column(DateTime, nullable=True)
    valid_to = Column(DateTime, nullable=True)
    tags = Column(JSON, default=list)

    # Stats
    achieved_count = Column(Integer, default=0)
    in_progress_count = Column(Integer, default=0)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def is_available(self) -> bool:
        """Active and, for limited templates, inside the validity window"""
        if self.status != TEMPLATE_STATUS_ACTIVE:
            return False
        if self.is_limited:
            now = datetime.now()
            if self.valid_from and now < self.valid_from:
                return False
            if self.valid_to and now > self.valid_to:
                return False
        return True


class UserAchievement(Base):
    __tablename__ = "user_achievements"
    __table_args__ = (UniqueConstraint("user_id", "template_id", name="uq_user_template"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    template_id = Column(
        Integer, ForeignKey("achievement_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String, default=ACHIEVEMENT_STATUS_NOT_STARTED, index=True)

    progress_current = Column(Integer, default=0)
    progress_target = Column(Integer, nullable=False, default=1)
    progress_percentage = Column(Float, default=0.0)
    progress_history = Column(JSON, default=list)  # [{value, trigger, timestamp}]

    started_at = Column(DateTime, nullable=True)
    achieved_at = Column(DateTime, nullable=True)

    is_manually_granted = Column(Boolean, default=False)
    granted_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    grant_reason = Column(String(200), nullable=True)

    points_awarded = Column(Integer, default=0)
    notified = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    template = relationship("AchievementTemplate", lazy="joined")

    @property
    def remaining(self) -> int:
        return max(0, (self.progress_target or 0) - (self.progress_current or 0))

    @property
    def is_achieved(self) -> bool:
        return self.status == ACHIEVEMENT_STATUS_ACHIEVED

    def recalculate_progress(self, now=None):
        """Derive percentage, status and timestamps from the current progress"""
        now = now or datetime.now()
        current = self.progress_current or 0
        target = self.progress_target or 0

        if target > 0:
            self.progress_percentage = min(100.0, current / target * 100)

        # Achieved is terminal
        if self.status == ACHIEVEMENT_STATUS_ACHIEVED:
            return self.status

        if target > 0 and current >= target:
            self.status = ACHIEVEMENT_STATUS_ACHIEVED
            self.achieved_at = now
        elif current > 0:
            self.status = ACHIEVEMENT_STATUS_IN_PROGRESS
            if self.started_at is None:
                self.started_at = now
        else:
            self.status = ACHIEVEMENT_STATUS_NOT_STARTED
            self.started_at = None

        return self.status


@event.listens_for(UserAchievement, "before_insert")
@event.listens_for(UserAchievement, "before_update")
def _derive_user_achievement_state(mapper, connection, target):
    target.recalculate_progress()


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    address = Column(String, nullable=False)  # formatted address
    city = Column(String, nullable=True)
    country = Column(String, nullable=True)
    place_name = Column(String(100), nullable=True)
    place_type = Column(String, default="other")
    visit_type = Column(String, default="checkin")  # checkin, visit, live, work, travel

    visited_at = Column(DateTime, default=datetime.now, index=True)
    duration = Column(Integer, nullable=True)  # minutes
    tags = Column(JSON, default=list)
    notes = Column(String(500), nullable=True)
    privacy = Column(String, default=PRIVACY_PRIVATE)
    is_favorite = Column(Boolean, default=False)
    visit_count = Column(Integer, default=1)
    last_visit_at = Column(DateTime, default=datetime.now)

    is_deleted = Column(Boolean, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class FavoritePlace(Base):
    __tablename__ = "favorite_places"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String, nullable=True)
    type = Column(String, default="other")
    visit_count = Column(Integer, default=1)
    last_visit_at = Column(DateTime, default=datetime.now)

    created_at = Column(DateTime, default=datetime.now)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    type = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, index=True)
    priority = Column(String, default="normal")  # low, normal, high, urgent
    title = Column(String(200), nullable=False)
    message = Column(String(1000), nullable=False)
    data = Column(JSON, default=dict)

    is_read = Column(Boolean, default=False, index=True)
    read_at = Column(DateTime, nullable=True)
    is_delivered = Column(Boolean, default=False)
    delivered_at = Column(DateTime, nullable=True)
    delivery_method = Column(String, default=DELIVERY_IN_APP)  # in_app, push, email

    expires_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.now, index=True)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= datetime.now()

    def mark_as_read(self, now=None) -> bool:
        """Mark as read; returns False when it was already read"""
        if self.is_read:
            return False
        self.is_read = True
        self.read_at = now or datetime.now()
        return True
