"""
Background scheduler for housekeeping
Handles:
- Purging expired notifications
- Purging refresh tokens older than their lifetime
"""

import logging
from datetime import datetime, timedelta
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from firstmoments.database import SessionLocal
from firstmoments.constants import REFRESH_TOKEN_EXPIRE_DAYS
from firstmoments.repositories.notification_repository import NotificationRepository
from firstmoments.repositories.user_repository import RefreshTokenRepository

logger = logging.getLogger("first_moments.scheduler")


def purge_expired_notifications():
    """Delete notifications whose expiry time has passed"""
    db: Session = SessionLocal()
    try:
        deleted = NotificationRepository.delete_expired(db)
        if deleted:
            logger.info(f"Purged {deleted} expired notifications")
    except Exception as e:
        db.rollback()
        logger.error(f"Error in purge_expired_notifications: {e}")
    finally:
        db.close()


def purge_expired_refresh_tokens():
    """Delete refresh tokens that can no longer be used"""
    db: Session = SessionLocal()
    try:
        cutoff = datetime.now() - timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
        deleted = RefreshTokenRepository.delete_older_than(db, cutoff)
        db.commit()
        if deleted:
            logger.info(f"Purged {deleted} expired refresh tokens")
    except Exception as e:
        db.rollback()
        logger.error(f"Error in purge_expired_refresh_tokens: {e}")
    finally:
        db.close()


# Create scheduler instance
scheduler = BackgroundScheduler()


def start_scheduler():
    """Start the background scheduler"""
    logger.info("Starting First Moments background scheduler")

    scheduler.add_job(
        purge_expired_notifications,
        CronTrigger(minute=0),  # Hourly
        id='purge_expired_notifications',
        replace_existing=True
    )

    scheduler.add_job(
        purge_expired_refresh_tokens,
        CronTrigger(minute=30),  # Hourly, offset from the notification purge
        id='purge_expired_refresh_tokens',
        replace_existing=True
    )

    scheduler.start()
    logger.info("Background scheduler started successfully")


def stop_scheduler():
    """Stop the background scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped")
