import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Generator, Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.exc import IntegrityError

from storefront_payments.config import settings

if TYPE_CHECKING:
    from storefront_payments.models import WebhookEvent

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {},
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from storefront_payments.models import WebhookEvent  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and the webhook_events table exists.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            result = db.execute(text(
                "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name='webhook_events'"
            )).scalar()
            if result == 0:
                logger.error("Database schema not applied: 'webhook_events' table not found")
                return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Webhook Event Repository Functions
# =============================================================================

def record_webhook_event(
    db: Session,
    webhook_id: str,
    event_id: str,
    event_type: str,
    webhook_timestamp: str,
    payload: str,
) -> Tuple[bool, bool]:
    """
    Record a verified webhook notification (idempotent on webhook_id).

    Returns:
        Tuple of (success: bool, is_duplicate: bool)
        - (True, False): event recorded
        - (True, True): webhook_id already recorded
        - (False, False): error occurred
    """
    from storefront_payments.models import WebhookEvent

    logger.info(f"Recording webhook event: webhook_id={webhook_id}, type={event_type}")

    try:
        received_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        event = WebhookEvent(
            webhook_id=webhook_id,
            event_id=event_id,
            event_type=event_type,
            webhook_timestamp=webhook_timestamp,
            payload=payload,
            received_at=received_at,
        )
        db.add(event)
        db.commit()
        return (True, False)

    except IntegrityError:
        db.rollback()
        logger.info(f"Duplicate webhook delivery: {webhook_id}")
        return (True, True)

    except Exception as e:
        db.rollback()
        logger.error(f"Failed to record webhook event {webhook_id}: {e}")
        return (False, False)


def get_webhook_event(db: Session, webhook_id: str) -> Optional["WebhookEvent"]:
    """Look up a recorded webhook event by its webhook id."""
    from storefront_payments.models import WebhookEvent

    return db.query(WebhookEvent).filter(WebhookEvent.webhook_id == webhook_id).first()
