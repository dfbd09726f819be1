"""
SQLAlchemy ORM models for database tables.

For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Column, String, Text

from storefront_payments.storage import Base


class WebhookEvent(Base):
    """
    A verified Yoco notification.

    Table: webhook_events
    Primary Key: webhook_id (a redelivered notification is recorded once)
    """
    __tablename__ = "webhook_events"

    webhook_id = Column(String, primary_key=True, index=True)
    event_id = Column(String, nullable=False, index=True)
    event_type = Column(String, nullable=False, index=True)
    webhook_timestamp = Column(String, nullable=False)  # unix seconds as received
    payload = Column(Text, nullable=False)  # raw body as received
    received_at = Column(String, nullable=False)  # Server time ISO-8601
