from datetime import datetime, timezone

from sqlalchemy import Column, Integer, BigInteger, Text, String, Date, TIMESTAMP, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StockNotificationEventRecord(Base):
    """
    Persistent audit row for one ingested "item restocked" event.

    Rows are never deleted. `received_on` is the calendar day of
    `received_at` in the deployment time zone and is the day used for
    deduplication.
    """
    __tablename__ = 'stock_notification_events'

    id = Column(String(36), primary_key=True)

    # Queue transport
    source_message_id = Column(String(100), nullable=False, index=True)
    source_group_id = Column(String(128), nullable=True)

    # Who and what
    recipient_id = Column(String(64), nullable=False)
    guest_id = Column(String(64), nullable=True)
    product_id = Column(BigInteger, nullable=False)
    sku = Column(String(64), nullable=False)

    # Passthrough routing metadata
    screen = Column(Text, nullable=True)
    source_type = Column(Text, nullable=True)
    source_name = Column(Text, nullable=True)

    # Lifecycle
    status = Column(String(16), nullable=False, default='PENDING')  # PENDING|PROCESSING|SENT|FAILED|SKIPPED
    received_at = Column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    received_on = Column(Date, nullable=False)
    processed_at = Column(TIMESTAMP(timezone=True), nullable=True)
    sent_at = Column(TIMESTAMP(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)

    raw_payload = Column(JSON().with_variant(JSONB(), 'postgresql'), nullable=True)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        # Distinct-pending selection and the sent-today guard
        Index('idx_stock_event_dedup', 'status', 'received_on', 'recipient_id', 'sku'),
        Index('idx_stock_event_pair_day', 'recipient_id', 'sku', 'received_on'),
    )
