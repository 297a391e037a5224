"""Gateway notification log (webhook deliveries and dead letters)."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text
from ferremas.database import Base, BigIntPK, utcnow


class NotificationStatus:
    RECEIVED = 'RECEIVED'
    PROCESSED = 'PROCESSED'
    IGNORED = 'IGNORED'
    UNMATCHED = 'UNMATCHED'
    REJECTED = 'REJECTED'
    FAILED = 'FAILED'


class GatewayNotification(Base):
    """Log de notificaciones de Mercado Pago; las FAILED se reprocesan por CLI."""
    __tablename__ = 'gateway_notifications'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    topic = Column(String(50), nullable=True, index=True)
    resource_id = Column(String(100), nullable=True, index=True)
    payload_json = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default=NotificationStatus.RECEIVED, index=True)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    received_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    processed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<GatewayNotification(topic='{self.topic}', resource_id='{self.resource_id}', status='{self.status}')>"

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'topic': self.topic,
            'resource_id': self.resource_id,
            'payload': self.payload_json,
            'status': self.status,
            'error': self.error,
            'attempts': self.attempts,
            'received_at': self.received_at.isoformat() if self.received_at else None,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
        }

    @property
    def is_processed(self):
        """Check if event has been processed."""
        return self.status == NotificationStatus.PROCESSED
