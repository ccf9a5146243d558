from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from perfwork.database import Base


class AuditLog(Base):
    """Append-only trail of workflow actions."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String, nullable=False, index=True)
    entity_type = Column(String, nullable=False, index=True)
    entity_id = Column(Integer, nullable=True, index=True)
    actor_id = Column(Integer, nullable=True, index=True)
    actor_role = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    before_state = Column(JSON, nullable=True)
    after_state = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
