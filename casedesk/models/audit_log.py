"""
AuditLog model — immutable trail of actions taken on leads.
"""
from sqlalchemy import Column, Text, DateTime
from sqlalchemy.sql import func

from casedesk.database import Base


class AuditLog(Base):
    __tablename__ = 'audit_logs'

    id = Column(Text, primary_key=True)
    lead_id = Column(Text, nullable=True, index=True)
    actor_uid = Column(Text, nullable=True)
    actor_name = Column(Text, default='')
    action = Column(Text, default='')
    before = Column(Text, nullable=True)   # JSON object snapshot
    after = Column(Text, nullable=True)    # JSON object snapshot
    created_at = Column(DateTime(timezone=True), server_default=func.now())
