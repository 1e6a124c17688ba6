"""
User model — actor identity referenced by leads' created_by / assigned_to.
"""
from sqlalchemy import Column, Text, Boolean, DateTime
from sqlalchemy.sql import func

from casedesk.database import Base


class User(Base):
    __tablename__ = 'users'

    id = Column(Text, primary_key=True)
    email = Column(Text, nullable=False, default='')
    display_name = Column(Text, nullable=False, default='')
    role = Column(Text, default='REVIEWER')
    avatar = Column(Text, nullable=True)            # base64 data URL
    status = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    is_active = Column(Boolean, default=True)
    is_online = Column(Boolean, default=False)
    last_seen = Column(DateTime(timezone=True), nullable=True)
