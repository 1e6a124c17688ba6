"""
Lead model — one row per case, addressed by id or by its case_code.

Sub-documents (progress updates, cost/profit records, attachments, ...) are
JSON arrays serialized into text columns; see services.normalizer.
"""
from sqlalchemy import Column, Integer, Text, DateTime
from sqlalchemy.sql import func

from casedesk.database import Base


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Text, primary_key=True)
    case_code = Column(Text, unique=True, nullable=True)  # aijob-NNN
    platform = Column(Text, nullable=True)
    platform_id = Column(Text, nullable=True)
    need = Column(Text, nullable=False)
    budget_text = Column(Text, nullable=True)
    posted_at = Column(DateTime(timezone=True), nullable=True)

    phone = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    estimated_duration = Column(Text, nullable=True)
    contact_method = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    internal_remarks = Column(Text, nullable=True)
    remarks_author = Column(Text, nullable=True)

    status = Column(Text, default='待篩選', index=True)
    decision = Column(Text, default='pending')      # pending/approved/rejected
    decision_by = Column(Text, nullable=True)
    reject_reason = Column(Text, nullable=True)
    review_note = Column(Text, nullable=True)
    assigned_to = Column(Text, nullable=True)
    assigned_to_name = Column(Text, nullable=True)
    priority = Column(Integer, default=3)
    contact_status = Column(Text, default='未回覆')

    created_by = Column(Text, nullable=True)
    created_by_name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    last_action_by = Column(Text, nullable=True)

    progress_updates = Column(Text, nullable=True)
    change_history = Column(Text, nullable=True)
    cost_records = Column(Text, nullable=True)
    profit_records = Column(Text, nullable=True)
    contracts = Column(Text, nullable=True)       # also holds attachments
    links = Column(Text, nullable=True)
