from casedesk.models.audit_log import AuditLog
from casedesk.models.lead import Lead
from casedesk.models.user import User

__all__ = ['AuditLog', 'Lead', 'User']
