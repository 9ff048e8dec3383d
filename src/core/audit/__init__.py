from src.core.audit.models import AuditLog
from src.core.audit.service import AuditService, list_audit_entries

__all__ = ["AuditLog", "AuditService", "list_audit_entries"]
