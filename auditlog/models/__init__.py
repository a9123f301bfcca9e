"""Model exports for convenience."""

from auditlog.db.session import Base
from auditlog.models.audit import SYSTEM_SUBJECT_TYPE, AuditRecord, SubjectRef
from auditlog.models.user import User

__all__ = [
    "Base",
    "AuditRecord",
    "SubjectRef",
    "SYSTEM_SUBJECT_TYPE",
    "User",
]
