from .recorder import AuditAction, AuditRecorder, AuditTarget

__all__ = ["AuditAction", "AuditRecorder", "AuditTarget"]
