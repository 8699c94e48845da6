# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import member, leave_request, allotment, audit_log

# Explicit class exports for cleaner imports
from .member import Member, MemberRole
from .leave_request import LeaveRequest, LeaveStatus, LeaveType
from .allotment import Allotment
from .audit_log import AuditLog

__all__ = [
    "Member",
    "MemberRole",
    "LeaveRequest",
    "LeaveStatus",
    "LeaveType",
    "Allotment",
    "AuditLog",
]
