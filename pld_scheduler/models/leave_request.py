from sqlalchemy import Column, Integer, String, Date, Boolean, ForeignKey, DateTime, Index, text
from sqlalchemy.orm import relationship
from pld_scheduler.database import Base
import enum


class LeaveType(str, enum.Enum):
    PLD = "PLD"
    SDV = "SDV"


class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"
    CANCELLATION_PENDING = "cancellation_pending"


# Statuses that hold one of the date's slots
SLOT_HOLDING_STATUSES = (
    LeaveStatus.PENDING.value,
    LeaveStatus.APPROVED.value,
    LeaveStatus.CANCELLATION_PENDING.value,
)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        # One live request per member per day; cancelled rows are kept for history
        Index(
            "uq_leave_requests_active_member_date",
            "member_id",
            "request_date",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
        Index("ix_leave_requests_division_date_status", "division", "request_date", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    division = Column(String, nullable=False)
    request_date = Column(Date, nullable=False)
    leave_type = Column(String, nullable=False)  # Using String to store enum value for simplicity with SQLite
    status = Column(String, nullable=False, default=LeaveStatus.PENDING.value)

    requested_at = Column(DateTime(timezone=True), nullable=False)  # Assigned by the service at insert time
    responded_at = Column(DateTime(timezone=True), nullable=True)
    waitlist_position = Column(Integer, nullable=True)
    paid_in_lieu = Column(Boolean, default=False, nullable=False)
    denial_reason = Column(String, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(Integer, nullable=True)

    member = relationship("Member", foreign_keys=[member_id], back_populates="leave_requests")

    def __repr__(self):
        return f"<LeaveRequest {self.id} {self.leave_type} {self.request_date} {self.status}>"
