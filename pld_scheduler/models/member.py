"""
Member Model.
Read-only from the scheduler's point of view except for the admin-assigned SDV entitlement.
"""
from sqlalchemy import Column, Integer, String, Date, Enum, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from pld_scheduler.database import Base


class MemberRole(str, enum.Enum):
    """
    Member roles.

    - APPLICATION_ADMIN: Full access across all divisions
    - UNION_ADMIN: Union-wide administration
    - DIVISION_ADMIN: Administration of their own division
    - COMPANY_ADMIN: Company-side reviewer (approves/denies requests)
    - USER: Regular member (self-service only)
    """
    APPLICATION_ADMIN = "application_admin"
    UNION_ADMIN = "union_admin"
    DIVISION_ADMIN = "division_admin"
    COMPANY_ADMIN = "company_admin"
    USER = "user"


class Member(Base):
    __tablename__ = "members"

    id = Column(Integer, primary_key=True, index=True)
    pin_number = Column(String, unique=True, index=True, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    division = Column(String, index=True, nullable=True)

    company_hire_date = Column(Date, nullable=True)
    pld_override = Column(Integer, nullable=True)  # Administrative override, wins over seniority when >= 0
    sdv_entitlement = Column(Integer, default=0, nullable=False)  # 0-12, set by division/union admins

    role = Column(Enum(MemberRole), default=MemberRole.USER, nullable=False)
    status = Column(String, default="ACTIVE", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    leave_requests = relationship(
        "LeaveRequest",
        foreign_keys="[LeaveRequest.member_id]",
        back_populates="member",
    )

    def __repr__(self):
        return f"<Member {self.id} div={self.division} ({self.role.value if self.role else 'user'})>"

