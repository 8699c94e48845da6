from sqlalchemy import Column, Integer, String, Date, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from pld_scheduler.database import Base


class Allotment(Base):
    __tablename__ = "allotments"
    __table_args__ = (
        UniqueConstraint("division", "date", name="uq_allotments_division_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    division = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    max_allotment = Column(Integer, nullable=False, default=0)
    current_requests = Column(Integer, nullable=False, default=0)  # Derived from leave_requests; never edited directly
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
