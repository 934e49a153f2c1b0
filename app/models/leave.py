from sqlalchemy import Column, Integer, String, Boolean, Date, Text, ForeignKey, DateTime, func
from sqlalchemy.orm import relationship
from app.database import Base


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    leave_type = Column(String(50), default="vacation")
    reason = Column(Text)
    status = Column(String(20), default="pending")  # 'pending', 'approved', 'denied', 'cancelled'
    has_supporting_document = Column(Boolean, default=False)
    approved_by = Column(Integer, ForeignKey("users.id"))
    approved_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", foreign_keys=[user_id], backref="leave_requests")

    def covers(self, target) -> bool:
        return self.start_date <= target <= self.end_date
