from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Numeric, Text, ForeignKey, func
)
from sqlalchemy.orm import relationship
from app.database import Base


class AttendancePoint(Base):
    __tablename__ = "attendance_points"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    attendance_id = Column(Integer, ForeignKey("attendances.id", ondelete="SET NULL"))
    shift_date = Column(Date, nullable=False, index=True)
    point_type = Column(String(40), nullable=False)  # 'whole_day_absence', 'half_day_absence', 'tardy', 'undertime', 'undertime_more_than_hour'
    status = Column(String(30))
    points = Column(Numeric(4, 2), nullable=False)
    is_advised = Column(Boolean, default=False)
    violation_details = Column(Text)
    tardy_minutes = Column(Integer)
    undertime_minutes = Column(Integer)
    is_excused = Column(Boolean, default=False)
    excused_by = Column(Integer, ForeignKey("users.id"))
    excused_at = Column(DateTime(timezone=True))
    excuse_reason = Column(Text)
    is_expired = Column(Boolean, default=False)
    expired_at = Column(Date)
    expires_at = Column(Date)
    expiration_type = Column(String(10))  # 'sro', 'gbro', 'none'
    gbro_applied_at = Column(Date)
    gbro_expires_at = Column(Date)
    eligible_for_gbro = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id], backref="attendance_points")
    attendance = relationship("Attendance", backref="points")

    @property
    def is_active(self) -> bool:
        return not self.is_excused and not self.is_expired
