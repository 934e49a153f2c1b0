from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Text, JSON, ForeignKey, UniqueConstraint, func
)
from sqlalchemy.orm import relationship
from app.database import Base


class Attendance(Base):
    __tablename__ = "attendances"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    employee_schedule_id = Column(Integer, ForeignKey("employee_schedules.id"))
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id"))
    shift_date = Column(Date, nullable=False, index=True)
    scheduled_time_in = Column(DateTime)
    scheduled_time_out = Column(DateTime)
    actual_time_in = Column(DateTime)
    actual_time_out = Column(DateTime)
    bio_in_site_id = Column(Integer, ForeignKey("sites.id"))
    bio_out_site_id = Column(Integer, ForeignKey("sites.id"))
    status = Column(String(30), nullable=False)
    secondary_status = Column(String(30))
    tardy_minutes = Column(Integer)
    undertime_minutes = Column(Integer)
    overtime_minutes = Column(Integer)
    total_minutes_worked = Column(Integer)
    overtime_approved = Column(Boolean, default=False)
    is_cross_site_bio = Column(Boolean, default=False)
    admin_verified = Column(Boolean, default=False)
    verified_by = Column(Integer, ForeignKey("users.id"))
    verified_at = Column(DateTime(timezone=True))
    warnings = Column(JSON, default=list)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id], backref="attendances")
    schedule = relationship("EmployeeSchedule")
    bio_in_site = relationship("Site", foreign_keys=[bio_in_site_id])
    bio_out_site = relationship("Site", foreign_keys=[bio_out_site_id])

    __table_args__ = (
        UniqueConstraint('user_id', 'shift_date', name='uix_attendance_user_shift_date'),
    )
