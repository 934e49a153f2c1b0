from sqlalchemy import Column, Integer, String, Boolean, Date, Time, DateTime, JSON, ForeignKey, func
from sqlalchemy.orm import relationship
from app.database import Base


class EmployeeSchedule(Base):
    __tablename__ = "employee_schedules"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    campaign_id = Column(Integer)
    site_id = Column(Integer, ForeignKey("sites.id"))
    shift_type = Column(String(20), nullable=False)  # 'morning', 'afternoon', 'evening', 'night', 'graveyard', 'utility_24h'
    scheduled_time_in = Column(Time, nullable=False)
    scheduled_time_out = Column(Time, nullable=False)
    work_days = Column(JSON, nullable=False, default=list)  # ['monday', 'tuesday', ...]
    grace_period_minutes = Column(Integer, default=15)
    effective_date = Column(Date, nullable=False)
    end_date = Column(Date)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", backref="schedules")
    site = relationship("Site")
