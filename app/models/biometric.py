from sqlalchemy import Column, Integer, String, Date, DateTime, Time, Text, JSON, ForeignKey, func
from sqlalchemy.orm import relationship
from app.database import Base


class AttendanceUpload(Base):
    __tablename__ = "attendance_uploads"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id"))
    original_filename = Column(String(255))
    date_from = Column(Date, nullable=False)
    date_to = Column(Date, nullable=False)
    status = Column(String(20), default="pending")  # 'pending', 'processing', 'completed', 'failed'
    total_records = Column(Integer, default=0)
    malformed_lines = Column(Integer, default=0)
    processed_records = Column(Integer, default=0)
    matched_employees = Column(Integer, default=0)
    unmatched_names = Column(Integer, default=0)
    unmatched_names_list = Column(JSON, default=list)
    error_message = Column(Text)
    uploaded_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    site = relationship("Site")


class BiometricRecord(Base):
    __tablename__ = "biometric_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)  # NULL = unmatched name
    attendance_upload_id = Column(Integer, ForeignKey("attendance_uploads.id"))
    site_id = Column(Integer, ForeignKey("sites.id"))
    device_no = Column(String(20))
    device_user_id = Column(String(50))
    employee_name = Column(String(200), nullable=False)
    normalized_name = Column(String(200), nullable=False, index=True)
    datetime = Column(DateTime, nullable=False, index=True)
    record_date = Column(Date, nullable=False)
    record_time = Column(Time, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")
    upload = relationship("AttendanceUpload", backref="records")
