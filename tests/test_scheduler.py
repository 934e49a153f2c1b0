from datetime import date, datetime

from app.config import settings
from app.models import Attendance, AttendancePoint
from app.services import scheduler
from app.services.attendance_point_service import AttendancePointService


def test_expire_points_job_uses_site_today(db, create_user, monkeypatch):
    user = create_user("Juan", "Dela Cruz")
    user_id = user.id
    attendance = Attendance(user_id=user_id, shift_date=date(2024, 3, 1), status="tardy", tardy_minutes=10,
                            scheduled_time_in=datetime(2024, 3, 1, 8, 0),
                            scheduled_time_out=datetime(2024, 3, 1, 17, 0))
    db.add(attendance)
    db.flush()
    AttendancePointService(db).apply(attendance)
    db.commit()
    monkeypatch.setattr(scheduler, "get_today", lambda *args: date(2024, 4, 30))

    assert scheduler.expire_points_job(session_factory=lambda: db) == 1

    point = db.query(AttendancePoint).filter(AttendancePoint.user_id == user_id).one()
    assert point.is_expired is True


def test_point_expiry_job_is_registered_when_enabled(monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_POINT_EXPIRY_JOB", True)

    job = scheduler.MaintenanceScheduler().scheduler.get_job("point_expiry")

    assert job is not None
    assert job.func is scheduler.expire_points_job


def test_point_expiry_job_is_skipped_when_disabled(monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_POINT_EXPIRY_JOB", False)

    assert scheduler.MaintenanceScheduler().scheduler.get_jobs() == []
