from datetime import date, datetime, time

import pytest

from app.models import Attendance, AttendancePoint, BiometricRecord, LeaveRequest
from app.services.attendance_point_service import AttendancePointService
from app.services.attendance_processor import AttendanceProcessor
from app.schemas.schedule import ScheduleCreate
from app.services.leave_service import LeaveService
from app.services.schedule_service import ScheduleService
from app.utils.validators import ValidationError
from factories import scan_log


def _upload(db, content, date_from=date(2024, 3, 1), date_to=date(2024, 3, 1), site_id=None):
    processor = AttendanceProcessor(db)
    upload = processor.create_upload(date_from, date_to, site_id, "scans.txt")
    return processor.process_upload(upload, content)


def _attendance(db, user, shift_date=date(2024, 3, 1)):
    return db.query(Attendance).filter(
        Attendance.user_id == user.id, Attendance.shift_date == shift_date
    ).one()


def test_upload_reconciles_night_shift_scans(db, create_user, create_schedule, site):
    user = create_user("Juan", "Dela Cruz")
    create_schedule(user, grace=0, site_id=site.id)
    content = scan_log(
        ("1", "101", "Juan Dela Cruz", "2024-03-01 21:58:00"),
        ("1", "101", "Juan Dela Cruz", "2024-03-02 06:10:00"),
    )

    summary = _upload(db, content, site_id=site.id)

    assert summary.status == "completed"
    assert summary.stored_records == 2
    assert summary.matched_employees == 1
    assert summary.processed == 1
    assert summary.failed == 0

    attendance = _attendance(db, user)
    assert attendance.status == "on_time"
    assert attendance.actual_time_in == datetime(2024, 3, 1, 21, 58)
    assert attendance.actual_time_out == datetime(2024, 3, 2, 6, 10)
    assert attendance.tardy_minutes is None
    assert attendance.bio_in_site_id == site.id
    assert attendance.is_cross_site_bio is False


def test_upload_records_tardy_with_failed_bio_out(db, create_user, create_schedule):
    user = create_user("Maria", "Santos")
    create_schedule(user)
    content = scan_log(("1", "7", "SANTOS MARIA", "2024-03-01 22:20:00"))

    _upload(db, content)

    attendance = _attendance(db, user)
    assert attendance.status == "tardy"
    assert attendance.secondary_status == "failed_bio_out"
    assert attendance.tardy_minutes == 20

    [point] = db.query(AttendancePoint).filter(AttendancePoint.user_id == user.id).all()
    assert point.point_type == "tardy"
    assert point.attendance_id == attendance.id


def test_scheduled_employee_without_scans_is_ncns(db, create_user, create_schedule):
    present = create_user("Juan", "Dela Cruz")
    absent = create_user("Pedro", "Reyes")
    create_schedule(present)
    create_schedule(absent)
    content = scan_log(
        ("1", "101", "Juan Dela Cruz", "2024-03-01 21:58:00"),
        ("1", "101", "Juan Dela Cruz", "2024-03-02 06:01:00"),
    )

    summary = _upload(db, content)

    assert summary.processed == 2
    attendance = _attendance(db, absent)
    assert attendance.status == "ncns"
    assert attendance.actual_time_in is None
    assert attendance.tardy_minutes is None

    [point] = db.query(AttendancePoint).filter(AttendancePoint.user_id == absent.id).all()
    assert point.point_type == "whole_day_absence"


def test_unmatched_names_are_kept_and_reported(db, create_user, create_schedule):
    user = create_user("Juan", "Dela Cruz")
    create_schedule(user)
    content = scan_log(
        ("1", "101", "Juan Dela Cruz", "2024-03-01 21:58:00"),
        ("1", "555", "Unknown Person", "2024-03-01 22:05:00"),
        ("1", "101", "Juan Dela Cruz", "2024-03-02 06:01:00"),
    )

    summary = _upload(db, content)

    assert summary.unmatched_names == ["Unknown Person"]
    unmatched = db.query(BiometricRecord).filter(BiometricRecord.user_id == None).all()
    assert [record.normalized_name for record in unmatched] == ["unknown person"]


def test_malformed_lines_do_not_abort_upload(db, create_user, create_schedule):
    user = create_user("Juan", "Dela Cruz")
    create_schedule(user)
    content = scan_log(("1", "101", "Juan Dela Cruz", "2024-03-01 21:58:00")) + b"\nbroken line\n"

    summary = _upload(db, content)

    assert summary.malformed_lines == 1
    assert summary.status == "completed"


def test_reupload_does_not_duplicate_records(db, create_user, create_schedule):
    user = create_user("Juan", "Dela Cruz")
    create_schedule(user)
    content = scan_log(("1", "101", "Juan Dela Cruz", "2024-03-01 21:58:00"))

    _upload(db, content)
    summary = _upload(db, content)

    assert summary.stored_records == 0
    assert db.query(BiometricRecord).count() == 1
    assert db.query(Attendance).filter(Attendance.user_id == user.id).count() == 1


def test_reprocess_skips_verified_attendance(db, create_user, create_schedule):
    user = create_user("Maria", "Santos")
    create_schedule(user)
    _upload(db, scan_log(("1", "7", "Maria Santos", "2024-03-01 22:20:00")))
    processor = AttendanceProcessor(db)
    attendance = _attendance(db, user)

    processor.verify(attendance.id, actor_id=user.id, status="on_time", notes="Approved by supervisor")
    result = processor.reprocess(date(2024, 3, 1), date(2024, 3, 1), [user.id])

    assert result.processed == 1
    assert result.details[0]["skipped_verified"] == 1
    attendance = _attendance(db, user)
    assert attendance.status == "on_time"
    assert attendance.admin_verified is True
    assert attendance.verified_by == user.id


def test_verify_regenerates_points(db, create_user, create_schedule):
    user = create_user("Maria", "Santos")
    create_schedule(user)
    _upload(db, scan_log(("1", "7", "Maria Santos", "2024-03-01 22:20:00")))
    attendance = _attendance(db, user)

    AttendanceProcessor(db).verify(attendance.id, actor_id=user.id, status="on_time", secondary_status=None)

    # 次要狀態 failed_bio_out 仍在，但不計點
    assert db.query(AttendancePoint).filter(AttendancePoint.user_id == user.id).count() == 0


def test_verify_requires_actor_and_known_status(db, create_user, create_schedule):
    user = create_user("Maria", "Santos")
    create_schedule(user)
    _upload(db, scan_log(("1", "7", "Maria Santos", "2024-03-01 22:20:00")))
    attendance = _attendance(db, user)
    processor = AttendanceProcessor(db)

    with pytest.raises(ValidationError):
        processor.verify(attendance.id, actor_id=None, status="on_time")
    with pytest.raises(ValidationError):
        processor.verify(attendance.id, actor_id=user.id, status="sleeping")
    with pytest.raises(ValueError, match="not found"):
        processor.verify(9999, actor_id=user.id, status="on_time")


def test_fix_statuses_skips_verified_rows(db, create_user, create_schedule):
    verified_user = create_user("Maria", "Santos")
    other_user = create_user("Juan", "Dela Cruz")
    create_schedule(verified_user)
    create_schedule(other_user)
    _upload(db, scan_log(
        ("1", "7", "Maria Santos", "2024-03-01 22:20:00"),
        ("1", "101", "Juan Dela Cruz", "2024-03-01 22:20:00"),
    ))
    processor = AttendanceProcessor(db)
    verified = _attendance(db, verified_user)
    processor.verify(verified.id, actor_id=verified_user.id, status="ncns")

    # 模擬舊規則留下的錯誤狀態
    other = _attendance(db, other_user)
    other.status = "half_day_absence"
    db.commit()

    result = processor.fix_statuses(date(2024, 3, 1), date(2024, 3, 1))

    assert result.skipped_verified == 1
    assert result.updated == 1
    assert _attendance(db, verified_user).status == "ncns"
    assert _attendance(db, other_user).status == "tardy"


def test_reprocess_rejects_bad_parameters(db, create_user):
    user = create_user("Juan", "Dela Cruz")
    processor = AttendanceProcessor(db)

    with pytest.raises(ValidationError):
        processor.reprocess(date(2024, 3, 5), date(2024, 3, 1))
    with pytest.raises(ValidationError, match="Unknown user ids: 424242"):
        processor.reprocess(date(2024, 3, 1), date(2024, 3, 1), [user.id, 424242])


def test_reprocess_isolates_per_employee_failures(db, create_user, create_schedule, monkeypatch):
    good = create_user("Juan", "Dela Cruz")
    bad = create_user("Pedro", "Reyes")
    create_schedule(good)
    create_schedule(bad)
    original = AttendanceProcessor.reconcile_user

    def flaky(self, user, start_date, end_date, delete_existing=True):
        if user.id == bad.id:
            raise RuntimeError("boom")
        return original(self, user, start_date, end_date, delete_existing)

    monkeypatch.setattr(AttendanceProcessor, "reconcile_user", flaky)

    result = AttendanceProcessor(db).reprocess(date(2024, 3, 1), date(2024, 3, 1))

    assert result.processed == 1
    assert result.failed == 1
    assert result.errors[0]["user_id"] == bad.id
    assert "boom" not in result.errors[0]["error"]
    assert result.message == "1 processed, 1 failed"
    assert _attendance(db, good).status == "ncns"
    assert db.query(Attendance).filter(Attendance.user_id == bad.id).count() == 0


def test_preview_counts_affected_rows(db, create_user, create_schedule):
    user = create_user("Juan", "Dela Cruz")
    create_schedule(user)
    _upload(db, scan_log(("1", "101", "Juan Dela Cruz", "2024-03-01 21:58:00")))

    preview = AttendanceProcessor(db).preview_reprocess(date(2024, 3, 1), date(2024, 3, 1))

    assert preview.employees == 1
    assert preview.biometric_records == 1
    assert preview.existing_attendances == 1
    assert preview.verified_attendances == 0


def test_reprocess_removes_shifts_no_longer_scheduled(db, create_user, create_schedule):
    absent = create_user("Pedro", "Reyes")
    verified_user = create_user("Maria", "Santos")
    create_schedule(absent)
    create_schedule(verified_user)
    processor = AttendanceProcessor(db)
    processor.reprocess(date(2024, 3, 1), date(2024, 3, 1))
    assert _attendance(db, absent).status == "ncns"
    verified = _attendance(db, verified_user)
    processor.verify(verified.id, actor_id=verified_user.id, status="ncns", notes="Confirmed absent")

    # 新班表版本把星期五改為休息日
    schedules = ScheduleService(db)
    for user in (absent, verified_user):
        schedules.create_schedule(ScheduleCreate(
            user_id=user.id,
            shift_type="night",
            scheduled_time_in=time(22, 0),
            scheduled_time_out=time(6, 0),
            work_days=["monday", "tuesday", "wednesday", "thursday", "saturday", "sunday"],
            effective_date=date(2024, 3, 1),
        ))

    result = processor.reprocess(date(2024, 3, 1), date(2024, 3, 1), [absent.id, verified_user.id],
                                 delete_existing=True)

    assert result.failed == 0
    details = {detail["user_id"]: detail for detail in result.details}
    assert details[absent.id]["removed_stale"] == 1
    assert db.query(Attendance).filter(Attendance.user_id == absent.id).count() == 0
    assert db.query(AttendancePoint).filter(AttendancePoint.user_id == absent.id).count() == 0

    assert details[verified_user.id]["removed_stale"] == 0
    assert _attendance(db, verified_user).status == "ncns"
    assert _attendance(db, verified_user).admin_verified is True
    assert db.query(AttendancePoint).filter(AttendancePoint.user_id == verified_user.id).count() == 1


def test_reprocess_without_delete_keeps_unscheduled_rows(db, create_user, create_schedule):
    user = create_user("Pedro", "Reyes")
    schedule = create_schedule(user)
    processor = AttendanceProcessor(db)
    processor.reprocess(date(2024, 3, 1), date(2024, 3, 1))

    # 班表不再涵蓋 3/1
    schedule.effective_date = date(2024, 3, 2)
    db.commit()

    result = processor.reprocess(date(2024, 3, 1), date(2024, 3, 1), [user.id], delete_existing=False)

    assert result.details[0]["removed_stale"] == 0
    assert _attendance(db, user).status == "ncns"


def test_reprocess_keeps_excused_point_when_status_unchanged(db, create_user, create_schedule):
    user = create_user("Maria", "Santos")
    create_schedule(user)
    _upload(db, scan_log(("1", "7", "Maria Santos", "2024-03-01 22:20:00")))
    point = db.query(AttendancePoint).filter(AttendancePoint.user_id == user.id).one()
    AttendancePointService(db).excuse(point.id, "Typhoon", actor_id=user.id)

    AttendanceProcessor(db).reprocess(date(2024, 3, 1), date(2024, 3, 1), [user.id])

    point = db.query(AttendancePoint).filter(AttendancePoint.user_id == user.id).one()
    assert point.is_excused is True
    assert point.attendance_id == _attendance(db, user).id


def test_approved_leave_turns_ncns_into_on_leave(db, create_user, create_schedule):
    user = create_user("Pedro", "Reyes")
    create_schedule(user, time_in=time(8, 0), time_out=time(17, 0), shift_type="morning")
    AttendanceProcessor(db).reprocess(date(2024, 3, 4), date(2024, 3, 5), [user.id])
    assert _attendance(db, user, date(2024, 3, 4)).status == "ncns"

    leave = LeaveRequest(user_id=user.id, start_date=date(2024, 3, 4), end_date=date(2024, 3, 5),
                         leave_type="sick", status="pending", has_supporting_document=True)
    db.add(leave)
    db.commit()

    result = LeaveService(db).approve(leave.id, actor_id=user.id)

    assert result["attendances_updated"] == 2
    assert _attendance(db, user, date(2024, 3, 4)).status == "on_leave"
    assert db.query(AttendancePoint).filter(AttendancePoint.user_id == user.id).count() == 0

    # 重新處理時請假仍然有效
    AttendanceProcessor(db).reprocess(date(2024, 3, 4), date(2024, 3, 4), [user.id])
    assert _attendance(db, user, date(2024, 3, 4)).status == "on_leave"


def test_leave_with_document_excuses_remaining_points(db, create_user, create_schedule):
    user = create_user("Maria", "Santos")
    create_schedule(user)
    _upload(db, scan_log(("1", "7", "Maria Santos", "2024-03-01 22:20:00")))
    leave = LeaveRequest(user_id=user.id, start_date=date(2024, 3, 1), end_date=date(2024, 3, 1),
                         leave_type="emergency", status="pending", has_supporting_document=True)
    db.add(leave)
    db.commit()

    result = LeaveService(db).approve(leave.id, actor_id=user.id)

    assert result["attendances_updated"] == 0
    assert result["points_excused"] == 1
    point = db.query(AttendancePoint).filter(AttendancePoint.user_id == user.id).one()
    assert point.is_excused is True
    assert point.excused_by == user.id
