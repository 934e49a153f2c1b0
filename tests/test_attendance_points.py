from datetime import date, datetime
from decimal import Decimal

import pytest

from app.models import Attendance, AttendancePoint
from app.services.attendance_point_service import AttendancePointService, determine_violation
from app.utils.validators import ValidationError


def _attendance(db, user, shift_date=date(2024, 3, 1), **fields):
    values = {
        "status": "on_time",
        "scheduled_time_in": datetime.combine(shift_date, datetime.min.time()).replace(hour=8),
        "scheduled_time_out": datetime.combine(shift_date, datetime.min.time()).replace(hour=17),
    }
    values.update(fields)
    attendance = Attendance(user_id=user.id, shift_date=shift_date, **values)
    db.add(attendance)
    db.flush()
    return attendance


def _points(db, user):
    return db.query(AttendancePoint).filter(AttendancePoint.user_id == user.id).all()


def test_tardy_point_values(db, create_user):
    user = create_user("Juan", "Dela Cruz")
    attendance = _attendance(db, user, status="tardy", tardy_minutes=10,
                             actual_time_in=datetime(2024, 3, 1, 8, 10))

    point = AttendancePointService(db).apply(attendance)
    db.commit()

    assert point.point_type == "tardy"
    assert point.points == Decimal("0.25")
    assert point.expires_at == date(2024, 9, 1)
    assert point.expiration_type == "sro"
    assert point.eligible_for_gbro is True
    assert "Tardy" in point.violation_details


def test_status_change_to_on_time_removes_stale_point(db, create_user):
    user = create_user("Juan", "Dela Cruz")
    attendance = _attendance(db, user, status="tardy", tardy_minutes=10)
    service = AttendancePointService(db)
    service.apply(attendance)
    db.commit()
    assert len(_points(db, user)) == 1

    attendance.status = "on_time"
    attendance.tardy_minutes = None
    db.flush()
    assert service.apply(attendance) is None
    db.commit()

    assert _points(db, user) == []


def test_status_change_replaces_point_instead_of_patching(db, create_user):
    user = create_user("Juan", "Dela Cruz")
    attendance = _attendance(db, user, status="tardy", tardy_minutes=10)
    service = AttendancePointService(db)
    first = service.apply(attendance)
    db.commit()
    first_id = first.id

    attendance.status = "half_day_absence"
    attendance.tardy_minutes = 40
    db.flush()
    second = service.apply(attendance)
    db.commit()

    [point] = _points(db, user)
    assert point.id == second.id
    assert point.id != first_id
    assert point.point_type == "half_day_absence"
    assert point.points == Decimal("0.50")


def test_ncns_point_is_whole_day_and_not_gbro_eligible(db, create_user):
    user = create_user("Juan", "Dela Cruz")
    attendance = _attendance(db, user, status="ncns")

    point = AttendancePointService(db).apply(attendance)
    db.commit()

    assert point.point_type == "whole_day_absence"
    assert point.points == Decimal("1.00")
    assert point.expiration_type == "none"
    assert point.eligible_for_gbro is False
    assert point.expires_at == date(2025, 3, 1)


def test_highest_violation_wins(db, create_user):
    user = create_user("Juan", "Dela Cruz")
    attendance = _attendance(db, user, status="tardy", tardy_minutes=5, undertime_minutes=90)

    violation = determine_violation(attendance)

    assert violation.point_type == "undertime_more_than_hour"
    assert violation.points == Decimal("0.50")


def test_small_undertime_gets_quarter_point(db, create_user):
    user = create_user("Juan", "Dela Cruz")
    attendance = _attendance(db, user, status="on_time", undertime_minutes=20)

    violation = determine_violation(attendance)

    assert violation.point_type == "undertime"
    assert violation.points == Decimal("0.25")


def test_excuse_requires_reason_and_actor(db, create_user):
    user = create_user("Juan", "Dela Cruz")
    attendance = _attendance(db, user, status="tardy", tardy_minutes=10)
    service = AttendancePointService(db)
    point = service.apply(attendance)
    db.commit()

    with pytest.raises(ValidationError):
        service.excuse(point.id, "   ", actor_id=1)
    with pytest.raises(ValidationError):
        service.excuse(point.id, "Traffic accident", actor_id=None)

    excused = service.excuse(point.id, "Traffic accident", actor_id=user.id)

    assert excused.is_excused is True
    assert excused.excused_by == user.id
    assert excused.excuse_reason == "Traffic accident"
    assert excused.excused_at is not None

    with pytest.raises(ValueError):
        service.excuse(point.id, "Again", actor_id=user.id)


def test_excuse_unknown_point(db):
    with pytest.raises(ValueError, match="not found"):
        AttendancePointService(db).excuse(999, "reason", actor_id=1)


def test_expire_due_points_rolls_off_single_point_after_clean_period(db, create_user):
    user = create_user("Juan", "Dela Cruz")
    attendance = _attendance(db, user, status="tardy", tardy_minutes=10)
    service = AttendancePointService(db)
    point = service.apply(attendance)
    db.commit()

    assert service.expire_due_points(date(2024, 4, 29)) == 0
    assert service.expire_due_points(date(2024, 4, 30)) == 1

    db.refresh(point)
    assert point.is_expired is True
    assert point.expiration_type == "gbro"
    assert point.expired_at == date(2024, 4, 30)


def test_ncns_point_expires_after_a_year(db, create_user):
    user = create_user("Juan", "Dela Cruz")
    attendance = _attendance(db, user, status="ncns")
    service = AttendancePointService(db)
    point = service.apply(attendance)
    db.commit()

    assert service.expire_due_points(date(2025, 2, 28)) == 0
    assert service.expire_due_points(date(2025, 3, 1)) == 1

    db.refresh(point)
    assert point.is_expired is True
    assert point.expiration_type == "sro"


def test_gbro_rolls_off_after_clean_period(db, create_user):
    user = create_user("Juan", "Dela Cruz")
    service = AttendancePointService(db)
    for day in (1, 2, 3):
        attendance = _attendance(db, user, shift_date=date(2024, 1, day), status="tardy", tardy_minutes=10)
        service.apply(attendance, recalculate=False)
    db.commit()

    rolled = service.cascade_recalculate(user.id, as_of=date(2024, 3, 10))
    db.commit()

    points = sorted(_points(db, user), key=lambda point: point.shift_date)
    assert rolled == 2
    assert [point.expiration_type for point in points] == ["sro", "gbro", "gbro"]
    assert points[1].gbro_applied_at == date(2024, 3, 3)
    assert points[0].is_expired is False
    assert points[0].gbro_expires_at == date(2024, 5, 2)


def test_excusing_a_point_replays_gbro(db, create_user):
    user = create_user("Juan", "Dela Cruz")
    service = AttendancePointService(db)
    created = []
    for day in (1, 2, 3):
        attendance = _attendance(db, user, shift_date=date(2024, 1, day), status="tardy", tardy_minutes=10)
        created.append(service.apply(attendance, recalculate=False))
    db.commit()
    service.cascade_recalculate(user.id, as_of=date(2024, 3, 10))
    db.commit()

    # 豁免仍有效的最舊點數後，重播結果不變
    service.excuse(created[0].id, "Medical certificate", actor_id=user.id)

    points = sorted(_points(db, user), key=lambda point: point.shift_date)
    assert points[0].is_excused is True
    assert [point.expiration_type for point in points[1:]] == ["gbro", "gbro"]
