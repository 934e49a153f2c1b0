from datetime import time

from app.config import settings
from app.models import Attendance, AttendancePoint
from factories import scan_log

API = settings.API_PREFIX


def _upload(client, content, filename="scans.txt", date_from="2024-03-01", date_to="2024-03-01"):
    return client.post(
        f"{API}/attendance/uploads",
        files={"file": (filename, content, "text/plain")},
        data={"date_from": date_from, "date_to": date_to},
    )


def _tardy_upload(client, create_user, create_schedule):
    user = create_user("Maria", "Santos")
    create_schedule(user)
    response = _upload(client, scan_log(("1", "7", "Maria Santos", "2024-03-01 22:20:00")))
    assert response.status_code == 200
    return user.id


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_upload_and_list_attendance(client, create_user, create_schedule):
    user = create_user("Juan", "Dela Cruz")
    create_schedule(user, grace=0)
    user_id = user.id
    content = scan_log(
        ("1", "101", "Juan Dela Cruz", "2024-03-01 21:58:00"),
        ("1", "101", "Juan Dela Cruz", "2024-03-02 06:10:00"),
        ("2", "555", "Ghost Employee", "2024-03-01 23:00:00"),
    )

    response = _upload(client, content)

    assert response.status_code == 200
    summary = response.json()
    assert summary["status"] == "completed"
    assert summary["processed"] == 1
    assert summary["unmatched_names"] == ["Ghost Employee"]

    response = client.get(f"{API}/attendance/", params={"user_id": user_id})
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["records"][0]["status"] == "on_time"
    assert body["records"][0]["shift_date"] == "2024-03-01"


def test_upload_rejects_unknown_extension(client):
    response = _upload(client, b"anything", filename="scans.exe")

    assert response.status_code == 400


def test_upload_rejects_inverted_range(client):
    response = _upload(client, scan_log(), date_from="2024-03-05", date_to="2024-03-01")

    assert response.status_code == 400


def test_list_attendance_filters_by_status(client, create_user, create_schedule):
    _tardy_upload(client, create_user, create_schedule)

    tardy = client.get(f"{API}/attendance/", params={"status": "tardy"}).json()
    on_time = client.get(f"{API}/attendance/", params={"status": "on_time"}).json()

    assert tardy["total"] == 1
    assert on_time["total"] == 0


def test_verify_attendance(client, db, create_user, create_schedule):
    user_id = _tardy_upload(client, create_user, create_schedule)
    attendance_id = db.query(Attendance).filter(Attendance.user_id == user_id).one().id

    response = client.post(
        f"{API}/attendance/{attendance_id}/verify",
        json={"actor_id": user_id, "status": "on_time", "notes": "Gate was closed"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "on_time"
    assert body["admin_verified"] is True
    assert body["verified_by"] == user_id

    needs_review = client.get(f"{API}/attendance/", params={"needs_review": True}).json()
    assert needs_review["total"] == 0


def test_verify_unknown_attendance_returns_404(client, create_user):
    user = create_user("Juan", "Dela Cruz")

    response = client.post(f"{API}/attendance/9999/verify", json={"actor_id": user.id, "status": "on_time"})

    assert response.status_code == 404


def test_fix_statuses_endpoint(client, db, create_user, create_schedule):
    user_id = _tardy_upload(client, create_user, create_schedule)
    attendance = db.query(Attendance).filter(Attendance.user_id == user_id).one()
    attendance.status = "half_day_absence"
    db.commit()

    response = client.post(
        f"{API}/attendance/fix-statuses",
        json={"start_date": "2024-03-01", "end_date": "2024-03-01"},
    )

    assert response.status_code == 200
    assert response.json()["updated"] == 1
    db.refresh(attendance)
    assert attendance.status == "tardy"


def test_reprocessing_preview_and_sync_run(client, create_user, create_schedule):
    user_id = _tardy_upload(client, create_user, create_schedule)
    payload = {"start_date": "2024-03-01", "end_date": "2024-03-01", "user_ids": [user_id]}

    preview = client.post(f"{API}/reprocessing/preview", json=payload)
    assert preview.status_code == 200
    assert preview.json()["employees"] == 1
    assert preview.json()["existing_attendances"] == 1

    result = client.post(f"{API}/reprocessing/", json=payload)
    assert result.status_code == 200
    assert result.json()["processed"] == 1
    assert result.json()["failed"] == 0


def test_reprocessing_unknown_user_is_rejected(client):
    response = client.post(
        f"{API}/reprocessing/",
        json={"start_date": "2024-03-01", "end_date": "2024-03-01", "user_ids": [424242]},
    )

    assert response.status_code == 422
    assert "424242" in response.json()["detail"]


def test_reprocessing_job_reports_progress(client, create_user, create_schedule):
    user_id = _tardy_upload(client, create_user, create_schedule)

    response = client.post(
        f"{API}/reprocessing/jobs",
        json={"start_date": "2024-03-01", "end_date": "2024-03-01", "user_ids": [user_id]},
    )

    assert response.status_code == 202
    accepted = response.json()
    # TestClient 在回應後同步執行背景工作
    progress = client.get(accepted["progress_url"])
    assert progress.status_code == 200
    body = progress.json()
    assert body["finished"] is True
    assert body["percent"] == 100
    assert body["result"]["processed"] == 1


def test_unknown_job_returns_404(client):
    assert client.get(f"{API}/reprocessing/jobs/does-not-exist").status_code == 404
    assert client.get(f"{API}/exports/jobs/does-not-exist").status_code == 404


def test_anomaly_detection_endpoints(client, create_user, create_schedule):
    user = create_user("Juan", "Dela Cruz")
    create_schedule(user, time_in=time(8, 0), time_out=time(17, 0), shift_type="morning")
    _upload(client, scan_log(
        ("1", "101", "Juan Dela Cruz", "2024-03-01 08:00:00"),
        ("1", "101", "Juan Dela Cruz", "2024-03-01 08:01:00"),
        ("1", "101", "Juan Dela Cruz", "2024-03-01 08:02:00"),
    ))
    params = {"start_date": "2024-03-01", "end_date": "2024-03-01"}

    report = client.get(f"{API}/anomalies/", params=params)
    assert report.status_code == 200
    assert len(report.json()["anomalies"]["duplicate_scans"]) == 1

    stats = client.get(f"{API}/anomalies/statistics", params=params)
    assert stats.status_code == 200
    assert stats.json()["by_type"]["duplicate_scans"] == 1


def test_anomaly_detection_rejects_inverted_range(client):
    response = client.get(f"{API}/anomalies/", params={"start_date": "2024-03-05", "end_date": "2024-03-01"})

    assert response.status_code == 400


def test_points_list_and_excuse(client, create_user, create_schedule):
    user_id = _tardy_upload(client, create_user, create_schedule)

    listing = client.get(f"{API}/points/", params={"user_id": user_id})
    assert listing.status_code == 200
    body = listing.json()
    assert body["total"] == 1
    assert float(body["active_total"]) == 0.25
    point_id = body["points"][0]["id"]

    missing_reason = client.post(f"{API}/points/{point_id}/excuse", json={"reason": "", "actor_id": user_id})
    assert missing_reason.status_code == 422

    excused = client.post(f"{API}/points/{point_id}/excuse", json={"reason": "Flooded road", "actor_id": user_id})
    assert excused.status_code == 200
    assert excused.json()["is_excused"] is True

    listing = client.get(f"{API}/points/", params={"user_id": user_id}).json()
    assert float(listing["active_total"]) == 0


def test_excuse_unknown_point_returns_404(client, create_user):
    user = create_user("Juan", "Dela Cruz")

    response = client.post(f"{API}/points/9999/excuse", json={"reason": "Typhoon", "actor_id": user.id})

    assert response.status_code == 404


def test_expire_points_with_explicit_date(client, db, create_user, create_schedule):
    user_id = _tardy_upload(client, create_user, create_schedule)

    response = client.post(f"{API}/points/expire", json={"as_of": "2024-04-30"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "as_of": "2024-04-30", "expired": 1}
    point = db.query(AttendancePoint).filter(AttendancePoint.user_id == user_id).one()
    assert point.is_expired is True


def test_recalculate_points(client, create_user, create_schedule):
    user_id = _tardy_upload(client, create_user, create_schedule)

    response = client.post(f"{API}/points/recalculate/{user_id}")
    assert response.status_code == 200
    assert response.json() == {"success": True, "user_id": user_id, "rolled_off": 0}

    assert client.post(f"{API}/points/recalculate/9999").status_code == 404


def test_leave_request_lifecycle(client, create_user, create_schedule):
    user = create_user("Pedro", "Reyes")
    create_schedule(user, time_in=time(8, 0), time_out=time(17, 0), shift_type="morning")
    user_id = user.id
    client.post(f"{API}/reprocessing/", json={"start_date": "2024-03-04", "end_date": "2024-03-04"})

    created = client.post(f"{API}/leave-requests/", json={
        "user_id": user_id,
        "start_date": "2024-03-04",
        "end_date": "2024-03-04",
        "leave_type": "sick",
    })
    assert created.status_code == 201
    leave_id = created.json()["id"]
    assert client.get(f"{API}/leave-requests/{leave_id}").json()["status"] == "pending"

    approved = client.post(f"{API}/leave-requests/{leave_id}/approve", json={"actor_id": user_id})
    assert approved.status_code == 200
    body = approved.json()
    assert body["leave"]["status"] == "approved"
    assert body["attendances_updated"] == 1

    again = client.post(f"{API}/leave-requests/{leave_id}/approve", json={"actor_id": user_id})
    assert again.status_code == 400

    records = client.get(f"{API}/attendance/", params={"user_id": user_id}).json()["records"]
    assert records[0]["status"] == "on_leave"


def test_leave_request_for_unknown_user(client):
    response = client.post(f"{API}/leave-requests/", json={
        "user_id": 9999, "start_date": "2024-03-04", "end_date": "2024-03-04",
    })

    assert response.status_code == 404
    assert client.get(f"{API}/leave-requests/9999").status_code == 404


def test_schedule_versions(client, create_user):
    user = create_user("Juan", "Dela Cruz")
    user_id = user.id
    payload = {
        "user_id": user_id,
        "shift_type": "night",
        "scheduled_time_in": "22:00:00",
        "scheduled_time_out": "06:00:00",
        "work_days": ["monday", "tuesday", "wednesday", "thursday", "friday"],
        "effective_date": "2024-01-01",
    }

    first = client.post(f"{API}/schedules/", json=payload)
    assert first.status_code == 201
    second = client.post(f"{API}/schedules/", json={**payload, "shift_type": "morning",
                                                     "scheduled_time_in": "08:00:00",
                                                     "scheduled_time_out": "17:00:00",
                                                     "effective_date": "2024-03-01"})
    assert second.status_code == 201

    versions = {item["id"]: item for item in client.get(f"{API}/schedules/user/{user_id}").json()}
    old = versions[first.json()["id"]]
    assert old["is_active"] is False
    assert old["end_date"] == "2024-02-29"
    assert versions[second.json()["id"]]["is_active"] is True


def test_schedule_for_unknown_user(client):
    response = client.post(f"{API}/schedules/", json={
        "user_id": 9999,
        "shift_type": "morning",
        "scheduled_time_in": "08:00:00",
        "scheduled_time_out": "17:00:00",
        "work_days": ["monday"],
        "effective_date": "2024-01-01",
    })

    assert response.status_code == 404


def test_export_attendance_csv_and_statistics(client, create_user, create_schedule):
    _tardy_upload(client, create_user, create_schedule)
    params = {"start_date": "2024-03-01", "end_date": "2024-03-01"}

    export = client.get(f"{API}/exports/attendance", params=params)
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "attachment" in export.headers["content-disposition"]
    assert "User ID" in export.text
    assert "tardy" in export.text

    stats = client.get(f"{API}/exports/attendance/statistics", params=params)
    assert stats.status_code == 200
    rows = {row["metric"]: row for row in stats.json()}
    assert rows["Total Records"]["value"] == 1
    assert rows["Status: tardy"]["value"] == 1
    assert rows["Status: tardy"]["formula"] == '=COUNTIF(Attendance!K2:K2,"tardy")'
    assert rows["Total Tardy Minutes"]["value"] == 20

    download = client.get(f"{API}/exports/attendance/statistics", params={**params, "download": True})
    assert download.status_code == 200
    assert "Metric" in download.text


def test_export_job_download(client, create_user, create_schedule):
    _tardy_upload(client, create_user, create_schedule)

    accepted = client.post(f"{API}/exports/jobs", json={"start_date": "2024-03-01", "end_date": "2024-03-01"})
    assert accepted.status_code == 202

    progress = client.get(accepted.json()["progress_url"]).json()
    assert progress["finished"] is True
    assert progress["error"] is None

    download = client.get(progress["download_url"])
    assert download.status_code == 200
    assert "tardy" in download.text


def test_export_rejects_inverted_range(client):
    response = client.get(f"{API}/exports/attendance", params={"start_date": "2024-03-05", "end_date": "2024-03-01"})

    assert response.status_code == 400
