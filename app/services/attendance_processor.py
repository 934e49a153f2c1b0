"""
Attendance reconciliation: scan upload processing, reprocessing, status
fix-ups and admin verification.

Upload and reprocessing share the same path: load scans and schedule
versions, ShiftGrouper.group(), ShiftClassifier.classify(), then
delete-and-replace Attendance rows. Admin-verified rows are never replaced.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.models.attendance import Attendance
from app.models.attendance_point import AttendancePoint
from app.models.biometric import AttendanceUpload, BiometricRecord
from app.models.leave import LeaveRequest
from app.models.schedule import EmployeeSchedule
from app.models.user import User
from app.schemas.attendance import FixStatusesResult, UploadSummary
from app.schemas.reprocess import ReprocessPreview, ReprocessResult
from app.schemas.scan import ScanEvent
from app.schemas.schedule import ScheduleVersion
from app.schemas.shift import ClassificationResult
from app.services.attendance_point_service import AttendancePointService, violation_signature
from app.services.name_normalizer import RosterIndex
from app.services.scan_parser import ScanLogParser, filter_by_date_range
from app.services.shift_classifier import BIO_DERIVED_STATUSES, ShiftClassifier
from app.services.shift_grouper import ShiftGrouper
from app.utils.datetime_utils import utc_now
from app.utils.validators import DataValidator, ValidationError, sanitize_input

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


def record_to_event(record: BiometricRecord) -> ScanEvent:
    """將已儲存的打卡紀錄轉為 ScanEvent"""
    return ScanEvent(
        employee_key=record.normalized_name,
        device_user_id=record.device_user_id,
        raw_name=record.employee_name,
        timestamp=record.datetime,
        source_device=record.device_no,
        site_id=record.site_id,
        user_id=record.user_id,
        record_id=record.id,
    )


class AttendanceProcessor:
    """出勤核對流程服務"""

    def __init__(self, db: Session):
        self.db = db
        self.validator = DataValidator()
        self.grouper = ShiftGrouper()
        self.classifier = ShiftClassifier()
        self.points = AttendancePointService(db)

    # ------------------------------------------------------------------
    # 上傳處理
    # ------------------------------------------------------------------

    def create_upload(self, date_from: date, date_to: date, site_id: Optional[int] = None,
                      filename: Optional[str] = None, uploaded_by: Optional[int] = None) -> AttendanceUpload:
        """建立上傳紀錄"""
        self.validator.validate_processing_range(date_from, date_to)

        upload = AttendanceUpload(
            site_id=site_id,
            original_filename=filename,
            date_from=date_from,
            date_to=date_to,
            status="pending",
            uploaded_by=uploaded_by,
            unmatched_names_list=[],
        )
        self.db.add(upload)
        self.db.commit()
        self.db.refresh(upload)
        return upload

    def process_upload(self, upload: AttendanceUpload, content) -> UploadSummary:
        """
        處理一份打卡檔。

        解析失敗的行只計數不中斷；對不到名冊的姓名保留為未歸屬紀錄並列在摘要中；
        每位員工在各自的 SAVEPOINT 中核對，單一員工失敗不影響其他員工。

        Args:
            upload: 上傳紀錄
            content: 檔案內容（bytes 或 str）

        Returns:
            UploadSummary
        """
        summary = UploadSummary(upload_id=upload.id, status="processing")

        try:
            upload.status = "processing"
            self.db.flush()

            parsed = ScanLogParser(site_id=upload.site_id).parse(content)
            events = filter_by_date_range(parsed.events, upload.date_from, upload.date_to)
            summary.total_lines = parsed.total_lines
            summary.malformed_lines = parsed.malformed_lines
            summary.total_records = len(events)

            roster = RosterIndex(self.db.query(User).filter(User.is_active == True).all())
            stored, matched_user_ids, unmatched = self.store_records(upload, events, roster)
            summary.stored_records = stored
            summary.matched_employees = len(matched_user_ids)
            summary.unmatched_names = sorted(unmatched)

            user_ids = set(matched_user_ids) | self.scheduled_user_ids(upload.date_from, upload.date_to, upload.site_id)
            result = self.reconcile_users(sorted(user_ids), upload.date_from, upload.date_to, delete_existing=True)
            summary.processed = result.processed
            summary.failed = result.failed
            summary.errors = result.errors

            upload.total_records = summary.total_records
            upload.malformed_lines = summary.malformed_lines
            upload.processed_records = stored
            upload.matched_employees = summary.matched_employees
            upload.unmatched_names = len(summary.unmatched_names)
            upload.unmatched_names_list = summary.unmatched_names
            upload.status = "completed"
            self.db.commit()

            summary.status = upload.status
            summary.message = f"{summary.processed} processed, {summary.failed} failed"
            logger.info(
                f"Upload {upload.id}: {stored} records stored, {summary.matched_employees} employees matched, "
                f"{len(summary.unmatched_names)} unmatched names, {summary.message}"
            )
            return summary

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to process upload {upload.id}: {str(e)}")
            upload.status = "failed"
            upload.error_message = "Processing failed"
            self.db.commit()
            raise ValueError("Failed to process attendance upload")

    def store_records(self, upload: AttendanceUpload, events: Iterable[ScanEvent], roster: RosterIndex):
        """
        儲存打卡紀錄，略過已存在的相同紀錄（同姓名、同時間、同機器）。

        Returns:
            (儲存筆數, 對應到的員工 ID 集合, 未對應姓名集合)
        """
        events = list(events)
        matched_user_ids: Set[int] = set()
        unmatched: Set[str] = set()
        if not events:
            return 0, matched_user_ids, unmatched

        first = min(event.timestamp for event in events)
        last = max(event.timestamp for event in events)
        existing = {
            (row.normalized_name, row.datetime, row.device_no)
            for row in self.db.query(BiometricRecord).filter(
                and_(BiometricRecord.datetime >= first, BiometricRecord.datetime <= last)
            ).all()
        }

        stored = 0
        match_cache: Dict[str, Optional[User]] = {}
        for event in events:
            if event.raw_name not in match_cache:
                match_cache[event.raw_name] = roster.match(event.raw_name)
            user = match_cache[event.raw_name]

            if user is None:
                unmatched.add(event.raw_name)
            else:
                matched_user_ids.add(user.id)

            key = (event.employee_key, event.timestamp, event.source_device)
            if key in existing:
                continue
            existing.add(key)

            self.db.add(BiometricRecord(
                user_id=user.id if user else None,
                attendance_upload_id=upload.id,
                site_id=event.site_id,
                device_no=event.source_device,
                device_user_id=event.device_user_id,
                employee_name=event.raw_name,
                normalized_name=event.employee_key,
                datetime=event.timestamp,
                record_date=event.timestamp.date(),
                record_time=event.timestamp.time(),
            ))
            stored += 1

        if unmatched:
            logger.warning(f"Upload {upload.id}: {len(unmatched)} names did not match the roster")

        self.db.flush()
        return stored, matched_user_ids, unmatched

    def scheduled_user_ids(self, start_date: date, end_date: date, site_id: Optional[int] = None) -> Set[int]:
        """範圍內有生效班表的員工（沒有打卡的員工也要判定缺勤）"""
        query = self.db.query(EmployeeSchedule.user_id).join(User, User.id == EmployeeSchedule.user_id).filter(
            and_(
                User.is_active == True,
                EmployeeSchedule.effective_date <= end_date,
                or_(EmployeeSchedule.end_date == None, EmployeeSchedule.end_date >= start_date),
            )
        )
        if site_id is not None:
            query = query.filter(EmployeeSchedule.site_id == site_id)
        return {row[0] for row in query.distinct().all()}

    # ------------------------------------------------------------------
    # 核對
    # ------------------------------------------------------------------

    def reconcile_users(self, user_ids: List[int], start_date: date, end_date: date,
                        delete_existing: bool = True,
                        progress: Optional[ProgressCallback] = None) -> ReprocessResult:
        """逐一核對員工，每位員工獨立交易，失敗只記錄不中斷"""
        result = ReprocessResult()
        total = len(user_ids)

        for index, user_id in enumerate(user_ids, start=1):
            user = self.db.query(User).filter(User.id == user_id).first()
            try:
                with self.db.begin_nested():
                    detail = self.reconcile_user(user, start_date, end_date, delete_existing)
                self.db.commit()
                result.processed += 1
                result.details.append(detail)

            except Exception as e:
                logger.error(
                    f"Failed to reconcile attendance for user {user_id} ({start_date} to {end_date}): {str(e)}",
                    exc_info=True,
                )
                result.failed += 1
                result.errors.append({
                    "user_id": user_id,
                    "user": user.full_name if user else None,
                    "error": "Reconciliation failed for this employee",
                })

            if progress:
                progress(int(index * 100 / total) if total else 100, f"Processed {index} of {total} employees")

        result.message = f"{result.processed} processed, {result.failed} failed"
        return result

    def load_schedules(self, user_id: int) -> List[ScheduleVersion]:
        schedules = self.db.query(EmployeeSchedule).filter(
            EmployeeSchedule.user_id == user_id
        ).order_by(EmployeeSchedule.effective_date).all()
        return [ScheduleVersion.from_orm(schedule) for schedule in schedules]

    def load_events(self, user_id: int, start_date: date, end_date: date) -> List[ScanEvent]:
        # 前一天晚上到結束日後兩天，涵蓋夜班的跨日打卡
        lower = datetime.combine(start_date - timedelta(days=1), time.min)
        upper = datetime.combine(end_date + timedelta(days=2), time.min)
        records = self.db.query(BiometricRecord).filter(
            and_(
                BiometricRecord.user_id == user_id,
                BiometricRecord.datetime >= lower,
                BiometricRecord.datetime < upper,
            )
        ).order_by(BiometricRecord.datetime).all()
        return [record_to_event(record) for record in records]

    def reconcile_user(self, user: User, start_date: date, end_date: date,
                       delete_existing: bool = True) -> Dict:
        """
        重新核對單一員工在日期範圍內的出勤。

        Args:
            user: 員工
            start_date: 起始班次日期
            end_date: 結束班次日期
            delete_existing: 是否刪除並重建既有（未審核）的出勤紀錄

        Returns:
            處理明細
        """
        if user is None:
            raise ValueError("User not found")

        schedules = self.load_schedules(user.id)
        events = self.load_events(user.id, start_date, end_date)
        leaves = self.db.query(LeaveRequest).filter(
            and_(
                LeaveRequest.user_id == user.id,
                LeaveRequest.status == "approved",
                LeaveRequest.start_date <= end_date,
                LeaveRequest.end_date >= start_date,
            )
        ).all()

        instances = self.grouper.group(events, schedules, start_date, end_date)
        detail = {
            "user_id": user.id,
            "user": user.full_name,
            "created": 0,
            "skipped_verified": 0,
            "skipped_existing": 0,
            "removed_stale": 0,
            "statuses": {},
        }
        points_changed = False
        emitted_dates = {instance.reference_date for instance in instances}

        for instance in instances:
            instance.user_id = user.id
            leave = next((leave for leave in leaves if leave.covers(instance.reference_date)), None)
            if leave is not None:
                instance.leave_request_id = leave.id

            existing = self.db.query(Attendance).filter(
                and_(Attendance.user_id == user.id, Attendance.shift_date == instance.reference_date)
            ).first()

            if existing is not None and existing.admin_verified:
                detail["skipped_verified"] += 1
                continue
            if existing is not None and not delete_existing:
                detail["skipped_existing"] += 1
                continue

            old_signature = violation_signature(existing) if existing is not None else None
            overtime_approved = bool(existing.overtime_approved) if existing is not None else False
            if existing is not None:
                self.db.delete(existing)
                self.db.flush()

            result = self.classifier.classify(instance, overtime_approved=overtime_approved)
            attendance = self._build_attendance(user.id, instance, result, overtime_approved)
            self.db.add(attendance)
            self.db.flush()

            if old_signature != violation_signature(attendance):
                self.points.apply(attendance, recalculate=False)
                points_changed = True
            else:
                self._relink_points(attendance)

            detail["created"] += 1
            detail["statuses"][result.status] = detail["statuses"].get(result.status, 0) + 1

        if delete_existing:
            removed = self._remove_stale_attendances(user.id, start_date, end_date, emitted_dates)
            detail["removed_stale"] = removed
            points_changed = points_changed or removed > 0

        if points_changed:
            self.points.cascade_recalculate(user.id)

        logger.info(
            f"Reconciled user {user.id} {start_date} to {end_date}: {detail['created']} shifts, "
            f"{detail['skipped_verified']} verified skipped, {detail['removed_stale']} stale removed"
        )
        return detail

    def _remove_stale_attendances(self, user_id: int, start_date: date, end_date: date,
                                  emitted_dates: Set[date]) -> int:
        # 新的分組不再產生的日期（班表改為休息日、班表不再涵蓋），連同點數一併刪除；審核過的保留
        stale = self.db.query(Attendance).filter(
            and_(
                Attendance.user_id == user_id,
                Attendance.shift_date >= start_date,
                Attendance.shift_date <= end_date,
                Attendance.admin_verified == False,
            )
        ).all()

        removed = 0
        for attendance in stale:
            if attendance.shift_date in emitted_dates:
                continue
            self.points.remove_for_shift(user_id, attendance.shift_date)
            self.db.delete(attendance)
            removed += 1

        if removed:
            self.db.flush()
            logger.info(f"Removed {removed} stale attendance record(s) for user {user_id}")
        return removed

    @staticmethod
    def _build_attendance(user_id: int, instance, result: ClassificationResult,
                          overtime_approved: bool) -> Attendance:
        schedule = instance.schedule
        return Attendance(
            user_id=user_id,
            employee_schedule_id=schedule.id if schedule else None,
            leave_request_id=instance.leave_request_id,
            shift_date=instance.reference_date,
            scheduled_time_in=instance.scheduled_time_in,
            scheduled_time_out=instance.scheduled_time_out,
            actual_time_in=result.actual_time_in,
            actual_time_out=result.actual_time_out,
            bio_in_site_id=result.bio_in_site_id,
            bio_out_site_id=result.bio_out_site_id,
            status=result.status,
            secondary_status=result.secondary_status,
            tardy_minutes=result.tardy_minutes,
            undertime_minutes=result.undertime_minutes,
            overtime_minutes=result.overtime_minutes,
            total_minutes_worked=result.total_minutes_worked,
            overtime_approved=overtime_approved,
            is_cross_site_bio=result.is_cross_site_bio,
            admin_verified=False,
            warnings=list(result.warnings),
        )

    def _relink_points(self, attendance: Attendance) -> None:
        # 狀態未變時保留原點數（含豁免狀態），只更新關聯
        self.db.query(AttendancePoint).filter(
            and_(
                AttendancePoint.user_id == attendance.user_id,
                AttendancePoint.shift_date == attendance.shift_date,
            )
        ).update({AttendancePoint.attendance_id: attendance.id}, synchronize_session="fetch")

    # ------------------------------------------------------------------
    # 重新處理
    # ------------------------------------------------------------------

    def validate_reprocess_request(self, start_date: date, end_date: date,
                                    user_ids: Optional[List[int]]) -> None:
        self.validator.validate_processing_range(start_date, end_date)
        if user_ids:
            found = {row[0] for row in self.db.query(User.id).filter(User.id.in_(user_ids)).all()}
            unknown = sorted(set(user_ids) - found)
            if unknown:
                raise ValidationError(f"Unknown user ids: {', '.join(str(user_id) for user_id in unknown)}", "user_ids")

    def _reprocess_user_ids(self, start_date: date, end_date: date, user_ids: Optional[List[int]]) -> List[int]:
        if user_ids:
            return sorted(set(user_ids))

        lower = datetime.combine(start_date - timedelta(days=1), time.min)
        upper = datetime.combine(end_date + timedelta(days=2), time.min)
        with_scans = {
            row[0] for row in self.db.query(BiometricRecord.user_id).filter(
                and_(
                    BiometricRecord.user_id != None,
                    BiometricRecord.datetime >= lower,
                    BiometricRecord.datetime < upper,
                )
            ).distinct().all()
        }
        return sorted(with_scans | self.scheduled_user_ids(start_date, end_date))

    def preview_reprocess(self, start_date: date, end_date: date,
                          user_ids: Optional[List[int]] = None) -> ReprocessPreview:
        """預覽重新處理會影響的資料量"""
        self.validate_reprocess_request(start_date, end_date, user_ids)
        target_ids = self._reprocess_user_ids(start_date, end_date, user_ids)

        attendance_query = self.db.query(Attendance).filter(
            and_(Attendance.shift_date >= start_date, Attendance.shift_date <= end_date)
        )
        record_query = self.db.query(BiometricRecord).filter(
            and_(
                BiometricRecord.record_date >= start_date,
                BiometricRecord.record_date <= end_date + timedelta(days=1),
            )
        )
        if target_ids:
            attendance_query = attendance_query.filter(Attendance.user_id.in_(target_ids))
            record_query = record_query.filter(BiometricRecord.user_id.in_(target_ids))

        return ReprocessPreview(
            employees=len(target_ids),
            biometric_records=record_query.count(),
            existing_attendances=attendance_query.count(),
            verified_attendances=attendance_query.filter(Attendance.admin_verified == True).count(),
        )

    def reprocess(self, start_date: date, end_date: date, user_ids: Optional[List[int]] = None,
                  delete_existing: bool = True, progress: Optional[ProgressCallback] = None) -> ReprocessResult:
        """
        重新處理日期範圍內的出勤。

        參數在處理前先驗證；審核過的出勤紀錄一律略過。

        Raises:
            ValidationError: 日期範圍無效或員工不存在
        """
        self.validate_reprocess_request(start_date, end_date, user_ids)
        target_ids = self._reprocess_user_ids(start_date, end_date, user_ids)

        logger.info(f"Reprocessing {len(target_ids)} employees from {start_date} to {end_date}")
        if progress:
            progress(0, f"Reprocessing {len(target_ids)} employees")

        result = self.reconcile_users(target_ids, start_date, end_date, delete_existing, progress)
        logger.info(f"Reprocessing finished: {result.message}")
        return result

    # ------------------------------------------------------------------
    # 狀態修正
    # ------------------------------------------------------------------

    def fix_statuses(self, start_date: date, end_date: date,
                     user_ids: Optional[List[int]] = None) -> FixStatusesResult:
        """
        依已儲存的實際打卡時間重新判定狀態，與即時處理使用同一套規則。

        審核過的紀錄、沒有班表的紀錄以及非打卡推導的狀態（請假、非工作日等）不會變動。
        """
        self.validator.validate_processing_range(start_date, end_date)
        result = FixStatusesResult()

        query = self.db.query(Attendance).filter(
            and_(Attendance.shift_date >= start_date, Attendance.shift_date <= end_date)
        )
        if user_ids:
            query = query.filter(Attendance.user_id.in_(user_ids))

        try:
            touched_users: Set[int] = set()
            for attendance in query.order_by(Attendance.shift_date).all():
                if attendance.admin_verified:
                    result.skipped_verified += 1
                    continue
                if attendance.schedule is None or attendance.scheduled_time_in is None:
                    result.skipped_no_schedule += 1
                    continue
                if attendance.status not in BIO_DERIVED_STATUSES:
                    result.unchanged += 1
                    continue

                evaluated = self.classifier.evaluate(
                    schedule=ScheduleVersion.from_orm(attendance.schedule),
                    scheduled_time_in=attendance.scheduled_time_in,
                    scheduled_time_out=attendance.scheduled_time_out,
                    actual_time_in=attendance.actual_time_in,
                    actual_time_out=attendance.actual_time_out,
                    bio_in_site_id=attendance.bio_in_site_id,
                    bio_out_site_id=attendance.bio_out_site_id,
                    overtime_approved=bool(attendance.overtime_approved),
                )

                old_signature = violation_signature(attendance)
                changed = self._apply_evaluation(attendance, evaluated)
                if not changed:
                    result.unchanged += 1
                    continue

                self.db.flush()
                if old_signature != violation_signature(attendance):
                    self.points.apply(attendance, recalculate=False)
                    touched_users.add(attendance.user_id)
                result.updated += 1

            for user_id in touched_users:
                self.points.cascade_recalculate(user_id)

            self.db.commit()
            logger.info(
                f"Fixed statuses {start_date} to {end_date}: {result.updated} updated, "
                f"{result.skipped_verified} verified skipped"
            )
            return result

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to fix attendance statuses: {str(e)}")
            raise ValueError("Failed to fix attendance statuses")

    @staticmethod
    def _apply_evaluation(attendance: Attendance, evaluated: ClassificationResult) -> bool:
        fields = {
            "status": evaluated.status,
            "secondary_status": evaluated.secondary_status,
            "tardy_minutes": evaluated.tardy_minutes,
            "undertime_minutes": evaluated.undertime_minutes,
            "overtime_minutes": evaluated.overtime_minutes,
            "total_minutes_worked": evaluated.total_minutes_worked,
            "is_cross_site_bio": evaluated.is_cross_site_bio,
        }
        changed = False
        for field, value in fields.items():
            if getattr(attendance, field) != value:
                setattr(attendance, field, value)
                changed = True
        return changed

    # ------------------------------------------------------------------
    # 人工審核
    # ------------------------------------------------------------------

    def verify(self, attendance_id: int, actor_id: int, status: Optional[str] = None,
               secondary_status: Optional[str] = None, overtime_approved: Optional[bool] = None,
               notes: Optional[str] = None) -> Attendance:
        """
        人工審核出勤紀錄。

        審核後的紀錄不會再被重新處理或狀態修正覆寫；狀態變更時重建點數。

        Args:
            attendance_id: 出勤紀錄 ID
            actor_id: 審核者 ID
            status: 新的主要狀態（可選）
            secondary_status: 新的次要狀態（可選）
            overtime_approved: 加班核准（可選）
            notes: 備註（可選）

        Returns:
            更新後的出勤紀錄

        Raises:
            ValidationError: 狀態值未知或缺少審核者
            ValueError: 紀錄不存在或更新失敗
        """
        if not actor_id:
            raise ValidationError("Actor is required to verify attendance", "actor_id")
        self.validator.validate_verification(status, secondary_status)

        attendance = self.db.query(Attendance).filter(Attendance.id == attendance_id).first()
        if not attendance:
            raise ValueError("Attendance record not found")

        try:
            old_signature = violation_signature(attendance)

            if status is not None:
                attendance.status = status
            if secondary_status is not None:
                attendance.secondary_status = secondary_status
            if overtime_approved is not None and overtime_approved != attendance.overtime_approved:
                attendance.overtime_approved = overtime_approved
                if attendance.scheduled_time_in and attendance.scheduled_time_out:
                    attendance.total_minutes_worked = self.classifier.total_minutes_worked(
                        attendance.scheduled_time_in, attendance.scheduled_time_out,
                        attendance.actual_time_in, attendance.actual_time_out, overtime_approved,
                    )
            if notes is not None:
                attendance.notes = sanitize_input(notes)

            attendance.admin_verified = True
            attendance.verified_by = actor_id
            attendance.verified_at = utc_now()
            self.db.flush()

            if old_signature != violation_signature(attendance):
                self.points.apply(attendance)

            self.db.commit()
            self.db.refresh(attendance)

            logger.info(f"Attendance {attendance.id} verified by {actor_id} with status {attendance.status}")
            return attendance

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to verify attendance {attendance_id}: {str(e)}")
            raise ValueError("Failed to verify attendance record")

    def list_attendances(self, start_date: Optional[date] = None, end_date: Optional[date] = None,
                         user_id: Optional[int] = None, status: Optional[str] = None,
                         needs_review: Optional[bool] = None):
        """查詢出勤紀錄（回傳 Query，由呼叫端分頁）"""
        query = self.db.query(Attendance)
        if start_date:
            query = query.filter(Attendance.shift_date >= start_date)
        if end_date:
            query = query.filter(Attendance.shift_date <= end_date)
        if user_id:
            query = query.filter(Attendance.user_id == user_id)
        if status:
            query = query.filter(Attendance.status == status)
        if needs_review is True:
            query = query.filter(Attendance.admin_verified == False)
        return query
