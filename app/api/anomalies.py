"""
Anomaly detection API routes over stored biometric scans.
"""

from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import and_
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.biometric import BiometricRecord
from app.models.schedule import EmployeeSchedule
from app.schemas.anomaly import AnomalyReport, AnomalyStatistics
from app.schemas.scan import ScanEvent
from app.schemas.schedule import ScheduleVersion
from app.services.anomaly_detector import AnomalyDetector
from app.services.attendance_processor import record_to_event
from app.utils.validators import validate_date_range

router = APIRouter(prefix="/anomalies", tags=["anomalies"])


def _load_detection_inputs(db: Session, start_date: date, end_date: date,
                           site_id: Optional[int]) -> Tuple[List[ScanEvent], Dict[str, List[ScheduleVersion]]]:
    query = db.query(BiometricRecord).filter(
        and_(
            BiometricRecord.datetime >= datetime.combine(start_date, time.min),
            BiometricRecord.datetime < datetime.combine(end_date + timedelta(days=1), time.min),
        )
    )
    if site_id:
        query = query.filter(BiometricRecord.site_id == site_id)
    records = query.order_by(BiometricRecord.datetime).all()

    # 只有對應到員工的姓名才有班表可參考
    keys_by_user: Dict[int, str] = {}
    for record in records:
        if record.user_id is not None:
            keys_by_user.setdefault(record.user_id, record.normalized_name)

    schedules: Dict[str, List[ScheduleVersion]] = {}
    if keys_by_user:
        rows = db.query(EmployeeSchedule).filter(EmployeeSchedule.user_id.in_(list(keys_by_user))).all()
        for row in rows:
            schedules.setdefault(keys_by_user[row.user_id], []).append(ScheduleVersion.from_orm(row))

    return [record_to_event(record) for record in records], schedules


def _run_detection(db: Session, start_date: date, end_date: date, site_id: Optional[int]) -> AnomalyReport:
    if not validate_date_range(start_date, end_date):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date range")

    events, schedules = _load_detection_inputs(db, start_date, end_date, site_id)
    detector = AnomalyDetector()
    results = detector.detect(events, start_date, end_date, schedules)
    return AnomalyReport(
        start_date=start_date,
        end_date=end_date,
        anomalies=results,
        statistics=detector.statistics(results),
    )


@router.get("/", response_model=AnomalyReport, summary="偵測打卡異常")
async def detect_anomalies(
    start_date: date = Query(..., description="開始日期"),
    end_date: date = Query(..., description="結束日期"),
    site_id: Optional[int] = Query(None, description="站點篩選"),
    db: Session = Depends(get_db)
):
    """
    偵測日期範圍內的打卡異常。

    結果只供參考，不會變更任何出勤紀錄。
    """
    try:
        return _run_detection(db, start_date, end_date, site_id)

    except HTTPException:
        raise
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to detect anomalies"
        )


@router.get("/statistics", response_model=AnomalyStatistics, summary="打卡異常統計")
async def anomaly_statistics(
    start_date: date = Query(..., description="開始日期"),
    end_date: date = Query(..., description="結束日期"),
    site_id: Optional[int] = Query(None, description="站點篩選"),
    db: Session = Depends(get_db)
):
    """依類型與嚴重度統計異常數量。"""
    try:
        return _run_detection(db, start_date, end_date, site_id).statistics

    except HTTPException:
        raise
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get anomaly statistics"
        )
