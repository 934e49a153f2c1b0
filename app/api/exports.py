"""
Attendance export API routes: CSV downloads, statistics and background export jobs.
"""

import io
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db, get_session_factory
from app.schemas.reprocess import JobAccepted, JobProgress
from app.services.export_service import ExportService
from app.services.job_progress import progress_store, run_export_job
from app.utils.validators import validate_date_range

router = APIRouter(prefix="/exports", tags=["exports"])


class ExportRequest(BaseModel):
    """背景匯出請求"""
    start_date: date
    end_date: date
    user_ids: Optional[List[int]] = None
    site_id: Optional[int] = None


class StatisticRow(BaseModel):
    metric: str
    formula: str
    value: int


def _check_range(start_date: date, end_date: date) -> None:
    if not validate_date_range(start_date, end_date):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date range")


def _download(content: bytes, filename: str, content_type: str) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(content),
        media_type=content_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.get("/attendance", summary="匯出出勤資料")
async def export_attendance(
    start_date: date = Query(..., description="開始日期"),
    end_date: date = Query(..., description="結束日期"),
    user_ids: Optional[List[int]] = Query(None, description="員工ID篩選"),
    site_id: Optional[int] = Query(None, description="站點篩選"),
    db: Session = Depends(get_db)
):
    """匯出固定欄位的出勤資料表（CSV）。"""
    try:
        _check_range(start_date, end_date)
        content, filename, content_type = ExportService(db).export_attendance(start_date, end_date, user_ids, site_id)
        return _download(content, filename, content_type)

    except HTTPException:
        raise
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to export attendance"
        )


@router.get("/attendance/statistics", summary="出勤統計表")
async def export_attendance_statistics(
    start_date: date = Query(..., description="開始日期"),
    end_date: date = Query(..., description="結束日期"),
    user_ids: Optional[List[int]] = Query(None, description="員工ID篩選"),
    site_id: Optional[int] = Query(None, description="站點篩選"),
    download: bool = Query(False, description="以 CSV 下載"),
    db: Session = Depends(get_db)
):
    """
    出勤統計表。

    - 每一列包含引用資料表欄位的公式與計算值
    - download=true 時以 CSV 下載
    """
    try:
        _check_range(start_date, end_date)
        content, filename, stats = ExportService(db).export_statistics(start_date, end_date, user_ids, site_id)
        if download:
            return _download(content, filename, "text/csv")

        return [
            StatisticRow(metric=row["Metric"], formula=row["Formula"], value=row["Value"])
            for row in stats
        ]

    except HTTPException:
        raise
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to export attendance statistics"
        )


@router.post("/jobs", response_model=JobAccepted, status_code=status.HTTP_202_ACCEPTED, summary="建立背景匯出工作")
async def start_export_job(
    export_data: ExportRequest,
    background_tasks: BackgroundTasks,
    session_factory=Depends(get_session_factory)
):
    """大量資料的匯出排入背景執行，完成後由進度的 download_url 下載。"""
    _check_range(export_data.start_date, export_data.end_date)

    job_id = progress_store.create()
    background_tasks.add_task(
        run_export_job,
        job_id,
        export_data.start_date,
        export_data.end_date,
        export_data.user_ids,
        export_data.site_id,
        progress_store,
        session_factory,
    )
    return JobAccepted(job_id=job_id, progress_url=f"{settings.API_PREFIX}/exports/jobs/{job_id}")


@router.get("/jobs/{job_id}", response_model=JobProgress, summary="查詢匯出進度")
async def get_export_job(job_id: str):
    progress = progress_store.get(job_id)
    if progress is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return progress


@router.get("/jobs/{job_id}/download", summary="下載匯出檔案")
async def download_export(job_id: str):
    stored = progress_store.get_file(job_id)
    if stored is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Export file not found")

    content, filename, content_type = stored
    return _download(content, filename, content_type)
