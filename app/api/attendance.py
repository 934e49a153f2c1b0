"""
Attendance API routes: biometric uploads, attendance listing, manual verification and status fixes.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy import desc
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.models.attendance import Attendance
from app.schemas.attendance import (
    AttendanceListResponse,
    AttendanceResponse,
    AttendanceStatus,
    AttendanceVerifyRequest,
    FixStatusesRequest,
    FixStatusesResult,
    UploadSummary,
)
from app.services.attendance_processor import AttendanceProcessor
from app.utils.validators import (
    ValidationError,
    validate_file_extension,
    validate_file_size,
    validate_pagination_params,
)

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post("/uploads", response_model=UploadSummary, summary="上傳打卡機檔案")
async def upload_biometric_file(
    file: UploadFile = File(..., description="打卡機匯出的 tab 分隔檔"),
    date_from: date = Form(..., description="處理起始日期"),
    date_to: date = Form(..., description="處理結束日期"),
    site_id: Optional[int] = Form(None, description="打卡機所在站點"),
    uploaded_by: Optional[int] = Form(None, description="上傳者 ID"),
    db: Session = Depends(get_db)
):
    """
    上傳並處理一份打卡機檔案。

    - 解析失敗的行只計數，不中斷處理
    - 對不到員工的姓名列在 unmatched_names
    - 單一員工處理失敗不影響其他員工
    """
    try:
        if not validate_file_extension(file.filename or "", settings.ALLOWED_FILE_EXTENSIONS):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File type not allowed. Allowed: {', '.join(settings.ALLOWED_FILE_EXTENSIONS)}"
            )

        content = await file.read()
        if not validate_file_size(len(content), settings.MAX_FILE_SIZE):
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail="File is too large"
            )

        processor = AttendanceProcessor(db)
        upload = processor.create_upload(date_from, date_to, site_id, file.filename, uploaded_by)
        return processor.process_upload(upload, content)

    except HTTPException:
        raise
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process attendance upload"
        )


@router.get("/", response_model=AttendanceListResponse, summary="取得出勤紀錄列表")
async def get_attendances(
    skip: int = Query(0, ge=0, description="跳過的記錄數"),
    limit: int = Query(100, ge=1, le=1000, description="返回的記錄數"),
    start_date: Optional[date] = Query(None, description="開始日期"),
    end_date: Optional[date] = Query(None, description="結束日期"),
    user_id: Optional[int] = Query(None, description="員工ID篩選"),
    attendance_status: Optional[AttendanceStatus] = Query(None, alias="status", description="狀態篩選"),
    needs_review: Optional[bool] = Query(None, description="只列出未審核的紀錄"),
    db: Session = Depends(get_db)
):
    """取得出勤紀錄列表，支援日期、員工與狀態篩選。"""
    try:
        skip, limit = validate_pagination_params(skip, limit)

        query = AttendanceProcessor(db).list_attendances(
            start_date, end_date, user_id,
            attendance_status.value if attendance_status else None,
            needs_review,
        )
        total = query.count()
        records = query.order_by(desc(Attendance.shift_date), Attendance.user_id).offset(skip).limit(limit).all()

        return AttendanceListResponse(
            records=[AttendanceResponse.from_orm(record) for record in records],
            total=total,
            skip=skip,
            limit=limit
        )

    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get attendance records"
        )


@router.post("/{attendance_id}/verify", response_model=AttendanceResponse, summary="人工審核出勤紀錄")
async def verify_attendance(
    attendance_id: int,
    verify_data: AttendanceVerifyRequest,
    db: Session = Depends(get_db)
):
    """
    人工審核出勤紀錄。

    - 審核後的紀錄不會被重新處理或狀態修正覆寫
    - 狀態變更時重新計算點數
    """
    try:
        attendance = AttendanceProcessor(db).verify(
            attendance_id,
            actor_id=verify_data.actor_id,
            status=verify_data.status.value if verify_data.status else None,
            secondary_status=verify_data.secondary_status.value if verify_data.secondary_status else None,
            overtime_approved=verify_data.overtime_approved,
            notes=verify_data.notes,
        )
        return AttendanceResponse.from_orm(attendance)

    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except ValueError as e:
        if "not found" in str(e):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to verify attendance record"
        )


@router.post("/fix-statuses", response_model=FixStatusesResult, summary="依既有打卡時間修正狀態")
async def fix_attendance_statuses(
    fix_data: FixStatusesRequest,
    db: Session = Depends(get_db)
):
    """以目前的判定規則重新計算既有紀錄的狀態；審核過的紀錄不變。"""
    try:
        return AttendanceProcessor(db).fix_statuses(fix_data.start_date, fix_data.end_date, fix_data.user_ids)

    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fix attendance statuses"
        )
