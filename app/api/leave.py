"""
Leave request API routes.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.leave import LeaveApprovalResult, LeaveApproveRequest, LeaveCreate, LeaveResponse
from app.services.leave_service import LeaveService
from app.utils.validators import ValidationError

router = APIRouter(prefix="/leave-requests", tags=["leave"])


@router.post("/", response_model=LeaveResponse, status_code=status.HTTP_201_CREATED, summary="建立請假申請")
async def create_leave_request(
    leave_data: LeaveCreate,
    db: Session = Depends(get_db)
):
    """建立待核准的請假申請。"""
    try:
        if not db.query(User).filter(User.id == leave_data.user_id).first():
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

        leave = LeaveService(db).create(leave_data)
        return LeaveResponse.from_orm(leave)

    except HTTPException:
        raise
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create leave request"
        )


@router.get("/{leave_id}", response_model=LeaveResponse, summary="取得請假申請")
async def get_leave_request(
    leave_id: int,
    db: Session = Depends(get_db)
):
    leave = LeaveService(db).get(leave_id)
    if not leave:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Leave request not found")
    return LeaveResponse.from_orm(leave)


@router.post("/{leave_id}/approve", response_model=LeaveApprovalResult, summary="核准請假")
async def approve_leave_request(
    leave_id: int,
    approve_data: LeaveApproveRequest,
    db: Session = Depends(get_db)
):
    """
    核准請假申請。

    - 期間內未審核的 NCNS 出勤改為請假並移除點數
    - 附證明文件時，期間內其餘有效點數一併豁免
    """
    try:
        result = LeaveService(db).approve(leave_id, approve_data.actor_id)
        return LeaveApprovalResult(
            leave=LeaveResponse.from_orm(result["leave"]),
            attendances_updated=result["attendances_updated"],
            points_excused=result["points_excused"]
        )

    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except ValueError as e:
        if "not found" in str(e):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to approve leave request"
        )
