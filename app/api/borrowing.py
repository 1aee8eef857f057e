from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional

from app.core.config import settings
from app.core.database import get_db
from app.core.security import require_role
from app.models.models import BorrowingStatus, Role, User
from app.schemas import schemas
from app.services.borrowing import BorrowingWorkflow
from app.services.result import Result

router = APIRouter(prefix="/book-borrowing", tags=["book-borrowing"])


def get_workflow(db: Session = Depends(get_db)) -> BorrowingWorkflow:
    return BorrowingWorkflow(db, admin_account_id=settings.admin_account_id)


def _unwrap(result: Result):
    if not result.is_success:
        raise HTTPException(status_code=result.status_code, detail=result.message)
    return result.value


@router.get("", response_model=schemas.Page[schemas.BorrowingOut])
def list_borrowing_requests(page_index: int = 1, page_size: int = 10,
                            status: Optional[BorrowingStatus] = None,
                            workflow: BorrowingWorkflow = Depends(get_workflow),
                            _: User = Depends(require_role(Role.ADMIN))):
    return workflow.list_requests(page_index, page_size, status)


@router.get("/my-requests", response_model=schemas.Page[schemas.BorrowingOut])
def list_my_borrowing_requests(page_index: int = 1, page_size: int = 10,
                               workflow: BorrowingWorkflow = Depends(get_workflow),
                               current_user: User = Depends(require_role(Role.USER))):
    return _unwrap(workflow.list_user_requests(current_user.id, page_index, page_size))


@router.get("/monthly-count", response_model=int)
def monthly_count(workflow: BorrowingWorkflow = Depends(get_workflow),
                  current_user: User = Depends(require_role(Role.USER))):
    return _unwrap(workflow.monthly_count(current_user.id))


@router.post("", response_model=schemas.RequestBorrowingOut)
def create_borrowing_request(request_in: schemas.BorrowingCreate,
                             workflow: BorrowingWorkflow = Depends(get_workflow),
                             current_user: User = Depends(require_role(Role.USER))):
    return _unwrap(workflow.create_request(current_user.id, request_in.book_ids))


@router.put("/{request_id}/approve", response_model=schemas.RequestBorrowingOut)
def approve_borrowing_request(request_id: int, workflow: BorrowingWorkflow = Depends(get_workflow),
                              current_user: User = Depends(require_role(Role.ADMIN))):
    return _unwrap(workflow.decide_request(request_id, BorrowingStatus.APPROVED, current_user.id))


@router.put("/{request_id}/reject", response_model=schemas.RequestBorrowingOut)
def reject_borrowing_request(request_id: int, workflow: BorrowingWorkflow = Depends(get_workflow),
                             current_user: User = Depends(require_role(Role.ADMIN))):
    return _unwrap(workflow.decide_request(request_id, BorrowingStatus.REJECTED, current_user.id))
