from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles
from app.core.exceptions import ResourceNotFoundError
from app.models.assignment import SubAssignment
from app.models.complaint import Complaint, ComplaintStatus
from app.models.user import User, UserRole
from app.schemas.complaint import ComplaintCreate, ComplaintOut, ComplaintResolve
from app.services.audit import log_activity

router = APIRouter()

REVIEWER_ROLES = (UserRole.head_of_faculty, UserRole.chair_head, UserRole.coc)


def complaint_out(complaint: Complaint) -> ComplaintOut:
    return ComplaintOut(
        id=complaint.id,
        assignmentId=complaint.assignment_id,
        subAssignmentId=complaint.sub_assignment_id,
        submittedBy=complaint.submitted_by,
        reason=complaint.reason,
        status=complaint.status,
        resolveNote=complaint.resolve_note,
        resolvedBy=complaint.resolved_by,
        resolvedAt=complaint.resolved_at,
        submittedAt=complaint.submitted_at,
    )


@router.post("/", response_model=ComplaintOut, status_code=status.HTTP_201_CREATED)
def submit_complaint(
    payload: ComplaintCreate,
    current_user: User = Depends(require_roles(UserRole.instructor)),
    db: Session = Depends(get_db),
) -> ComplaintOut:
    sub = db.get(SubAssignment, payload.subAssignmentId)
    if sub is None or sub.assignment_id != payload.assignmentId:
        raise ResourceNotFoundError("SubAssignment", payload.subAssignmentId)

    complaint = Complaint(
        assignment_id=payload.assignmentId,
        sub_assignment_id=payload.subAssignmentId,
        submitted_by=current_user.id,
        reason=payload.reason,
        status=ComplaintStatus.pending,
    )
    db.add(complaint)
    db.commit()
    db.refresh(complaint)
    return complaint_out(complaint)


@router.get("/", response_model=list[ComplaintOut])
def list_complaints(
    status_filter: ComplaintStatus | None = Query(default=None, alias="status"),
    current_user: User = Depends(require_roles(*REVIEWER_ROLES)),
    db: Session = Depends(get_db),
) -> list[ComplaintOut]:
    statement = select(Complaint).order_by(Complaint.submitted_at.desc())
    if status_filter is not None:
        statement = statement.where(Complaint.status == status_filter)
    return [complaint_out(item) for item in db.execute(statement).scalars()]


@router.put("/{complaint_id}/resolve", response_model=ComplaintOut)
def resolve_complaint(
    complaint_id: str,
    payload: ComplaintResolve,
    current_user: User = Depends(require_roles(*REVIEWER_ROLES)),
    db: Session = Depends(get_db),
) -> ComplaintOut:
    complaint = db.get(Complaint, complaint_id)
    if complaint is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Complaint not found")
    if complaint.status != ComplaintStatus.pending:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Complaint has already been closed")

    complaint.status = ComplaintStatus(payload.status)
    complaint.resolve_note = payload.resolveNote
    complaint.resolved_by = current_user.id
    complaint.resolved_at = datetime.now(timezone.utc)
    log_activity(
        db,
        user=current_user,
        action="complaint.closed",
        entity_type="complaint",
        entity_id=complaint.id,
        details={"status": complaint.status.value},
    )
    db.commit()
    db.refresh(complaint)
    return complaint_out(complaint)


@router.delete("/{complaint_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_complaint(
    complaint_id: str,
    current_user: User = Depends(require_roles(*REVIEWER_ROLES)),
    db: Session = Depends(get_db),
) -> None:
    complaint = db.get(Complaint, complaint_id)
    if complaint is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Complaint not found")
    db.delete(complaint)
    db.commit()
