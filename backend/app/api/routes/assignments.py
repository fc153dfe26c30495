from collections.abc import Iterable, Sequence

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_assignment_policy, get_current_user, get_db, require_roles
from app.models.assignment import Assignment, SubAssignment
from app.models.course import Course
from app.models.instructor import Instructor
from app.models.period import Program, Semester
from app.models.user import User, UserRole
from app.schemas.assignment import (
    AssignmentOut,
    AutoAssignmentRequest,
    AutoAssignmentResponse,
    BulkAssignmentResponse,
    BulkManualRequest,
    DeletedSubAssignmentOut,
    DeleteSubAssignmentResponse,
    ErrorItemOut,
    ManualAssignmentRequest,
    RowResultOut,
    SubAssignmentOut,
    SubAssignmentUpdate,
    UnfilledSlotOut,
)
from app.schemas.period import resolve_semester
from app.services.assignment_scheduler import AssignmentScheduler, AutomaticAssignmentResult, RowResult
from app.services.assignment_store import AssignmentStore, SubAssignmentChanges
from app.services.conflict_service import Candidate
from app.services.policy import AssignmentPolicy, Period
from app.services.preference_matcher import Slot

router = APIRouter()

ASSIGNMENT_ROLES = (UserRole.head_of_faculty, UserRole.chair_head, UserRole.coc)
COC_SCOPE = "COC"


def _period(year: int, semester: Semester | None, program: Program) -> Period:
    try:
        resolved = resolve_semester(program, semester)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return Period(year=year, semester=resolved, program=program)


def _scope(assigned_by: str | None, policy: AssignmentPolicy) -> list[str] | None:
    if assigned_by is None:
        return None
    if assigned_by == COC_SCOPE and policy.coc_chairs:
        return list(policy.coc_chairs)
    return [assigned_by]


def fallback_reason(sub: SubAssignment) -> str:
    if sub.assignment_reason:
        return sub.assignment_reason
    if sub.preference_rank is not None:
        return f"Listed this course as preference #{sub.preference_rank}."
    return "Assigned based on availability and workload."


class _Names:
    """Instructor and course display names for a batch of sub-assignments."""

    def __init__(self, db: Session, subs: Iterable[SubAssignment]) -> None:
        subs = list(subs)
        instructor_ids = {sub.instructor_id for sub in subs}
        course_ids = {sub.course_id for sub in subs}
        self.instructors = (
            dict(db.execute(select(Instructor.id, Instructor.name).where(Instructor.id.in_(instructor_ids))).all())
            if instructor_ids
            else {}
        )
        self.courses = (
            {row.id: row for row in db.execute(select(Course.id, Course.code, Course.name).where(Course.id.in_(course_ids)))}
            if course_ids
            else {}
        )

    def sub_out(self, sub: SubAssignment) -> SubAssignmentOut:
        course = self.courses.get(sub.course_id)
        return SubAssignmentOut(
            id=sub.id,
            assignmentId=sub.assignment_id,
            instructorId=sub.instructor_id,
            instructorName=self.instructors.get(sub.instructor_id),
            courseId=sub.course_id,
            courseCode=course.code if course is not None else None,
            courseName=course.name if course is not None else None,
            section=sub.section,
            labDivision=sub.lab_division,
            workloadHours=sub.workload_hours,
            preferenceRank=sub.preference_rank,
            assignmentReason=fallback_reason(sub),
            year=sub.year,
            semester=sub.semester,
            program=sub.program,
            assignedBy=sub.assigned_by,
        )


def aggregates_out(db: Session, aggregates: Sequence[Assignment]) -> list[AssignmentOut]:
    names = _Names(db, (sub for aggregate in aggregates for sub in aggregate.sub_assignments))
    return [
        AssignmentOut(
            id=aggregate.id,
            year=aggregate.year,
            semester=aggregate.semester,
            program=aggregate.program,
            assignedBy=aggregate.assigned_by,
            createdAt=aggregate.created_at,
            subAssignments=[names.sub_out(sub) for sub in aggregate.sub_assignments],
        )
        for aggregate in aggregates
    ]


def bulk_response(db: Session, results: Sequence[RowResult]) -> JSONResponse:
    names = _Names(db, (result.sub_assignment for result in results if result.sub_assignment is not None))
    items: list[RowResultOut] = []
    for result in results:
        candidate = result.candidate
        item = RowResultOut(
            index=result.index,
            status="assigned" if result.ok else "failed",
            instructorId=candidate.instructor_id,
            courseId=candidate.course_id,
            section=candidate.section,
        )
        if result.sub_assignment is not None:
            item.subAssignment = names.sub_out(result.sub_assignment)
        if result.error is not None:
            item.error = ErrorItemOut(**result.error.as_dict())
        items.append(item)

    assigned = sum(1 for result in results if result.ok)
    body = BulkAssignmentResponse(results=items, assigned=assigned, failed=len(results) - assigned)
    status_code = status.HTTP_201_CREATED if assigned else status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def automatic_response(db: Session, result: AutomaticAssignmentResult) -> AutoAssignmentResponse:
    names = _Names(db, result.assignments)
    return AutoAssignmentResponse(
        year=result.period.year,
        semester=result.period.semester,
        program=result.period.program,
        assignedBy=result.assigned_by,
        assigned=[names.sub_out(sub) for sub in result.assignments],
        unfilled=[
            UnfilledSlotOut(
                courseId=item.slot.course_id,
                section=item.slot.section,
                labDivision=item.slot.lab_division,
                reason=item.reason,
                rejections=item.rejections,
            )
            for item in result.unfilled
        ],
        unknownInstructors=result.unknown_instructors,
    )


def _run_bulk(
    payload: BulkManualRequest,
    program: Program,
    current_user: User,
    policy: AssignmentPolicy,
    db: Session,
) -> JSONResponse:
    period = _period(payload.year, payload.semester, program)
    rows = [
        Candidate(
            instructor_id=row.instructorId,
            course_id=row.courseId,
            section=row.section,
            period=period,
            lab_division=row.labDivision,
            workload_override=row.workload,
        )
        for row in payload.assignments
    ]
    results = AssignmentScheduler(db, policy).assign_bulk(
        rows,
        assigned_by=payload.assignedBy,
        actor=current_user,
        reasons=[row.assignmentReason for row in payload.assignments],
    )
    return bulk_response(db, results)


def _run_automatic(
    payload: AutoAssignmentRequest,
    program: Program,
    current_user: User,
    policy: AssignmentPolicy,
    db: Session,
) -> AutoAssignmentResponse:
    period = _period(payload.year, payload.semester, program)
    slots = [Slot(course_id=item.courseId, section=item.section, lab_division=item.labDivision) for item in payload.courses]
    result = AssignmentScheduler(db, policy).assign_automatic(
        period,
        assigned_by=payload.assignedBy,
        instructor_ids=payload.instructors,
        slots=slots,
        actor=current_user,
    )
    return automatic_response(db, result)


@router.get("/", response_model=list[AssignmentOut])
def list_assignments(
    current_user: User = Depends(get_current_user),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> list[AssignmentOut]:
    return aggregates_out(db, AssignmentStore(db, policy).list_aggregates())


@router.post("/", response_model=SubAssignmentOut, status_code=status.HTTP_201_CREATED)
def create_manual_assignment(
    payload: ManualAssignmentRequest,
    current_user: User = Depends(require_roles(*ASSIGNMENT_ROLES)),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> SubAssignmentOut:
    candidate = Candidate(
        instructor_id=payload.instructorId,
        course_id=payload.courseId,
        section=payload.section,
        period=Period(year=payload.year, semester=payload.semester, program=payload.program),
        lab_division=payload.labDivision,
        workload_override=payload.workload,
    )
    sub = AssignmentScheduler(db, policy).assign_manual(
        candidate,
        assigned_by=payload.assignedBy,
        actor=current_user,
        reason=payload.assignmentReason,
    )
    return _Names(db, [sub]).sub_out(sub)


@router.post("/manual", response_model=BulkAssignmentResponse, status_code=status.HTTP_201_CREATED)
def create_bulk_manual_assignments(
    payload: BulkManualRequest,
    current_user: User = Depends(require_roles(*ASSIGNMENT_ROLES)),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> JSONResponse:
    if payload.program is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="program is required")
    return _run_bulk(payload, payload.program, current_user, policy, db)


@router.post("/common/manual", response_model=BulkAssignmentResponse, status_code=status.HTTP_201_CREATED)
def create_common_manual_assignments(
    payload: BulkManualRequest,
    current_user: User = Depends(require_roles(*ASSIGNMENT_ROLES)),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> JSONResponse:
    return _run_bulk(payload, Program.common, current_user, policy, db)


@router.post("/extension/manual", response_model=BulkAssignmentResponse, status_code=status.HTTP_201_CREATED)
def create_extension_manual_assignments(
    payload: BulkManualRequest,
    current_user: User = Depends(require_roles(*ASSIGNMENT_ROLES)),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> JSONResponse:
    return _run_bulk(payload, Program.extension, current_user, policy, db)


@router.post("/auto", response_model=AutoAssignmentResponse)
def run_regular_automatic_assignment(
    payload: AutoAssignmentRequest,
    current_user: User = Depends(require_roles(*ASSIGNMENT_ROLES)),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> AutoAssignmentResponse:
    return _run_automatic(payload, Program.regular, current_user, policy, db)


@router.post("/auto/common", response_model=AutoAssignmentResponse)
def run_common_automatic_assignment(
    payload: AutoAssignmentRequest,
    current_user: User = Depends(require_roles(*ASSIGNMENT_ROLES)),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> AutoAssignmentResponse:
    return _run_automatic(payload, Program.common, current_user, policy, db)


@router.post("/auto/extension", response_model=AutoAssignmentResponse)
def run_extension_automatic_assignment(
    payload: AutoAssignmentRequest,
    current_user: User = Depends(require_roles(*ASSIGNMENT_ROLES)),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> AutoAssignmentResponse:
    return _run_automatic(payload, Program.extension, current_user, policy, db)


@router.post("/auto/summer", response_model=AutoAssignmentResponse)
def run_summer_automatic_assignment(
    payload: AutoAssignmentRequest,
    current_user: User = Depends(require_roles(*ASSIGNMENT_ROLES)),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> AutoAssignmentResponse:
    return _run_automatic(payload, Program.summer, current_user, policy, db)


@router.get("/automatic", response_model=list[AssignmentOut])
def list_scoped_assignments(
    year: int | None = Query(default=None),
    semester: Semester | None = Query(default=None),
    program: Program | None = Query(default=None),
    assigned_by: str | None = Query(default=None, alias="assignedBy"),
    current_user: User = Depends(get_current_user),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> list[AssignmentOut]:
    aggregates = AssignmentStore(db, policy).list_aggregates(
        year=year,
        semester=semester,
        program=program,
        assigned_by=_scope(assigned_by, policy),
    )
    return aggregates_out(db, aggregates)


@router.put("/sub/{parent_id}/{sub_id}", response_model=SubAssignmentOut)
def update_sub_assignment(
    parent_id: str,
    sub_id: str,
    payload: SubAssignmentUpdate,
    current_user: User = Depends(require_roles(*ASSIGNMENT_ROLES)),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> SubAssignmentOut:
    changes = SubAssignmentChanges(
        instructor_id=payload.instructorId,
        course_id=payload.courseId,
        section=payload.section.strip() if payload.section else None,
        lab_division=payload.labDivision,
        workload=payload.workload,
        assignment_reason=payload.assignmentReason,
    )
    sub = AssignmentStore(db, policy).edit_sub_assignment(parent_id, sub_id, changes, actor=current_user)
    return _Names(db, [sub]).sub_out(sub)


@router.delete("/sub/{parent_id}/{sub_id}", response_model=DeleteSubAssignmentResponse)
def delete_sub_assignment(
    parent_id: str,
    sub_id: str,
    current_user: User = Depends(require_roles(*ASSIGNMENT_ROLES)),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> DeleteSubAssignmentResponse:
    outcome = AssignmentStore(db, policy).delete_sub_assignment(parent_id, sub_id, actor=current_user)
    removed = outcome["deleted"]
    return DeleteSubAssignmentResponse(
        deleted=DeletedSubAssignmentOut(
            id=removed["id"],
            assignmentId=removed["assignment_id"],
            instructorId=removed["instructor_id"],
            courseId=removed["course_id"],
            section=removed["section"],
            workloadHours=removed["workload_hours"],
        ),
        aggregatePruned=outcome["aggregate_pruned"],
    )


@router.get("/get/{instructor_id}", response_model=list[SubAssignmentOut])
def list_instructor_assignments(
    instructor_id: str,
    current_user: User = Depends(get_current_user),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> list[SubAssignmentOut]:
    if db.get(Instructor, instructor_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Instructor not found")
    subs = AssignmentStore(db, policy).sub_assignments_for_instructor(instructor_id)
    names = _Names(db, subs)
    return [names.sub_out(sub) for sub in subs]


@router.get("/chair/{chair_id}", response_model=list[AssignmentOut])
def list_chair_assignments(
    chair_id: str,
    year: int | None = Query(default=None),
    semester: Semester | None = Query(default=None),
    program: Program | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> list[AssignmentOut]:
    aggregates = AssignmentStore(db, policy).list_aggregates(
        year=year,
        semester=semester,
        program=program,
        assigned_by=_scope(chair_id, policy),
    )
    return aggregates_out(db, aggregates)
