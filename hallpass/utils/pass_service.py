"""
Active-pass service layer.

Guards the central invariant of the app: a student holds at most one pass
with status OUT at a time. The pre-check gives a friendly error; the partial
unique index on passes.student_id (WHERE status = 'out') is what actually
makes the check-then-insert safe against concurrent requests.

Every read goes back to the database; nothing here caches pass state.
"""

from datetime import datetime, time, timedelta, timezone

import pytz
from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from hallpass.errors import AlreadyOutError, NotFoundError, PassError, ValidationError
from hallpass.extensions import db
from hallpass.models import Pass, PassStatus, PassType, School, Student, Teacher
from hallpass.utils.constants import EXPIRING_SOON_MINUTES, PASS_TYPE_LABELS
from hallpass.utils.helpers import format_utc_iso
from hallpass.utils.pass_lifecycle import (
    FORCE_RETURN, RETURN, REVOKE, apply_transition, as_utc, elapsed_minutes,
)


def _utc_now():
    return datetime.now(timezone.utc)


def _naive_utc(dt):
    """Query bounds are compared against naive UTC columns."""
    return as_utc(dt).replace(tzinfo=None)


def _coerce_pass_type(pass_type):
    try:
        return PassType.from_string(pass_type)
    except ValueError:
        raise ValidationError(f"Unknown passType '{pass_type}'.")


def _active_pass_query(student_id):
    return Pass.query.filter_by(student_id=student_id, status=PassStatus.OUT.value)


def _get_pass(pass_id, school_id=None, for_update=False):
    query = Pass.query.filter(Pass.id == pass_id)
    if school_id is not None:
        query = query.filter(Pass.school_id == school_id)
    if for_update:
        query = query.with_for_update()
    hall_pass = query.first()
    if hall_pass is None:
        raise NotFoundError("Pass not found.")
    return hall_pass


def destination_label(hall_pass):
    if hall_pass.custom_reason:
        return hall_pass.custom_reason
    return PASS_TYPE_LABELS.get(hall_pass.pass_type, hall_pass.pass_type.title())


def serialize_pass(hall_pass, now=None):
    """JSON shape for a pass. Open passes report duration relative to now."""
    if hall_pass.is_active:
        duration = elapsed_minutes(hall_pass.issued_at, now or _utc_now())
    else:
        duration = hall_pass.duration or 0

    student = hall_pass.student
    teacher = hall_pass.teacher
    return {
        "id": hall_pass.id,
        "schoolId": hall_pass.school_id,
        "studentId": hall_pass.student_id,
        "teacherId": hall_pass.teacher_id,
        "passType": hall_pass.pass_type,
        "customReason": hall_pass.custom_reason,
        "destination": destination_label(hall_pass),
        "notes": hall_pass.notes,
        "status": hall_pass.status,
        "issuedAt": format_utc_iso(hall_pass.issued_at),
        "returnedAt": format_utc_iso(hall_pass.returned_at),
        "expiresAt": format_utc_iso(hall_pass.expires_at),
        "duration": duration,
        "student": {
            "id": student.id,
            "name": student.full_name,
            "gradeId": student.grade_id,
            "grade": student.grade.name if student.grade else None,
        } if student else None,
        "teacher": {
            "id": teacher.id,
            "name": teacher.name,
        } if teacher else None,
    }


# -------------------- ISSUE --------------------

def get_active_pass_for_student(school_id, student_id):
    return _active_pass_query(student_id).filter(Pass.school_id == school_id).first()


def issue_pass(school_id, student_id, teacher_id, pass_type,
               custom_reason=None, notes=None, expires_in_minutes=None, now=None):
    """
    Create a new OUT pass for a student.

    Raises:
        ValidationError: unknown pass type
        NotFoundError: student or teacher missing or in another school
        AlreadyOutError: the student already has an OUT pass
    """
    pass_type = _coerce_pass_type(pass_type)

    student = db.session.get(Student, student_id)
    if student is None or student.school_id != school_id:
        raise NotFoundError("Student not found.")

    teacher = db.session.get(Teacher, teacher_id)
    if teacher is None or teacher.school_id != school_id:
        raise NotFoundError("Teacher not found.")

    existing = _active_pass_query(student_id).first()
    if existing is not None:
        raise AlreadyOutError(
            f"{student.full_name} is already out on a pass.", existing_pass=existing
        )

    now = now or _utc_now()
    hall_pass = Pass(
        school_id=school_id,
        student_id=student_id,
        teacher_id=teacher_id,
        pass_type=pass_type.value,
        custom_reason=custom_reason,
        notes=notes,
        status=PassStatus.OUT.value,
        issued_at=now,
        duration=0,
        expires_at=now + timedelta(minutes=expires_in_minutes) if expires_in_minutes else None,
    )
    db.session.add(hall_pass)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        # Lost the race against a concurrent issue for the same student
        existing = _active_pass_query(student_id).first()
        if existing is None:
            raise
        current_app.logger.warning(
            f"Concurrent pass issue for student {student_id} rejected by unique index"
        )
        raise AlreadyOutError(
            f"{student.full_name} is already out on a pass.", existing_pass=existing
        )

    current_app.logger.info(
        f"Issued pass {hall_pass.id} ({pass_type.value}) to student {student_id} "
        f"by teacher {teacher_id} in school {school_id}"
    )
    return hall_pass


# -------------------- TRANSITIONS --------------------

def return_pass(pass_id, school_id=None, now=None):
    """
    Mark a pass as returned.

    A second return raises AlreadyReturnedError and leaves returned_at and
    duration exactly as the first return set them.
    """
    now = now or _utc_now()
    hall_pass = _get_pass(pass_id, school_id, for_update=True)
    try:
        apply_transition(hall_pass, RETURN, now=now)
    except PassError:
        db.session.rollback()
        raise
    db.session.commit()
    current_app.logger.info(
        f"Returned pass {hall_pass.id} for student {hall_pass.student_id} "
        f"after {hall_pass.duration} min"
    )
    return hall_pass


def revoke_pass(pass_id, school_id=None):
    hall_pass = _get_pass(pass_id, school_id, for_update=True)
    try:
        apply_transition(hall_pass, REVOKE)
    except PassError:
        db.session.rollback()
        raise
    db.session.commit()
    current_app.logger.info(f"Revoked pass {hall_pass.id} for student {hall_pass.student_id}")
    return hall_pass


def return_all_active_passes(school_id, now=None):
    """Force-return every OUT pass in a school. Returns how many were closed."""
    now = now or _utc_now()
    active = (
        Pass.query
        .filter_by(school_id=school_id, status=PassStatus.OUT.value)
        .with_for_update()
        .all()
    )
    for hall_pass in active:
        apply_transition(hall_pass, FORCE_RETURN, now=now)
    db.session.commit()
    return len(active)


def delete_pass(pass_id, school_id):
    """Hard delete; an admin correction outside the state machine."""
    hall_pass = _get_pass(pass_id, school_id)
    db.session.delete(hall_pass)
    db.session.commit()
    current_app.logger.info(f"Deleted pass {pass_id} in school {school_id}")


# -------------------- QUERIES --------------------

def list_active(school_id, teacher_id=None, grade_id=None, now=None):
    """All OUT passes for a school, oldest first, with durations as of now."""
    query = (
        Pass.query
        .join(Student, Pass.student_id == Student.id)
        .filter(Pass.school_id == school_id, Pass.status == PassStatus.OUT.value)
    )
    if teacher_id is not None:
        query = query.filter(Pass.teacher_id == teacher_id)
    if grade_id is not None:
        query = query.filter(Student.grade_id == grade_id)

    now = now or _utc_now()
    return [serialize_pass(p, now=now) for p in query.order_by(Pass.issued_at.asc()).all()]


def list_history(school_id, date_start=None, date_end=None, grade_id=None,
                 teacher_id=None, pass_type=None, student_id=None, closed_only=False):
    """
    Passes matching every given filter, most recent first.

    closed_only drops OUT passes, for a student's record of past trips.
    """
    query = (
        Pass.query
        .join(Student, Pass.student_id == Student.id)
        .filter(Pass.school_id == school_id)
    )
    if date_start is not None:
        query = query.filter(Pass.issued_at >= _naive_utc(date_start))
    if date_end is not None:
        query = query.filter(Pass.issued_at <= _naive_utc(date_end))
    if grade_id is not None:
        query = query.filter(Student.grade_id == grade_id)
    if teacher_id is not None:
        query = query.filter(Pass.teacher_id == teacher_id)
    if pass_type is not None:
        query = query.filter(Pass.pass_type == _coerce_pass_type(pass_type).value)
    if student_id is not None:
        query = query.filter(Pass.student_id == student_id)
    if closed_only:
        query = query.filter(Pass.status != PassStatus.OUT.value)

    return query.order_by(Pass.issued_at.desc(), Pass.id.desc()).all()


def get_pass_stats(school_id, now=None, tz=None):
    """Dashboard counters for a school."""
    now = now or _utc_now()
    tz = tz or pytz.utc

    local_now = now.astimezone(tz)
    today_start = tz.localize(datetime.combine(local_now.date(), time.min))

    base = Pass.query.filter(Pass.school_id == school_id)
    active = base.filter(Pass.status == PassStatus.OUT.value)

    active_count = active.count()
    today_count = base.filter(Pass.issued_at >= _naive_utc(today_start)).count()
    expiring_soon = active.filter(
        Pass.expires_at.isnot(None),
        Pass.expires_at <= _naive_utc(now + timedelta(minutes=EXPIRING_SOON_MINUTES)),
    ).count()

    avg_duration = (
        db.session.query(func.avg(Pass.duration))
        .filter(Pass.school_id == school_id, Pass.status == PassStatus.RETURNED.value)
        .scalar()
    )

    return {
        "activePasses": active_count,
        "todayPasses": today_count,
        "expiringSoon": expiring_soon,
        "avgDuration": int(round(avg_duration)) if avg_duration is not None else 0,
    }


def list_school_ids():
    return [row.id for row in School.query.with_entities(School.id).order_by(School.id).all()]
