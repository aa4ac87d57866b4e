"""
API routes for Hall Pass Hub.

RESTful JSON API endpoints for issuing, returning and reporting on hall
passes. All routes require a signed-in teacher and are scoped to that
teacher's school.
"""

from dataclasses import asdict

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from hallpass.auth import teacher_required, admin_required, get_current_teacher
from hallpass.errors import register_error_handlers
from hallpass.extensions import db, limiter
from hallpass.scheduled_tasks import get_reset_scheduler
from hallpass.utils.helpers import format_utc_iso, get_timezone
from hallpass.utils.pass_requests import parse_history_filters, parse_int, parse_pass_request
from hallpass.utils import pass_service

# Create blueprint
api_bp = Blueprint('api', __name__, url_prefix='/api')
register_error_handlers(api_bp)


@api_bp.errorhandler(SQLAlchemyError)
def handle_database_error(error):
    db.session.rollback()
    current_app.logger.error(f"Database error on {request.method} {request.path}: {error}", exc_info=True)
    return jsonify({"status": "error", "message": "Database error."}), 500


# -------------------- HALL PASS API --------------------

@api_bp.route('/passes', methods=['POST'])
@limiter.limit("60 per minute")
@teacher_required
def create_pass():
    """Issue a pass to a student. 409 if the student is already out."""
    teacher = get_current_teacher()
    pass_request = parse_pass_request(request.get_json(silent=True))

    hall_pass = pass_service.issue_pass(
        school_id=teacher.school_id,
        student_id=pass_request.student_id,
        teacher_id=teacher.id,
        pass_type=pass_request.pass_type,
        custom_reason=pass_request.custom_reason,
        notes=pass_request.notes,
        expires_in_minutes=pass_request.expires_in_minutes,
    )
    return jsonify({"status": "success", "pass": pass_service.serialize_pass(hall_pass)})


@api_bp.route('/passes/<int:pass_id>/return', methods=['PUT'])
@teacher_required
def return_pass(pass_id):
    teacher = get_current_teacher()
    pass_id = parse_int(pass_id, 'passId')
    hall_pass = pass_service.return_pass(pass_id, school_id=teacher.school_id)
    return jsonify({"status": "success", "pass": pass_service.serialize_pass(hall_pass)})


@api_bp.route('/passes/<int:pass_id>/revoke', methods=['PUT'])
@admin_required
def revoke_pass(pass_id):
    teacher = get_current_teacher()
    pass_id = parse_int(pass_id, 'passId')
    hall_pass = pass_service.revoke_pass(pass_id, school_id=teacher.school_id)
    return jsonify({"status": "success", "pass": pass_service.serialize_pass(hall_pass)})


@api_bp.route('/passes/<int:pass_id>', methods=['DELETE'])
@admin_required
def delete_pass(pass_id):
    """Hard delete for correcting mistakes (admin only)."""
    teacher = get_current_teacher()
    pass_id = parse_int(pass_id, 'passId')
    pass_service.delete_pass(pass_id, school_id=teacher.school_id)
    return jsonify({"status": "success", "message": "Pass deleted."})


@api_bp.route('/passes/active', methods=['GET'])
@teacher_required
def active_passes():
    """
    Students currently out, oldest pass first.

    Usage: /api/passes/active?teacherId=12&grade=3
    """
    teacher = get_current_teacher()
    passes = pass_service.list_active(
        teacher.school_id,
        teacher_id=parse_int(request.args.get('teacherId'), 'teacherId'),
        grade_id=parse_int(request.args.get('grade'), 'grade'),
    )
    return jsonify({"status": "success", "passes": passes, "total": len(passes)})


@api_bp.route('/passes', methods=['GET'])
@teacher_required
def pass_history():
    """
    Filtered pass history, most recent first.

    Non-admin teachers only ever see passes they issued.
    """
    teacher = get_current_teacher()
    tz = get_timezone(current_app.config.get('PASS_RESET_TIMEZONE'))
    filters = parse_history_filters(request.args, tz=tz)
    if not teacher.is_admin:
        filters.teacher_id = teacher.id

    records = pass_service.list_history(teacher.school_id, **asdict(filters))
    return jsonify({
        "status": "success",
        "passes": [pass_service.serialize_pass(p) for p in records],
        "total": len(records),
    })


@api_bp.route('/passes/student/<int:student_id>', methods=['GET'])
@teacher_required
def student_active_pass(student_id):
    """The student's current pass, or null when they are in class."""
    teacher = get_current_teacher()
    student_id = parse_int(student_id, 'studentId')
    hall_pass = pass_service.get_active_pass_for_student(teacher.school_id, student_id)
    return jsonify({
        "status": "success",
        "pass": pass_service.serialize_pass(hall_pass) if hall_pass else None,
    })


@api_bp.route('/passes/student/<int:student_id>/history', methods=['GET'])
@teacher_required
def student_pass_history(student_id):
    """
    The student's finished passes, most recent first.

    Non-admin teachers only see the passes they issued, as in /passes.
    """
    teacher = get_current_teacher()
    student_id = parse_int(student_id, 'studentId')
    records = pass_service.list_history(
        teacher.school_id,
        student_id=student_id,
        teacher_id=None if teacher.is_admin else teacher.id,
        closed_only=True,
    )
    return jsonify({
        "status": "success",
        "passes": [pass_service.serialize_pass(p) for p in records],
        "total": len(records),
    })


@api_bp.route('/passes/stats', methods=['GET'])
@teacher_required
def pass_stats():
    teacher = get_current_teacher()
    tz = get_timezone(current_app.config.get('PASS_RESET_TIMEZONE'))
    stats = pass_service.get_pass_stats(teacher.school_id, tz=tz)
    return jsonify({"status": "success", "stats": stats})


# -------------------- DAILY RESET --------------------

@api_bp.route('/passes/reset-status', methods=['GET'])
@teacher_required
def reset_status():
    reset_scheduler = get_reset_scheduler(current_app._get_current_object())
    return jsonify({
        "status": "success",
        "timeUntilReset": reset_scheduler.time_until_next_reset(),
        "nextResetAt": format_utc_iso(reset_scheduler.next_reset_at),
    })


@api_bp.route('/passes/reset', methods=['POST'])
@admin_required
def manual_reset():
    """Return every active pass in the admin's school now (admin only)."""
    teacher = get_current_teacher()
    reset_scheduler = get_reset_scheduler(current_app._get_current_object())
    returned = reset_scheduler.manual_reset(teacher.school_id)
    return jsonify({
        "status": "success",
        "message": f"Returned {returned} active passes.",
        "returned": returned,
    })
