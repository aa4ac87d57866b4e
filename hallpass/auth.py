"""
Authentication and authorization utilities for Hall Pass Hub.

Login itself happens elsewhere; by the time a request reaches these helpers
the session carries the signed-in teacher's id. API routes answer with JSON
401/403 instead of redirecting.
"""

from functools import wraps

from flask import session, jsonify, current_app, g

from hallpass.extensions import db
from hallpass.models import Teacher


def get_current_teacher():
    """Return the Teacher for the current session, or None."""
    teacher_id = session.get('teacher_id')
    cached = g.get('current_teacher')
    if cached is not None and cached.id == teacher_id:
        return cached
    teacher = db.session.get(Teacher, teacher_id) if teacher_id else None
    g.current_teacher = teacher
    return teacher


def teacher_required(f):
    """
    Decorator to require a signed-in teacher for an API route.

    Clears a session whose teacher no longer exists.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get('teacher_id'):
            return jsonify({"status": "error", "message": "Unauthorized"}), 401

        teacher = get_current_teacher()
        if not teacher:
            session.pop('teacher_id', None)
            current_app.logger.warning("Session referenced a missing teacher; cleared.")
            return jsonify({"status": "error", "message": "Unauthorized"}), 401
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator to require a signed-in school admin."""
    @wraps(f)
    @teacher_required
    def decorated_function(*args, **kwargs):
        teacher = get_current_teacher()
        if not teacher.is_admin:
            current_app.logger.warning(f"Teacher {teacher.id} denied admin route")
            return jsonify({"status": "error", "message": "Admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function
