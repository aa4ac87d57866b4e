"""
Database models for Hall Pass Hub.

All SQLAlchemy models are defined here with proper relationships and properties.
Times are stored as UTC in the database.
"""

from datetime import datetime, timezone
import enum

from hallpass.extensions import db


def _utc_now():
    """Helper function for timezone-aware datetime defaults in SQLAlchemy models."""
    return datetime.now(timezone.utc)


class PassStatus(enum.Enum):
    """Lifecycle states of a hall pass. Everything except OUT is terminal."""
    OUT = 'out'
    RETURNED = 'returned'
    REVOKED = 'revoked'
    EXPIRED = 'expired'

    @property
    def is_terminal(self):
        return self is not PassStatus.OUT

    @classmethod
    def from_string(cls, value):
        """Convert string to enum, raising ValueError if invalid."""
        if isinstance(value, cls):
            return value
        # "active" is the legacy name for an open pass
        if value == 'active':
            return cls.OUT
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Invalid PassStatus: {value}")


class PassType(enum.Enum):
    """Destination categories a pass can be issued for."""
    GENERAL = 'general'
    NURSE = 'nurse'
    DISCIPLINE = 'discipline'
    RESTROOM = 'restroom'
    OFFICE = 'office'
    CUSTOM = 'custom'

    @classmethod
    def from_string(cls, value):
        """Convert string to enum, raising ValueError if invalid."""
        if isinstance(value, cls):
            return value
        normalized = (value or '').strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Invalid PassType: {value}")


# -------------------- TENANCY MODELS --------------------

class School(db.Model):
    __tablename__ = 'schools'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now)

    def __repr__(self):
        return f'<School {self.id} {self.name}>'


class Grade(db.Model):
    __tablename__ = 'grades'
    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(50), nullable=False)
    display_order = db.Column(db.Integer, default=0, nullable=False)

    school = db.relationship('School', backref=db.backref('grades', lazy='dynamic', passive_deletes=True))

    __table_args__ = (
        db.UniqueConstraint('school_id', 'name', name='uq_grades_school_name'),
        db.Index('ix_grades_school_id', 'school_id'),
    )


class Teacher(db.Model):
    """A staff account. Admins can revoke, delete and reset passes for their school."""
    __tablename__ = 'teachers'
    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now)

    school = db.relationship('School', backref=db.backref('teachers', lazy='dynamic', passive_deletes=True))

    __table_args__ = (
        db.Index('ix_teachers_school_id', 'school_id'),
    )


class Student(db.Model):
    __tablename__ = 'students'
    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    grade_id = db.Column(db.Integer, db.ForeignKey('grades.id', ondelete='SET NULL'), nullable=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False, default='')
    created_at = db.Column(db.DateTime, default=_utc_now)

    school = db.relationship('School', backref=db.backref('students', lazy='dynamic', passive_deletes=True))
    grade = db.relationship('Grade', backref=db.backref('students', lazy='dynamic'))

    __table_args__ = (
        db.Index('ix_students_school_id', 'school_id'),
        db.Index('ix_students_grade_id', 'grade_id'),
    )

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


# -------------------- HALL PASS MODEL --------------------

class Pass(db.Model):
    """
    One instance of a student leaving the room.

    A student may hold at most one pass with status OUT. The partial unique
    index below enforces that at the database level so two concurrent issue
    requests cannot both succeed.
    """
    __tablename__ = 'passes'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey('teachers.id', ondelete='CASCADE'), nullable=False)

    pass_type = db.Column(db.String(20), default=PassType.GENERAL.value, nullable=False)
    custom_reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), default=PassStatus.OUT.value, nullable=False)

    # All times stored as UTC (see header note)
    issued_at = db.Column(db.DateTime, default=_utc_now, nullable=False)
    returned_at = db.Column(db.DateTime, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True)

    # Whole minutes; 0 while the pass is open
    duration = db.Column(db.Integer, default=0, nullable=False)

    school = db.relationship('School', backref=db.backref('passes', lazy='dynamic', passive_deletes=True))
    student = db.relationship('Student', backref=db.backref('passes', lazy='dynamic', passive_deletes=True))
    teacher = db.relationship('Teacher', backref=db.backref('issued_passes', lazy='dynamic', passive_deletes=True))

    __table_args__ = (
        db.Index(
            'uq_passes_one_out_per_student',
            'student_id',
            unique=True,
            postgresql_where=db.text("status = 'out'"),
            sqlite_where=db.text("status = 'out'"),
        ),
        db.Index('ix_passes_school_status', 'school_id', 'status'),
        db.Index('ix_passes_school_issued_at', 'school_id', 'issued_at'),
        db.Index('ix_passes_teacher_id', 'teacher_id'),
    )

    @property
    def is_active(self):
        return self.status == PassStatus.OUT.value

    def __repr__(self):
        return f'<Pass {self.id} student={self.student_id} {self.status}>'
