"""
Tests for the active-pass service layer.

Covers the one-open-pass-per-student invariant (pre-check and database
index), transitions through the service, and the query/report helpers.
"""

from datetime import timedelta

import pytest
import pytz
from sqlalchemy import false
from sqlalchemy.exc import IntegrityError

from conftest import utc
from hallpass.errors import AlreadyOutError, AlreadyReturnedError, NotFoundError, ValidationError
from hallpass.extensions import db
from hallpass.models import Pass, PassStatus, PassType, School, Student, Teacher
from hallpass.utils import pass_service
from hallpass.utils.pass_lifecycle import as_utc

T0 = utc(2025, 3, 4, 17, 0, 0)


def _issue(school, student, teacher, pass_type=PassType.GENERAL, now=T0, **kwargs):
    return pass_service.issue_pass(
        school_id=school.id,
        student_id=student.id,
        teacher_id=teacher.id,
        pass_type=pass_type,
        now=now,
        **kwargs,
    )


def test_issue_creates_out_pass(school, teacher, alice):
    hall_pass = _issue(school, alice, teacher, PassType.NURSE, notes="headache")

    assert hall_pass.id is not None
    assert hall_pass.status == PassStatus.OUT.value
    assert hall_pass.duration == 0
    assert hall_pass.returned_at is None
    assert hall_pass.notes == "headache"
    assert pass_service.get_active_pass_for_student(school.id, alice.id).id == hall_pass.id


def test_issue_sets_expiry(school, teacher, alice):
    hall_pass = _issue(school, alice, teacher, expires_in_minutes=10)
    assert as_utc(hall_pass.expires_at) == T0 + timedelta(minutes=10)


def test_second_issue_for_same_student_rejected(school, teacher, alice):
    first = _issue(school, alice, teacher)

    with pytest.raises(AlreadyOutError) as excinfo:
        _issue(school, alice, teacher, PassType.RESTROOM, now=T0 + timedelta(minutes=1))

    assert excinfo.value.existing_pass.id == first.id
    assert excinfo.value.status_code == 409
    assert Pass.query.filter_by(student_id=alice.id, status='out').count() == 1


def test_unique_index_blocks_second_open_pass(school, teacher, alice):
    """The database refuses a second OUT row even when the pre-check is skipped."""
    db.session.add(Pass(school_id=school.id, student_id=alice.id, teacher_id=teacher.id,
                        status='out', issued_at=T0))
    db.session.commit()

    db.session.add(Pass(school_id=school.id, student_id=alice.id, teacher_id=teacher.id,
                        status='out', issued_at=T0 + timedelta(seconds=1)))
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_unique_index_allows_many_closed_passes(school, teacher, alice):
    for minutes in (0, 10, 20):
        db.session.add(Pass(school_id=school.id, student_id=alice.id, teacher_id=teacher.id,
                            status='returned', issued_at=T0 + timedelta(minutes=minutes)))
    db.session.add(Pass(school_id=school.id, student_id=alice.id, teacher_id=teacher.id,
                        status='out', issued_at=T0 + timedelta(minutes=30)))
    db.session.commit()
    assert Pass.query.filter_by(student_id=alice.id).count() == 4


def test_lost_race_is_reported_as_already_out(monkeypatch, school, teacher, alice):
    """A concurrent insert that slips past the pre-check surfaces as AlreadyOutError."""
    other = Pass(school_id=school.id, student_id=alice.id, teacher_id=teacher.id,
                 status='out', issued_at=T0)
    db.session.add(other)
    db.session.commit()

    calls = {"n": 0}
    real_query = pass_service._active_pass_query

    def blind_first_check(student_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return Pass.query.filter(false())
        return real_query(student_id)

    monkeypatch.setattr(pass_service, '_active_pass_query', blind_first_check)

    with pytest.raises(AlreadyOutError) as excinfo:
        _issue(school, alice, teacher, now=T0 + timedelta(seconds=1))
    assert excinfo.value.existing_pass.id == other.id
    assert Pass.query.filter_by(student_id=alice.id).count() == 1


def test_issue_after_return_succeeds(school, teacher, alice):
    first = _issue(school, alice, teacher)
    pass_service.return_pass(first.id, now=T0 + timedelta(minutes=5))

    second = _issue(school, alice, teacher, now=T0 + timedelta(minutes=6))
    assert second.id != first.id
    assert second.status == 'out'


def test_issue_validates_student_and_teacher(school, teacher, alice):
    other_school = School(name="Roosevelt High")
    db.session.add(other_school)
    db.session.commit()
    outsider = Student(school_id=other_school.id, first_name="Zed")
    db.session.add(outsider)
    db.session.commit()

    with pytest.raises(NotFoundError):
        _issue(school, outsider, teacher)
    with pytest.raises(NotFoundError):
        pass_service.issue_pass(school.id, 9999, teacher.id, PassType.GENERAL)
    with pytest.raises(NotFoundError):
        pass_service.issue_pass(school.id, alice.id, 9999, PassType.GENERAL)
    with pytest.raises(ValidationError):
        pass_service.issue_pass(school.id, alice.id, teacher.id, 'cafeteria')


def test_return_computes_duration(school, teacher, alice):
    hall_pass = _issue(school, alice, teacher)
    returned = pass_service.return_pass(hall_pass.id, now=T0 + timedelta(minutes=17))

    assert returned.status == 'returned'
    assert returned.duration == 17
    assert pass_service.get_active_pass_for_student(school.id, alice.id) is None


def test_second_return_is_rejected_and_changes_nothing(school, teacher, alice):
    hall_pass = _issue(school, alice, teacher)
    pass_service.return_pass(hall_pass.id, now=T0 + timedelta(minutes=12))

    with pytest.raises(AlreadyReturnedError):
        pass_service.return_pass(hall_pass.id, now=T0 + timedelta(minutes=40))

    db.session.expire_all()
    stored = db.session.get(Pass, hall_pass.id)
    assert stored.duration == 12
    assert stored.returned_at == (T0 + timedelta(minutes=12)).replace(tzinfo=None)


def test_return_scoped_to_school(school, teacher, alice):
    hall_pass = _issue(school, alice, teacher)
    with pytest.raises(NotFoundError):
        pass_service.return_pass(hall_pass.id, school_id=school.id + 1)


def test_revoke_frees_student(school, teacher, alice):
    hall_pass = _issue(school, alice, teacher)
    revoked = pass_service.revoke_pass(hall_pass.id, school_id=school.id)
    assert revoked.status == 'revoked'
    assert revoked.returned_at is None
    assert pass_service.get_active_pass_for_student(school.id, alice.id) is None


def test_delete_pass(school, teacher, alice):
    hall_pass = _issue(school, alice, teacher)
    pass_service.delete_pass(hall_pass.id, school.id)
    assert db.session.get(Pass, hall_pass.id) is None
    with pytest.raises(NotFoundError):
        pass_service.delete_pass(hall_pass.id, school.id)


def test_list_active_orders_and_filters(school, grade, teacher, admin, alice, bob):
    _issue(school, bob, admin, now=T0)
    _issue(school, alice, teacher, PassType.NURSE, now=T0 + timedelta(minutes=2))

    active = pass_service.list_active(school.id, now=T0 + timedelta(minutes=10))
    assert [p["studentId"] for p in active] == [bob.id, alice.id]
    assert active[0]["duration"] == 10
    assert active[1]["destination"] == "Nurse"
    assert active[1]["student"]["grade"] == "7"

    assert [p["studentId"] for p in pass_service.list_active(school.id, teacher_id=teacher.id)] == [alice.id]
    assert [p["studentId"] for p in pass_service.list_active(school.id, grade_id=grade.id)] == [alice.id]


def test_list_history_filters(school, teacher, admin, alice, bob):
    early = _issue(school, alice, teacher, PassType.RESTROOM, now=T0)
    pass_service.return_pass(early.id, now=T0 + timedelta(minutes=3))
    late = _issue(school, bob, admin, PassType.OFFICE, now=T0 + timedelta(days=1))

    everything = pass_service.list_history(school.id)
    assert [p.id for p in everything] == [late.id, early.id]

    assert [p.id for p in pass_service.list_history(school.id, teacher_id=teacher.id)] == [early.id]
    assert [p.id for p in pass_service.list_history(school.id, pass_type=PassType.OFFICE)] == [late.id]
    assert [p.id for p in pass_service.list_history(
        school.id, date_start=T0 + timedelta(hours=12))] == [late.id]
    assert [p.id for p in pass_service.list_history(
        school.id, date_end=T0 + timedelta(hours=12))] == [early.id]


def test_pass_stats(school, teacher, alice, bob):
    tz = pytz.timezone('America/Los_Angeles')
    now = T0 + timedelta(hours=1)

    done = _issue(school, bob, teacher, now=T0)
    pass_service.return_pass(done.id, now=T0 + timedelta(minutes=9))
    _issue(school, alice, teacher, now=now - timedelta(minutes=20), expires_in_minutes=22)

    stats = pass_service.get_pass_stats(school.id, now=now, tz=tz)
    assert stats == {
        "activePasses": 1,
        "todayPasses": 2,
        "expiringSoon": 1,
        "avgDuration": 9,
    }


def test_stats_for_empty_school(school):
    stats = pass_service.get_pass_stats(school.id, now=T0)
    assert stats["activePasses"] == 0
    assert stats["avgDuration"] == 0


def test_invariant_holds_per_school(school, teacher, alice):
    """Students in different schools are independent."""
    other_school = School(name="Roosevelt High")
    db.session.add(other_school)
    db.session.commit()
    other_teacher = Teacher(school_id=other_school.id, email="lee@roosevelt.test", name="Mr. Lee")
    other_student = Student(school_id=other_school.id, first_name="Alice", last_name="Nguyen")
    db.session.add_all([other_teacher, other_student])
    db.session.commit()

    _issue(school, alice, teacher)
    _issue(other_school, other_student, other_teacher)
    assert Pass.query.filter_by(status='out').count() == 2


def test_list_history_for_one_student_skips_open_pass(school, teacher, alice, bob):
    done = _issue(school, alice, teacher, now=T0)
    pass_service.return_pass(done.id, now=T0 + timedelta(minutes=6))
    revoked = _issue(school, alice, teacher, now=T0 + timedelta(hours=1))
    pass_service.revoke_pass(revoked.id)
    _issue(school, alice, teacher, now=T0 + timedelta(hours=2))
    _issue(school, bob, teacher, now=T0)

    records = pass_service.list_history(school.id, student_id=alice.id, closed_only=True)
    assert [p.id for p in records] == [revoked.id, done.id]

    assert len(pass_service.list_history(school.id, student_id=alice.id)) == 3
