"""Create hall pass tables

Revision ID: 7c1d2e3f4a5b
Revises:
Create Date: 2026-09-14 18:02:41.317204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c1d2e3f4a5b'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'schools',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'grades',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('school_id', 'name', name='uq_grades_school_name'),
    )
    op.create_index('ix_grades_school_id', 'grades', ['school_id'])

    op.create_table(
        'teachers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_teachers_school_id', 'teachers', ['school_id'])

    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('grade_id', sa.Integer(), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['grade_id'], ['grades.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_students_school_id', 'students', ['school_id'])
    op.create_index('ix_students_grade_id', 'students', ['grade_id'])

    op.create_table(
        'passes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('teacher_id', sa.Integer(), nullable=False),
        sa.Column('pass_type', sa.String(length=20), nullable=False, server_default='general'),
        sa.Column('custom_reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='out'),
        sa.Column('issued_at', sa.DateTime(), nullable=False),
        sa.Column('returned_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['teacher_id'], ['teachers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    # At most one open pass per student
    op.create_index(
        'uq_passes_one_out_per_student',
        'passes',
        ['student_id'],
        unique=True,
        postgresql_where=sa.text("status = 'out'"),
        sqlite_where=sa.text("status = 'out'"),
    )
    op.create_index('ix_passes_school_status', 'passes', ['school_id', 'status'])
    op.create_index('ix_passes_school_issued_at', 'passes', ['school_id', 'issued_at'])
    op.create_index('ix_passes_teacher_id', 'passes', ['teacher_id'])


def downgrade():
    op.drop_index('ix_passes_teacher_id', table_name='passes')
    op.drop_index('ix_passes_school_issued_at', table_name='passes')
    op.drop_index('ix_passes_school_status', table_name='passes')
    op.drop_index('uq_passes_one_out_per_student', table_name='passes')
    op.drop_table('passes')

    op.drop_index('ix_students_grade_id', table_name='students')
    op.drop_index('ix_students_school_id', table_name='students')
    op.drop_table('students')

    op.drop_index('ix_teachers_school_id', table_name='teachers')
    op.drop_table('teachers')

    op.drop_index('ix_grades_school_id', table_name='grades')
    op.drop_table('grades')

    op.drop_table('schools')
