"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

Creates all database tables for TypingDesk:
- admins: Administrator accounts
- students: Student accounts with approval flags and membership id sets
- batches: Capacity-limited student groups with assigned tests
- tests: Typing test content
- shifts: Scheduled sessions with assigned students
- results: Submitted typing test results

Membership sets are JSON arrays of ids stored in Text columns on both
sides of each relationship.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_set(name: str) -> sa.Column:
    return sa.Column(name, sa.Text(), nullable=False, server_default='[]')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    # ── Admins Table ──────────────────────────────────────────
    op.create_table(
        'admins',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('auth_subject', sa.String(128), nullable=False, unique=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('email', sa.String(320), nullable=False, unique=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='admin'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        *_timestamps(),
    )

    # ── Students Table ────────────────────────────────────────
    op.create_table(
        'students',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('auth_subject', sa.String(128), nullable=False, unique=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('email', sa.String(320), nullable=False, unique=True),
        sa.Column('is_approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_blocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_online_mode', sa.Boolean(), nullable=False, server_default=sa.true()),
        _id_set('assigned_batches'),
        _id_set('assigned_tests'),
        _id_set('assigned_shifts'),
        _id_set('results'),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_students_is_approved', 'students', ['is_approved'])
    op.create_index('ix_students_is_blocked', 'students', ['is_blocked'])

    # ── Tests Table ───────────────────────────────────────────
    op.create_table(
        'tests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('audio_url', sa.Text(), nullable=True),
        sa.Column('reference_text', sa.Text(), nullable=True),
        sa.Column('uploaded_by', sa.String(36), sa.ForeignKey('admins.id'), nullable=True),
        _id_set('assigned_batches'),
        _id_set('assigned_students'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='300'),
        *_timestamps(),
    )
    op.create_index('ix_tests_is_active', 'tests', ['is_active'])

    # ── Batches Table ─────────────────────────────────────────
    op.create_table(
        'batches',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(36), sa.ForeignKey('admins.id'), nullable=False),
        _id_set('students'),
        _id_set('tests'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('max_students', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_batches_created_by', 'batches', ['created_by'])
    op.create_index('ix_batches_is_active', 'batches', ['is_active'])

    # ── Shifts Table ──────────────────────────────────────────
    op.create_table(
        'shifts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        _id_set('students'),
        sa.Column('test_id', sa.String(36), sa.ForeignKey('tests.id'), nullable=True),
        sa.Column('date', sa.DateTime(), nullable=True),
    )

    # ── Results Table ─────────────────────────────────────────
    # shift_id / test_id are plain references; results outlive their shift and test
    op.create_table(
        'results',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('shift_id', sa.String(36), nullable=True),
        sa.Column('test_id', sa.String(36), nullable=True),
        sa.Column('wpm', sa.Float(), nullable=False, server_default='0'),
        sa.Column('accuracy', sa.Float(), nullable=False, server_default='0'),
        sa.Column('mistakes', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('submitted_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
    )
    op.create_index('ix_results_student_id', 'results', ['student_id'])
    op.create_index('ix_results_shift_id', 'results', ['shift_id'])
    op.create_index('ix_results_test_id', 'results', ['test_id'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index('ix_results_test_id', table_name='results')
    op.drop_index('ix_results_shift_id', table_name='results')
    op.drop_index('ix_results_student_id', table_name='results')
    op.drop_table('results')
    op.drop_table('shifts')
    op.drop_index('ix_batches_is_active', table_name='batches')
    op.drop_index('ix_batches_created_by', table_name='batches')
    op.drop_table('batches')
    op.drop_index('ix_tests_is_active', table_name='tests')
    op.drop_table('tests')
    op.drop_index('ix_students_is_blocked', table_name='students')
    op.drop_index('ix_students_is_approved', table_name='students')
    op.drop_table('students')
    op.drop_table('admins')
