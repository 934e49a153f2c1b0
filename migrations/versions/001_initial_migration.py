"""Initial migration

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create sites table
    op.create_table('sites',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_index(op.f('ix_sites_id'), 'sites', ['id'], unique=False)

    # Create users table
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('middle_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=True, default='agent'),
        sa.Column('is_active', sa.Boolean(), nullable=True, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)

    # Create employee_schedules table
    op.create_table('employee_schedules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('campaign_id', sa.Integer(), nullable=True),
        sa.Column('site_id', sa.Integer(), nullable=True),
        sa.Column('shift_type', sa.String(length=20), nullable=False),
        sa.Column('scheduled_time_in', sa.Time(), nullable=False),
        sa.Column('scheduled_time_out', sa.Time(), nullable=False),
        sa.Column('work_days', sa.JSON(), nullable=False),
        sa.Column('grace_period_minutes', sa.Integer(), nullable=True, default=15),
        sa.Column('effective_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['site_id'], ['sites.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_employee_schedules_id'), 'employee_schedules', ['id'], unique=False)
    op.create_index(op.f('ix_employee_schedules_user_id'), 'employee_schedules', ['user_id'], unique=False)

    # Create leave_requests table
    op.create_table('leave_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('leave_type', sa.String(length=50), nullable=True, default='vacation'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=True, default='pending'),
        sa.Column('has_supporting_document', sa.Boolean(), nullable=True, default=False),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_leave_requests_id'), 'leave_requests', ['id'], unique=False)
    op.create_index(op.f('ix_leave_requests_user_id'), 'leave_requests', ['user_id'], unique=False)

    # Create attendance_uploads table
    op.create_table('attendance_uploads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('site_id', sa.Integer(), nullable=True),
        sa.Column('original_filename', sa.String(length=255), nullable=True),
        sa.Column('date_from', sa.Date(), nullable=False),
        sa.Column('date_to', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=True, default='pending'),
        sa.Column('total_records', sa.Integer(), nullable=True, default=0),
        sa.Column('malformed_lines', sa.Integer(), nullable=True, default=0),
        sa.Column('processed_records', sa.Integer(), nullable=True, default=0),
        sa.Column('matched_employees', sa.Integer(), nullable=True, default=0),
        sa.Column('unmatched_names', sa.Integer(), nullable=True, default=0),
        sa.Column('unmatched_names_list', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('uploaded_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['site_id'], ['sites.id'], ),
        sa.ForeignKeyConstraint(['uploaded_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_attendance_uploads_id'), 'attendance_uploads', ['id'], unique=False)

    # Create biometric_records table
    op.create_table('biometric_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('attendance_upload_id', sa.Integer(), nullable=True),
        sa.Column('site_id', sa.Integer(), nullable=True),
        sa.Column('device_no', sa.String(length=20), nullable=True),
        sa.Column('device_user_id', sa.String(length=50), nullable=True),
        sa.Column('employee_name', sa.String(length=200), nullable=False),
        sa.Column('normalized_name', sa.String(length=200), nullable=False),
        sa.Column('datetime', sa.DateTime(), nullable=False),
        sa.Column('record_date', sa.Date(), nullable=False),
        sa.Column('record_time', sa.Time(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['attendance_upload_id'], ['attendance_uploads.id'], ),
        sa.ForeignKeyConstraint(['site_id'], ['sites.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_biometric_records_id'), 'biometric_records', ['id'], unique=False)
    op.create_index(op.f('ix_biometric_records_user_id'), 'biometric_records', ['user_id'], unique=False)
    op.create_index(op.f('ix_biometric_records_normalized_name'), 'biometric_records', ['normalized_name'], unique=False)
    op.create_index(op.f('ix_biometric_records_datetime'), 'biometric_records', ['datetime'], unique=False)

    # Create attendances table
    op.create_table('attendances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('employee_schedule_id', sa.Integer(), nullable=True),
        sa.Column('leave_request_id', sa.Integer(), nullable=True),
        sa.Column('shift_date', sa.Date(), nullable=False),
        sa.Column('scheduled_time_in', sa.DateTime(), nullable=True),
        sa.Column('scheduled_time_out', sa.DateTime(), nullable=True),
        sa.Column('actual_time_in', sa.DateTime(), nullable=True),
        sa.Column('actual_time_out', sa.DateTime(), nullable=True),
        sa.Column('bio_in_site_id', sa.Integer(), nullable=True),
        sa.Column('bio_out_site_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('secondary_status', sa.String(length=30), nullable=True),
        sa.Column('tardy_minutes', sa.Integer(), nullable=True),
        sa.Column('undertime_minutes', sa.Integer(), nullable=True),
        sa.Column('overtime_minutes', sa.Integer(), nullable=True),
        sa.Column('total_minutes_worked', sa.Integer(), nullable=True),
        sa.Column('overtime_approved', sa.Boolean(), nullable=True, default=False),
        sa.Column('is_cross_site_bio', sa.Boolean(), nullable=True, default=False),
        sa.Column('admin_verified', sa.Boolean(), nullable=True, default=False),
        sa.Column('verified_by', sa.Integer(), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('warnings', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['employee_schedule_id'], ['employee_schedules.id'], ),
        sa.ForeignKeyConstraint(['leave_request_id'], ['leave_requests.id'], ),
        sa.ForeignKeyConstraint(['bio_in_site_id'], ['sites.id'], ),
        sa.ForeignKeyConstraint(['bio_out_site_id'], ['sites.id'], ),
        sa.ForeignKeyConstraint(['verified_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'shift_date', name='uix_attendance_user_shift_date')
    )
    op.create_index(op.f('ix_attendances_id'), 'attendances', ['id'], unique=False)
    op.create_index(op.f('ix_attendances_user_id'), 'attendances', ['user_id'], unique=False)
    op.create_index(op.f('ix_attendances_shift_date'), 'attendances', ['shift_date'], unique=False)

    # Create attendance_points table
    op.create_table('attendance_points',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('attendance_id', sa.Integer(), nullable=True),
        sa.Column('shift_date', sa.Date(), nullable=False),
        sa.Column('point_type', sa.String(length=40), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=True),
        sa.Column('points', sa.Numeric(precision=4, scale=2), nullable=False),
        sa.Column('is_advised', sa.Boolean(), nullable=True, default=False),
        sa.Column('violation_details', sa.Text(), nullable=True),
        sa.Column('tardy_minutes', sa.Integer(), nullable=True),
        sa.Column('undertime_minutes', sa.Integer(), nullable=True),
        sa.Column('is_excused', sa.Boolean(), nullable=True, default=False),
        sa.Column('excused_by', sa.Integer(), nullable=True),
        sa.Column('excused_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('excuse_reason', sa.Text(), nullable=True),
        sa.Column('is_expired', sa.Boolean(), nullable=True, default=False),
        sa.Column('expired_at', sa.Date(), nullable=True),
        sa.Column('expires_at', sa.Date(), nullable=True),
        sa.Column('expiration_type', sa.String(length=10), nullable=True),
        sa.Column('gbro_applied_at', sa.Date(), nullable=True),
        sa.Column('gbro_expires_at', sa.Date(), nullable=True),
        sa.Column('eligible_for_gbro', sa.Boolean(), nullable=True, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['attendance_id'], ['attendances.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['excused_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_attendance_points_id'), 'attendance_points', ['id'], unique=False)
    op.create_index(op.f('ix_attendance_points_user_id'), 'attendance_points', ['user_id'], unique=False)
    op.create_index(op.f('ix_attendance_points_shift_date'), 'attendance_points', ['shift_date'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_attendance_points_shift_date'), table_name='attendance_points')
    op.drop_index(op.f('ix_attendance_points_user_id'), table_name='attendance_points')
    op.drop_index(op.f('ix_attendance_points_id'), table_name='attendance_points')
    op.drop_table('attendance_points')
    op.drop_index(op.f('ix_attendances_shift_date'), table_name='attendances')
    op.drop_index(op.f('ix_attendances_user_id'), table_name='attendances')
    op.drop_index(op.f('ix_attendances_id'), table_name='attendances')
    op.drop_table('attendances')
    op.drop_index(op.f('ix_biometric_records_datetime'), table_name='biometric_records')
    op.drop_index(op.f('ix_biometric_records_normalized_name'), table_name='biometric_records')
    op.drop_index(op.f('ix_biometric_records_user_id'), table_name='biometric_records')
    op.drop_index(op.f('ix_biometric_records_id'), table_name='biometric_records')
    op.drop_table('biometric_records')
    op.drop_index(op.f('ix_attendance_uploads_id'), table_name='attendance_uploads')
    op.drop_table('attendance_uploads')
    op.drop_index(op.f('ix_leave_requests_user_id'), table_name='leave_requests')
    op.drop_index(op.f('ix_leave_requests_id'), table_name='leave_requests')
    op.drop_table('leave_requests')
    op.drop_index(op.f('ix_employee_schedules_user_id'), table_name='employee_schedules')
    op.drop_index(op.f('ix_employee_schedules_id'), table_name='employee_schedules')
    op.drop_table('employee_schedules')
    op.drop_index(op.f('ix_users_id'), table_name='users')
    op.drop_table('users')
    op.drop_index(op.f('ix_sites_id'), table_name='sites')
    op.drop_table('sites')
