"""initial schema: tenants, patients and MAR tables

Revision ID: 0001
Revises:
Create Date: 2025-11-02 09:12:41.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('superadmin', 'head_nurse', 'nurse', name='user_role')
patient_sex = sa.Enum('Male', 'Female', 'Other', name='patient_sex')
mar_form_status = sa.Enum('draft', 'submitted', 'archived', name='mar_form_status')
vital_type = sa.Enum(
    'TEMPERATURE', 'PULSE', 'RESPIRATION', 'WEIGHT', 'BP_SYSTOLIC', 'BP_DIASTOLIC', 'BOWEL_MOVEMENT',
    name='vital_type'
)
audit_action = sa.Enum('CREATE', 'READ', 'UPDATE', 'DELETE', 'ACCESS_DENIED', 'SIGNUP', name='audit_action')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'hospitals',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('facility_type', sa.String(100), nullable=False),
        sa.Column('invite_code', sa.String(20), nullable=False, unique=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('idx_hospitals_invite_code', 'hospitals', ['invite_code'])
    op.create_index('idx_hospitals_is_active', 'hospitals', ['is_active'])

    op.create_table(
        'user_profiles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(255), nullable=True),
        sa.Column('middle_name', sa.String(255), nullable=True),
        sa.Column('last_name', sa.String(255), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('hospital_id', sa.String(36), sa.ForeignKey('hospitals.id', ondelete='CASCADE'), nullable=True),
        sa.Column('staff_initials', sa.Text(), nullable=True),
        sa.Column('staff_initials_text', sa.String(10), nullable=True),
        sa.Column('staff_signature', sa.Text(), nullable=True),
        sa.Column('staff_signature_text', sa.String(255), nullable=True),
        sa.Column('staff_signature_font', sa.String(100), nullable=True),
        sa.Column('designation', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('idx_user_profiles_hospital_id', 'user_profiles', ['hospital_id'])
    op.create_index('idx_user_profiles_role', 'user_profiles', ['role'])
    op.create_index('idx_user_profiles_email', 'user_profiles', ['email'])

    op.create_table(
        'patients',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('hospital_id', sa.String(36), sa.ForeignKey('hospitals.id', ondelete='CASCADE'), nullable=False),
        sa.Column('patient_name', sa.String(255), nullable=False),
        sa.Column('record_number', sa.String(100), nullable=False, unique=True),
        sa.Column('date_of_birth', sa.Date(), nullable=False),
        sa.Column('sex', patient_sex, nullable=False),
        sa.Column('diagnosis', sa.Text(), nullable=True),
        sa.Column('diet', sa.Text(), nullable=True),
        sa.Column('allergies', sa.Text(), nullable=False, server_default=''),
        sa.Column('physician_name', sa.String(255), nullable=False),
        sa.Column('physician_phone', sa.String(20), nullable=True),
        sa.Column('facility_name', sa.String(255), nullable=True),
        sa.Column('created_by', sa.String(36), sa.ForeignKey('user_profiles.id'), nullable=False),
        *_timestamps(),
    )
    op.create_index('idx_patients_hospital_id', 'patients', ['hospital_id'])
    op.create_index('idx_patients_record_number', 'patients', ['record_number'])
    op.create_index('idx_patients_created_by', 'patients', ['created_by'])

    op.create_table(
        'nurse_patient_assignments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('nurse_id', sa.String(36), sa.ForeignKey('user_profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('patient_id', sa.String(36), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('assigned_by', sa.String(36), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint('nurse_id', 'patient_id', name='uq_assignment_nurse_patient'),
    )
    op.create_index('idx_assignments_nurse_id', 'nurse_patient_assignments', ['nurse_id'])
    op.create_index('idx_assignments_patient_id', 'nurse_patient_assignments', ['patient_id'])

    op.create_table(
        'mar_forms',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('patient_id', sa.String(36), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('hospital_id', sa.String(36), sa.ForeignKey('hospitals.id', ondelete='CASCADE'), nullable=False),
        sa.Column('month_year', sa.String(20), nullable=False),
        sa.Column('created_by', sa.String(36), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('status', mar_form_status, nullable=False, server_default='draft'),
        sa.Column('patient_name', sa.String(255), nullable=False),
        sa.Column('record_number', sa.String(100), nullable=False),
        sa.Column('date_of_birth', sa.Date(), nullable=False),
        sa.Column('sex', sa.String(10), nullable=False),
        sa.Column('diagnosis', sa.Text(), nullable=True),
        sa.Column('diet', sa.Text(), nullable=True),
        sa.Column('allergies', sa.Text(), nullable=False, server_default=''),
        sa.Column('physician_name', sa.String(255), nullable=False),
        sa.Column('physician_phone', sa.String(20), nullable=True),
        sa.Column('facility_name', sa.String(255), nullable=True),
        sa.Column('vital_signs_instructions', sa.Text(), nullable=True),
        sa.Column('comments', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('patient_id', 'month_year', name='uq_mar_forms_patient_month'),
    )
    op.create_index('idx_mar_forms_patient_id', 'mar_forms', ['patient_id'])
    op.create_index('idx_mar_forms_hospital_id', 'mar_forms', ['hospital_id'])
    op.create_index('idx_mar_forms_status', 'mar_forms', ['status'])

    op.create_table(
        'mar_medications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('mar_form_id', sa.String(36), sa.ForeignKey('mar_forms.id', ondelete='CASCADE'), nullable=False),
        sa.Column('medication_name', sa.String(255), nullable=False),
        sa.Column('dosage', sa.String(255), nullable=False, server_default=''),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('stop_date', sa.Date(), nullable=True),
        sa.Column('hour', sa.String(20), nullable=True),
        sa.Column('route', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('parameter', sa.Text(), nullable=True),
        sa.Column('frequency', sa.Integer(), nullable=True),
        sa.Column('frequency_display', sa.String(100), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index('idx_mar_medications_form', 'mar_medications', ['mar_form_id', 'display_order'])

    op.create_table(
        'mar_administrations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('medication_id', sa.String(36), sa.ForeignKey('mar_medications.id', ondelete='CASCADE'), nullable=False),
        sa.Column('mar_form_id', sa.String(36), sa.ForeignKey('mar_forms.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day_of_month', sa.Integer(), nullable=False),
        sa.Column('initials', sa.String(10), nullable=True),
        sa.Column('given', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('reason_for_omission', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('administered_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('medication_id', 'day_of_month', name='uq_administration_medication_day'),
        sa.CheckConstraint('day_of_month BETWEEN 1 AND 31', name='ck_administration_day'),
    )
    op.create_index('idx_mar_administrations_form', 'mar_administrations', ['mar_form_id'])

    op.create_table(
        'mar_vital_signs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('mar_form_id', sa.String(36), sa.ForeignKey('mar_forms.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vital_type', vital_type, nullable=False),
        sa.Column('day_of_month', sa.Integer(), nullable=False),
        sa.Column('value', sa.String(50), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('mar_form_id', 'vital_type', 'day_of_month', name='uq_vital_form_type_day'),
        sa.CheckConstraint('day_of_month BETWEEN 1 AND 31', name='ck_vital_day'),
    )

    op.create_table(
        'mar_prn_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('mar_form_id', sa.String(36), sa.ForeignKey('mar_forms.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('hour', sa.String(20), nullable=True),
        sa.Column('initials', sa.String(10), nullable=True),
        sa.Column('medication', sa.String(255), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('result', sa.Text(), nullable=True),
        sa.Column('staff_signature', sa.Text(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('entry_number', sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index('idx_mar_prn_records_form', 'mar_prn_records', ['mar_form_id', 'entry_number'])

    op.create_table(
        'mar_custom_legends',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('user_profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('code', sa.String(10), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'code', name='uq_custom_legend_user_code'),
    )
    op.create_index('idx_mar_custom_legends_user_id', 'mar_custom_legends', ['user_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('action', audit_action, nullable=False),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('severity', sa.String(20), nullable=False),
        sa.Column('resource_type', sa.String(50), nullable=True),
        sa.Column('resource_id', sa.String(36), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('idx_audit_logs_user_time', 'audit_logs', ['user_id', 'timestamp'])
    op.create_index('idx_audit_logs_category', 'audit_logs', ['category'])


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        'audit_logs', 'mar_custom_legends', 'mar_prn_records', 'mar_vital_signs', 'mar_administrations',
        'mar_medications', 'mar_forms', 'nurse_patient_assignments', 'patients', 'user_profiles', 'hospitals',
    ):
        op.drop_table(table)
    bind = op.get_bind()
    for enum in (audit_action, vital_type, mar_form_status, patient_sex, user_role):
        enum.drop(bind, checkfirst=True)
