"""initial_schema

Revision ID: 3b1f0c9a7e21
Revises:
Create Date: 2026-02-09 18:12:40.512830

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '3b1f0c9a7e21'
down_revision = None
branch_labels = None
depends_on = None

userrole = sa.Enum('PARTICIPANT', 'ORGANIZER', 'ADMIN', name='userrole')
participanttype = sa.Enum('IIIT', 'NON_IIIT', name='participanttype')
eventtype = sa.Enum('NORMAL', 'MERCHANDISE', name='eventtype')
eligibility = sa.Enum('ALL', 'IIIT', 'NON_IIIT', name='eligibility')
eventstatus = sa.Enum('DRAFT', 'PUBLISHED', 'CLOSED', 'ONGOING', 'COMPLETED', name='eventstatus')
formfieldtype = sa.Enum(
    'TEXT', 'TEXTAREA', 'NUMBER', 'EMAIL', 'DROPDOWN', 'CHECKBOX', 'FILE', name='formfieldtype'
)
registrationstate = sa.Enum(
    'AWAITING_PAYMENT', 'PAYMENT_SUBMITTED', 'CONFIRMED', 'COMPLETED', 'REJECTED', 'CANCELLED',
    name='registrationstate',
)


def _timestamps():
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('first_name', sa.String(50), nullable=False),
        sa.Column('last_name', sa.String(50), nullable=False),
        sa.Column('role', userrole, nullable=False),
        sa.Column('participant_type', participanttype, nullable=True),
        sa.Column('organizer_name', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('type', eventtype, nullable=False),
        sa.Column('organizer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('eligibility', eligibility, nullable=False),
        sa.Column('start_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('end_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('registration_deadline', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('registration_limit', sa.Integer(), nullable=False),
        sa.Column('registration_count', sa.Integer(), nullable=False),
        sa.Column('registration_fee', sa.DECIMAL(10, 2), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('status', eventstatus, nullable=False),
        sa.Column('form_locked', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('registration_limit >= 0', name='check_event_registration_limit'),
        sa.CheckConstraint('registration_count >= 0', name='check_event_registration_count'),
    )
    op.create_index('ix_events_status', 'events', ['status'])

    op.create_table(
        'custom_form_fields',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_id', sa.Integer(), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('field_name', sa.String(255), nullable=False),
        sa.Column('field_type', formfieldtype, nullable=False),
        sa.Column('required', sa.Boolean(), nullable=False),
        sa.Column('options', sa.JSON(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
    )

    op.create_table(
        'merchandise_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_id', sa.Integer(), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('sizes', sa.JSON(), nullable=False),
        sa.Column('colors', sa.JSON(), nullable=False),
        sa.Column('variants', sa.JSON(), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('price', sa.DECIMAL(10, 2), nullable=False),
        sa.Column('purchase_limit', sa.Integer(), nullable=False),
        sa.CheckConstraint('stock >= 0', name='check_item_stock_non_negative'),
        sa.CheckConstraint('purchase_limit >= 1', name='check_item_purchase_limit'),
    )

    op.create_table(
        'registrations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_id', sa.Integer(), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('participant_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('state', registrationstate, nullable=False),
        sa.Column('form_responses', sa.JSON(), nullable=False),
        sa.Column('ticket_id', sa.String(32), nullable=True, unique=True),
        sa.Column('qr_code', sa.Text(), nullable=True),
        sa.Column('total_amount', sa.DECIMAL(10, 2), nullable=False),
        sa.Column('payment_proof', sa.String(1024), nullable=True),
        sa.Column('attendance', sa.Boolean(), nullable=False),
        sa.Column('attendance_marked_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        'ix_registrations_event_participant', 'registrations', ['event_id', 'participant_id']
    )

    op.create_table(
        'merchandise_selections',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'registration_id',
            sa.Integer(),
            sa.ForeignKey('registrations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('merchandise_items.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('size', sa.String(50), nullable=False),
        sa.Column('color', sa.String(50), nullable=False),
        sa.Column('variant', sa.String(100), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.DECIMAL(10, 2), nullable=False),
        sa.CheckConstraint('quantity > 0', name='check_selection_quantity_positive'),
    )


def downgrade():
    op.drop_table('merchandise_selections')
    op.drop_index('ix_registrations_event_participant', table_name='registrations')
    op.drop_table('registrations')
    op.drop_table('merchandise_items')
    op.drop_table('custom_form_fields')
    op.drop_index('ix_events_status', table_name='events')
    op.drop_table('events')
    op.drop_table('users')

    for enum in (
        registrationstate, formfieldtype, eventstatus, eligibility, eventtype,
        participanttype, userrole,
    ):
        enum.drop(op.get_bind(), checkfirst=True)
