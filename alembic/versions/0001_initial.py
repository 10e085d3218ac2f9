"""initial

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='customer'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('phone', name='users_phone_key'),
    )
    op.create_index('ix_users_role', 'users', ['role'], unique=False)

    op.create_table('routes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('origin', sa.String(length=128), nullable=False),
        sa.Column('destination', sa.String(length=128), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_routes_code', 'routes', ['code'], unique=True)

    op.create_table('vehicles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('registration_number', sa.String(length=64), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('capacity >= 1', name='ck_vehicle_capacity_positive'),
    )
    op.create_index('ix_vehicles_registration_number', 'vehicles', ['registration_number'], unique=True)

    op.create_table('drivers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    )

    op.create_table('trips',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('route_id', sa.Integer(), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), nullable=False),
        sa.Column('driver_id', sa.Integer(), nullable=True),
        sa.Column('departure_time', sa.DateTime(), nullable=False),
        sa.Column('arrival_time', sa.DateTime(), nullable=True),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('available_seats', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='SCHEDULED'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['route_id'], ['routes.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['driver_id'], ['drivers.id'], ondelete='SET NULL'),
        sa.CheckConstraint('available_seats >= 0', name='ck_trip_available_seats_non_negative'),
    )
    op.create_index('ix_trips_route_id', 'trips', ['route_id'], unique=False)
    op.create_index('ix_trips_vehicle_id', 'trips', ['vehicle_id'], unique=False)
    op.create_index('ix_trips_driver_id', 'trips', ['driver_id'], unique=False)
    op.create_index('ix_trips_departure_time', 'trips', ['departure_time'], unique=False)
    op.create_index('ix_trips_status', 'trips', ['status'], unique=False)

    op.create_table('ledger_accounts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('balance', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='RESTRICT'),
        sa.CheckConstraint('balance >= 0', name='ck_ledger_balance_non_negative'),
    )
    op.create_index('ix_ledger_accounts_owner_id', 'ledger_accounts', ['owner_id'], unique=True)

    op.create_table('tickets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_number', sa.String(length=64), nullable=False),
        sa.Column('trip_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('origin', sa.String(length=32), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=True),
        sa.Column('ledger_account_id', sa.Integer(), nullable=True),
        sa.Column('coin_cost', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('booker_phone', sa.String(length=32), nullable=True),
        sa.Column('pickup_address', sa.String(length=512), nullable=True),
        sa.Column('dropoff_address', sa.String(length=512), nullable=True),
        sa.Column('total_passengers', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('booked_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('payment_date', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.String(length=1024), nullable=True),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['customer_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['ledger_account_id'], ['ledger_accounts.id'], ondelete='RESTRICT'),
    )
    op.create_index('ix_tickets_ticket_number', 'tickets', ['ticket_number'], unique=True)
    op.create_index('ix_tickets_trip_id', 'tickets', ['trip_id'], unique=False)
    op.create_index('ix_tickets_customer_id', 'tickets', ['customer_id'], unique=False)
    op.create_index('ix_tickets_ledger_account_id', 'tickets', ['ledger_account_id'], unique=False)
    op.create_index('ix_tickets_status', 'tickets', ['status'], unique=False)

    op.create_table('booking_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('reference', sa.String(length=64), nullable=False),
        sa.Column('trip_id', sa.Integer(), nullable=False),
        sa.Column('requester_id', sa.Integer(), nullable=False),
        sa.Column('proof_url', sa.String(length=1024), nullable=True),
        sa.Column('booker_phone', sa.String(length=32), nullable=True),
        sa.Column('pickup_address', sa.String(length=512), nullable=True),
        sa.Column('dropoff_address', sa.String(length=512), nullable=True),
        sa.Column('notes', sa.String(length=1024), nullable=True),
        sa.Column('total_passengers', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('submitted_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('reviewed_by', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.String(length=1024), nullable=True),
        sa.Column('ticket_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['reviewed_by'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_booking_requests_reference', 'booking_requests', ['reference'], unique=True)
    op.create_index('ix_booking_requests_trip_id', 'booking_requests', ['trip_id'], unique=False)
    op.create_index('ix_booking_requests_requester_id', 'booking_requests', ['requester_id'], unique=False)
    op.create_index('ix_booking_requests_status', 'booking_requests', ['status'], unique=False)

    op.create_table('passengers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('request_id', sa.Integer(), nullable=True),
        sa.Column('ticket_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('identity_number', sa.String(length=64), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('seat_number', sa.String(length=16), nullable=True),
        sa.ForeignKeyConstraint(['request_id'], ['booking_requests.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'], ondelete='CASCADE'),
        sa.CheckConstraint('(request_id IS NULL) <> (ticket_id IS NULL)', name='ck_passenger_single_parent'),
    )
    op.create_index('ix_passengers_request_id', 'passengers', ['request_id'], unique=False)
    op.create_index('ix_passengers_ticket_id', 'passengers', ['ticket_id'], unique=False)
    op.create_index('ix_passengers_seat_number', 'passengers', ['seat_number'], unique=False)

    op.create_table('ledger_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('entry_type', sa.String(length=32), nullable=False),
        sa.Column('reason', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('balance_before', sa.BigInteger(), nullable=False),
        sa.Column('balance_after', sa.BigInteger(), nullable=False),
        sa.Column('reference_id', sa.String(length=128), nullable=True),
        sa.Column('reference_type', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.String(length=1024), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['ledger_accounts.id'], ondelete='RESTRICT'),
        sa.CheckConstraint('balance_after = balance_before + amount', name='ck_ledger_entry_closed'),
        sa.CheckConstraint('balance_after >= 0', name='ck_ledger_entry_non_negative'),
    )
    op.create_index('ix_ledger_entries_account_id', 'ledger_entries', ['account_id'], unique=False)
    op.create_index('ix_ledger_entries_entry_type', 'ledger_entries', ['entry_type'], unique=False)
    op.create_index('ix_ledger_entries_reference_id', 'ledger_entries', ['reference_id'], unique=False)

    op.create_table('coin_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('notes', sa.String(length=1024), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_reason', sa.String(length=1024), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['ledger_accounts.id'], ondelete='CASCADE'),
        sa.CheckConstraint('amount > 0', name='ck_coin_request_amount_positive'),
    )
    op.create_index('ix_coin_requests_account_id', 'coin_requests', ['account_id'], unique=False)
    op.create_index('ix_coin_requests_status', 'coin_requests', ['status'], unique=False)

    op.create_table('travel_documents',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('document_number', sa.String(length=64), nullable=False),
        sa.Column('trip_id', sa.Integer(), nullable=False),
        sa.Column('ledger_account_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='DRAFT'),
        sa.Column('coin_cost', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('notes', sa.String(length=1024), nullable=True),
        sa.Column('issued_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['ledger_account_id'], ['ledger_accounts.id'], ondelete='RESTRICT'),
    )
    op.create_index('ix_travel_documents_document_number', 'travel_documents', ['document_number'], unique=True)
    op.create_index('ix_travel_documents_trip_id', 'travel_documents', ['trip_id'], unique=False)
    op.create_index('ix_travel_documents_ledger_account_id', 'travel_documents', ['ledger_account_id'], unique=False)
    op.create_index('ix_travel_documents_status', 'travel_documents', ['status'], unique=False)

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('object_type', sa.String(length=128), nullable=True),
        sa.Column('object_id', sa.String(length=128), nullable=True),
        sa.Column('detail', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'], unique=False)


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('travel_documents')
    op.drop_table('coin_requests')
    op.drop_table('ledger_entries')
    op.drop_table('passengers')
    op.drop_table('booking_requests')
    op.drop_table('tickets')
    op.drop_table('ledger_accounts')
    op.drop_table('trips')
    op.drop_table('drivers')
    op.drop_table('vehicles')
    op.drop_table('routes')
    op.drop_table('users')
