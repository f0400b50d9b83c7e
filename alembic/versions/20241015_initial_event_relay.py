"""initial event relay tables

Revision ID: 20241015_initial_event_relay
Revises:
Create Date: 2024-10-15
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20241015_initial_event_relay"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'events',
        sa.Column('id', sa.String(36), primary_key=True, index=True),
        sa.Column('event_name', sa.String(255), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('properties', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_events_event_name', 'events', ['event_name'])
    op.create_index('ix_events_timestamp', 'events', ['timestamp'])

    op.create_table(
        'destinations',
        sa.Column('id', sa.String(25), primary_key=True, index=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('method', sa.String(10), nullable=False, server_default='POST'),
        sa.Column('event_types', sa.JSON(), nullable=False),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('transform', sa.JSON(), nullable=True),
        sa.Column('secret_key_encrypted', sa.Text(), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('timeout', sa.Integer(), nullable=False, server_default='5000'),
        sa.Column('retry_strategy', sa.JSON(), nullable=True),
        sa.Column('last_sent', sa.DateTime(), nullable=True),
        sa.Column('success_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failure_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_destinations_type', 'destinations', ['type'])
    op.create_index('ix_destinations_enabled', 'destinations', ['enabled'])

    op.create_table(
        'transformations',
        sa.Column('id', sa.String(25), primary_key=True, index=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_transformations_type', 'transformations', ['type'])
    op.create_index('ix_transformations_enabled', 'transformations', ['enabled'])

    op.create_table(
        'routes',
        sa.Column('id', sa.String(25), primary_key=True, index=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('event_types', sa.JSON(), nullable=False),
        sa.Column('transformation_id', sa.String(25), sa.ForeignKey('transformations.id'), nullable=False, index=True),
        sa.Column('destination_id', sa.String(25), sa.ForeignKey('destinations.id'), nullable=False, index=True),
        sa.Column('condition', sa.JSON(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_used', sa.DateTime(), nullable=True),
        sa.Column('use_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_routes_enabled', 'routes', ['enabled'])
    op.create_index('ix_routes_priority', 'routes', ['priority'])

    op.create_table(
        'inbound_provider_events',
        sa.Column('id', sa.String(25), primary_key=True, index=True),
        sa.Column('provider_event_id', sa.String(255), nullable=False, unique=True),
        sa.Column('provider_type', sa.String(40), nullable=False),
        sa.Column('event_type', sa.String(120), nullable=False),
        sa.Column('provider_event_timestamp', sa.DateTime(), nullable=False),
        sa.Column('provider_account', sa.String(255), nullable=True),
        sa.Column('api_version', sa.String(40), nullable=True),
        sa.Column('object_id', sa.String(255), nullable=True),
        sa.Column('object_type', sa.String(80), nullable=True),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('processing_errors', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_inbound_provider_type', 'inbound_provider_events', ['provider_type', 'event_type'])
    op.create_index('ix_inbound_processed_time', 'inbound_provider_events', ['processed', 'provider_event_timestamp'])
    op.create_index('ix_inbound_object_id', 'inbound_provider_events', ['object_id'])


def downgrade() -> None:
    op.drop_index('ix_inbound_object_id', table_name='inbound_provider_events')
    op.drop_index('ix_inbound_processed_time', table_name='inbound_provider_events')
    op.drop_index('ix_inbound_provider_type', table_name='inbound_provider_events')
    op.drop_table('inbound_provider_events')

    op.drop_index('ix_routes_priority', table_name='routes')
    op.drop_index('ix_routes_enabled', table_name='routes')
    op.drop_table('routes')

    op.drop_index('ix_transformations_enabled', table_name='transformations')
    op.drop_index('ix_transformations_type', table_name='transformations')
    op.drop_table('transformations')

    op.drop_index('ix_destinations_enabled', table_name='destinations')
    op.drop_index('ix_destinations_type', table_name='destinations')
    op.drop_table('destinations')

    op.drop_index('ix_events_timestamp', table_name='events')
    op.drop_index('ix_events_event_name', table_name='events')
    op.drop_table('events')
