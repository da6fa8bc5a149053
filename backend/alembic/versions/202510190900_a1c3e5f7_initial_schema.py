from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "202510190900_a1c3e5f7"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.text('1')),
    )

    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=36), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('storage_used', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('storage_limit', sa.BigInteger(), nullable=True),
        sa.Column('subscription_tier', sa.String(length=16), nullable=False, server_default='free'),
        sa.Column('subscription_status', sa.String(length=32), nullable=True),
        sa.Column('subscription_end_date', sa.DateTime(), nullable=True),
        sa.Column('daily_upload_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('daily_upload_limit', sa.Integer(), nullable=True),
        sa.Column('last_upload_reset', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'folders',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('parent_id', sa.String(length=36), sa.ForeignKey('folders.id'), nullable=True, index=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('share_code', sa.String(length=16), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'files',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('original_name', sa.String(), nullable=False, index=True),
        sa.Column('file_size', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('file_type', sa.String(), nullable=True),
        sa.Column('storage_path', sa.String(), nullable=False),
        sa.Column('folder_id', sa.String(length=36), sa.ForeignKey('folders.id'), nullable=True, index=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('password_hash', sa.String(), nullable=True),
        sa.Column('share_code', sa.String(length=16), nullable=True, unique=True),
        sa.Column('download_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('download_limit', sa.Integer(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'shared_links',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('file_id', sa.String(length=36), sa.ForeignKey('files.id'), nullable=True, index=True),
        sa.Column('folder_id', sa.String(length=36), sa.ForeignKey('folders.id'), nullable=True, index=True),
        sa.Column('share_token', sa.String(length=64), nullable=False, unique=True, index=True),
        sa.Column('share_code', sa.String(length=16), nullable=True, unique=True),
        sa.Column('link_type', sa.String(length=16), nullable=False, server_default='direct'),
        sa.Column('password_hash', sa.String(), nullable=True),
        sa.Column('recipient_email', sa.String(), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('download_limit', sa.Integer(), nullable=True),
        sa.Column('download_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_by', sa.String(length=36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('(file_id IS NULL) <> (folder_id IS NULL)', name='ck_shared_links_single_target'),
    )

    op.create_table(
        'download_logs',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('file_id', sa.String(length=36), sa.ForeignKey('files.id'), nullable=False, index=True),
        sa.Column('shared_link_id', sa.String(length=36), sa.ForeignKey('shared_links.id'), nullable=True,
                  index=True),
        sa.Column('download_method', sa.String(length=32), nullable=False, server_default='direct'),
        sa.Column('downloaded_at', sa.DateTime(), nullable=True, index=True),
        sa.Column('downloader_ip', sa.String(length=64), nullable=True),
        sa.Column('downloader_user_agent', sa.String(), nullable=True),
    )

    op.create_table(
        'teams',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('admin_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'team_members',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('team_id', sa.String(length=36), sa.ForeignKey('teams.id'), nullable=False, index=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='member'),
        sa.Column('can_view', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('can_edit', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('can_share', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('can_manage_members', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('added_by', sa.String(length=36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('joined_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('team_id', 'user_id', name='uq_team_members_team_user'),
    )

    op.create_table(
        'team_invites',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('team_id', sa.String(length=36), sa.ForeignKey('teams.id'), nullable=False, index=True),
        sa.Column('email', sa.String(), nullable=False, index=True),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='member'),
        sa.Column('invited_by', sa.String(length=36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('invite_token', sa.String(length=64), nullable=False, unique=True, index=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'spaces',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('team_id', sa.String(length=36), sa.ForeignKey('teams.id'), nullable=False, index=True),
        sa.Column('parent_space_id', sa.String(length=36), sa.ForeignKey('spaces.id'), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'team_file_shares',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('team_id', sa.String(length=36), sa.ForeignKey('teams.id'), nullable=False, index=True),
        sa.Column('file_id', sa.String(length=36), sa.ForeignKey('files.id'), nullable=False, index=True),
        sa.Column('space_id', sa.String(length=36), sa.ForeignKey('spaces.id'), nullable=True),
        sa.Column('shared_by', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('shared_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('team_id', 'file_id', name='uq_team_file_shares_team_file'),
    )

    op.create_table(
        'team_policies',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('team_id', sa.String(length=36), sa.ForeignKey('teams.id'), nullable=False, unique=True),
        sa.Column('allow_external_sharing', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('require_password_for_shares', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('require_2fa', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('default_share_expiry_days', sa.Integer(), nullable=True),
        sa.Column('max_file_size_mb', sa.Integer(), nullable=True),
        sa.Column('retention_days', sa.Integer(), nullable=True),
        sa.Column('auto_join_domain', sa.String(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('team_id', sa.String(length=36), sa.ForeignKey('teams.id'), nullable=False, index=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.String(length=36), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, index=True),
    )

def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('team_policies')
    op.drop_table('team_file_shares')
    op.drop_table('spaces')
    op.drop_table('team_invites')
    op.drop_table('team_members')
    op.drop_table('teams')
    op.drop_table('download_logs')
    op.drop_table('shared_links')
    op.drop_table('files')
    op.drop_table('folders')
    op.drop_table('profiles')
    op.drop_table('users')
