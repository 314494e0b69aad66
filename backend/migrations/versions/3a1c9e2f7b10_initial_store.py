from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3a1c9e2f7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'profiles',
        sa.Column('userid', sa.String(), primary_key=True),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('short_name', sa.String(), nullable=True),
    )
    op.create_table(
        'patients',
        sa.Column('userid', sa.String(), sa.ForeignKey('profiles.userid', ondelete='CASCADE'), primary_key=True),
        sa.Column('birthday', sa.String(), nullable=True),
        sa.Column('diagnosis_date', sa.String(), nullable=True),
        sa.Column('about_me', sa.Text(), nullable=True),
    )
    op.create_table(
        'users',
        sa.Column('userid', sa.String(), primary_key=True),
        sa.Column('username', sa.String(), nullable=True),
        sa.Column('emails', sa.JSON(), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=True),
        sa.Column('terms_accepted', sa.String(), nullable=True),
        sa.Column('profile_id', sa.String(), sa.ForeignKey('profiles.userid', ondelete='SET NULL'), nullable=True),
        sa.Column('viewable_user_ids', sa.JSON(), nullable=True),
    )
    op.create_table(
        'sessions',
        sa.Column('key', sa.String(), primary_key=True),
        sa.Column('session_id', sa.Text(), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.userid', ondelete='SET NULL'), nullable=True),
        sa.CheckConstraint("key = 'session'", name='ck_sessions_singleton'),
    )
    op.create_table(
        'notes',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('userid', sa.String(), nullable=False),
        sa.Column('groupid', sa.String(), nullable=True),
        sa.Column('parentmessage', sa.String(), nullable=True),
        sa.Column('messagetext', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('createdtime', sa.DateTime(timezone=True), nullable=True),
        sa.Column('modifiedtime', sa.DateTime(timezone=True), nullable=True),
        sa.Column('replies', sa.JSON(), nullable=True),
    )
    op.create_index('ix_notes_userid', 'notes', ['userid'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_notes_userid', table_name='notes')
    op.drop_table('notes')
    op.drop_table('sessions')
    op.drop_table('users')
    op.drop_table('patients')
    op.drop_table('profiles')
