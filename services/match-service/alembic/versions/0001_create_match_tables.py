from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "scribe_requests",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("requester_id", sa.String(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("urgency", sa.String(), nullable=False, server_default="normal"),
        sa.Column("required_languages", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
    )
    op.create_index("ix_scribe_requests_requester_id", "scribe_requests", ["requester_id"])
    op.create_index("ix_scribe_requests_status", "scribe_requests", ["status"])

    op.create_table(
        "match_attempts",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("request_id", sa.String(), nullable=False),
        sa.Column("volunteer_id", sa.String(), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("distance_km", sa.Float(), nullable=False),
        sa.Column("state", sa.String(), nullable=False),
        sa.Column("proposed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_match_attempts_request_id", "match_attempts", ["request_id"])
    op.create_index("ix_match_attempts_volunteer_id", "match_attempts", ["volunteer_id"])
    op.create_index("ix_match_attempts_state", "match_attempts", ["state"])
    # one live proposal per request
    op.create_index(
        "uq_match_attempts_active_request",
        "match_attempts",
        ["request_id"],
        unique=True,
        postgresql_where=sa.text("state = 'proposed'"),
        sqlite_where=sa.text("state = 'proposed'"),
    )


def downgrade():
    op.drop_table("match_attempts")
    op.drop_table("scribe_requests")
