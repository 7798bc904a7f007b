from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("submission_type", sa.String(length=24), nullable=False),
        sa.Column("submitter_id", sa.String(length=128), nullable=False),
        sa.Column("submitter_kind", sa.String(length=16), nullable=False, server_default="anonymous"),
        sa.Column("target_artwork_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("moderator_id", sa.String(length=128), nullable=True),
        sa.Column("moderator_notes", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("resolved_artwork_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("resolved_artist_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "submission_type IN ('new_artwork','edit_artwork','additional_info','bulk_artwork','bulk_artist')",
            name="ck_submission_type",
        ),
        sa.CheckConstraint("status IN ('pending','approved','rejected')", name="ck_submission_status"),
        sa.CheckConstraint(
            "(target_artwork_id IS NOT NULL) = (submission_type IN ('edit_artwork','additional_info'))",
            name="ck_submission_target_matches_type",
        ),
    )
    op.create_index("ix_submissions_submission_type", "submissions", ["submission_type"])
    op.create_index("ix_submissions_submitter_id", "submissions", ["submitter_id"])
    op.create_index("ix_submissions_target_artwork_id", "submissions", ["target_artwork_id"])
    op.create_index("ix_submissions_status", "submissions", ["status"])
    op.create_index(
        "uq_submission_one_pending_edit",
        "submissions",
        ["submitter_id", "target_artwork_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending' AND submission_type = 'edit_artwork'"),
    )

    op.create_table(
        "artworks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lon", sa.Float(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("tags", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("photos", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="approved"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("lat >= -90 AND lat <= 90 AND lon >= -180 AND lon <= 180", name="ck_artwork_coordinates"),
        sa.CheckConstraint("NOT (lat = 0 AND lon = 0)", name="ck_artwork_not_null_island"),
    )
    op.create_index("ix_artworks_lat", "artworks", ["lat"])
    op.create_index("ix_artworks_lon", "artworks", ["lon"])

    op.create_table(
        "artists",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="approved"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_artists_name", "artists", ["name"])

    op.create_table(
        "artwork_artists",
        sa.Column("artwork_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("artworks.id", ondelete="CASCADE"), primary_key=True, nullable=False),
        sa.Column("artist_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("artists.id", ondelete="CASCADE"), primary_key=True, nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="primary"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("role IN ('primary','collaborator','credited')", name="ck_artwork_artist_role"),
    )

    op.create_table(
        "consent_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=True),
        sa.Column("anonymous_token", sa.String(length=128), nullable=True),
        sa.Column("content_type", sa.String(length=16), nullable=False),
        sa.Column("content_id", sa.String(length=64), nullable=False),
        sa.Column("consent_version", sa.String(length=32), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=False),
        sa.Column("consent_text_hash", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("(user_id IS NULL) <> (anonymous_token IS NULL)", name="ck_consent_one_subject"),
        sa.CheckConstraint("content_type IN ('artwork','artist','submission')", name="ck_consent_content_type"),
    )
    op.create_index("ix_consent_records_user_id", "consent_records", ["user_id"])
    op.create_index("ix_consent_records_anonymous_token", "consent_records", ["anonymous_token"])
    op.create_index("ix_consent_records_content_id", "consent_records", ["content_id"])

    op.create_table(
        "audit_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("moderator_id", sa.String(length=128), nullable=False),
        sa.Column("decision", sa.String(length=16), nullable=False),
        sa.Column("target_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("decision IN ('approved','rejected')", name="ck_audit_decision"),
    )
    op.create_index("ix_audit_log_moderator_id", "audit_log", ["moderator_id"])
    op.create_index("ix_audit_log_target_id", "audit_log", ["target_id"])

def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("consent_records")
    op.drop_table("artwork_artists")
    op.drop_index("ix_artists_name", table_name="artists")
    op.drop_table("artists")
    op.drop_table("artworks")
    op.drop_index("uq_submission_one_pending_edit", table_name="submissions")
    op.drop_table("submissions")
