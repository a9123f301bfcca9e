"""create users and audit records tables"""

from alembic import op
import sqlalchemy as sa


revision = "202512010001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255)),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "audit_records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "actor_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
        ),
        sa.Column("event", sa.String(length=50), nullable=False),
        sa.Column("subject_type", sa.String(length=255)),
        sa.Column("subject_id", sa.String(length=36)),
        sa.Column("before", sa.JSON()),
        sa.Column("after", sa.JSON()),
        sa.Column("url", sa.String(length=2048)),
        sa.Column("ip_address", sa.String(length=64)),
        sa.Column("user_agent", sa.Text()),
        sa.Column("tags", sa.String(length=255)),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index(
        "ix_audit_records_subject_type", "audit_records", ["subject_type"]
    )
    op.create_index("ix_audit_records_actor_id", "audit_records", ["actor_id"])
    op.create_index(
        "ix_audit_records_created_at", "audit_records", ["created_at"]
    )
    op.create_index(
        "ix_audit_records_event_created_at",
        "audit_records",
        ["event", "created_at"],
    )
    op.create_index("ix_audit_records_tags", "audit_records", ["tags"])


def downgrade() -> None:
    op.drop_index("ix_audit_records_tags", table_name="audit_records")
    op.drop_index(
        "ix_audit_records_event_created_at", table_name="audit_records"
    )
    op.drop_index("ix_audit_records_created_at", table_name="audit_records")
    op.drop_index("ix_audit_records_actor_id", table_name="audit_records")
    op.drop_index(
        "ix_audit_records_subject_type", table_name="audit_records"
    )
    op.drop_table("audit_records")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
