# mypy: ignore-errors
"""
Migration Alembic initiale du cœur conversationnel.

Crée les tables utilisateurs/créateurs, chatbots et leurs versions immuables, conversations,
messages et questionnaire d'intake. La clé `chatbots.current_version_id` est ajoutée après
`chatbot_versions` (dépendance circulaire).
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20260301_0001"
down_revision = None
branch_labels = None
depends_on = None


def _id() -> sa.Column:
    return sa.Column("id", sa.String(length=32), primary_key=True)


def upgrade() -> None:
    """Crée toutes les tables du cœur conversationnel."""
    op.create_table(
        "users",
        _id(),
        sa.Column("external_id", sa.String(length=128), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "creators",
        _id(),
        sa.Column("slug", sa.String(length=128), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "creator_users",
        _id(),
        sa.Column(
            "creator_id",
            sa.String(length=32),
            sa.ForeignKey("creators.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.String(length=32),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.UniqueConstraint("creator_id", "user_id", name="uq_creator_user"),
    )
    op.create_table(
        "chatbots",
        _id(),
        sa.Column(
            "creator_id",
            sa.String(length=32),
            sa.ForeignKey("creators.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("short_description", sa.String(length=512), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("system_prompt", sa.Text(), nullable=True),
        sa.Column("model_provider", sa.String(length=64), nullable=True),
        sa.Column("model_name", sa.String(length=128), nullable=True),
        sa.Column("vector_namespace", sa.String(length=255), nullable=True),
        sa.Column("config_json", sa.JSON(), nullable=True),
        sa.Column("rag_settings_json", sa.JSON(), nullable=True),
        sa.Column("current_version_id", sa.String(length=32), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "chatbot_versions",
        _id(),
        sa.Column(
            "chatbot_id",
            sa.String(length=32),
            sa.ForeignKey("chatbots.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("system_prompt", sa.Text(), nullable=False),
        sa.Column("model_provider", sa.String(length=64), nullable=False),
        sa.Column("model_name", sa.String(length=128), nullable=False),
        sa.Column("vector_namespace", sa.String(length=255), nullable=False),
        sa.Column("config_json", sa.JSON(), nullable=True),
        sa.Column("rag_settings_json", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("changelog", sa.Text(), nullable=True),
        sa.Column(
            "created_by_user_id",
            sa.String(length=32),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("activated_at", sa.DateTime(), nullable=True),
        sa.Column("deactivated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("chatbot_id", "version_number", name="uq_chatbot_version_number"),
    )
    with op.batch_alter_table("chatbots") as batch:
        batch.create_foreign_key(
            "fk_chatbots_current_version",
            "chatbot_versions",
            ["current_version_id"],
            ["id"],
            ondelete="SET NULL",
        )
    op.create_table(
        "conversations",
        _id(),
        sa.Column(
            "chatbot_id",
            sa.String(length=32),
            sa.ForeignKey("chatbots.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "chatbot_version_id",
            sa.String(length=32),
            sa.ForeignKey("chatbot_versions.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "user_id",
            sa.String(length=32),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("message_count", sa.Integer(), nullable=False),
        sa.Column("intake_completed", sa.Boolean(), nullable=False),
        sa.Column("intake_completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "messages",
        _id(),
        sa.Column(
            "conversation_id",
            sa.String(length=32),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.String(length=32),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("source_ids", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("conversation_id", "seq", name="uq_message_seq"),
    )
    op.create_table(
        "intake_questions",
        _id(),
        sa.Column("slug", sa.String(length=128), nullable=False, unique=True),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("helper_text", sa.Text(), nullable=True),
        sa.Column("response_type", sa.String(length=16), nullable=False),
        sa.Column("options", sa.JSON(), nullable=True),
        sa.Column(
            "created_by_user_id",
            sa.String(length=32),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "chatbot_intake_questions",
        _id(),
        sa.Column(
            "chatbot_id",
            sa.String(length=32),
            sa.ForeignKey("chatbots.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "intake_question_id",
            sa.String(length=32),
            sa.ForeignKey("intake_questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("intake_question_id", "chatbot_id", name="uq_question_chatbot"),
    )
    op.create_table(
        "intake_responses",
        _id(),
        sa.Column(
            "intake_question_id",
            sa.String(length=32),
            sa.ForeignKey("intake_questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.String(length=32),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "chatbot_id",
            sa.String(length=32),
            sa.ForeignKey("chatbots.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("value", sa.JSON(), nullable=False),
        sa.Column("reusable_across_frameworks", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "user_id", "intake_question_id", "chatbot_id", name="uq_intake_response_scope"
        ),
    )


def downgrade() -> None:
    """Supprime les tables dans l'ordre inverse des dépendances."""
    op.drop_table("intake_responses")
    op.drop_table("chatbot_intake_questions")
    op.drop_table("intake_questions")
    op.drop_table("messages")
    op.drop_table("conversations")
    with op.batch_alter_table("chatbots") as batch:
        batch.drop_constraint("fk_chatbots_current_version", type_="foreignkey")
    op.drop_table("chatbot_versions")
    op.drop_table("chatbots")
    op.drop_table("creator_users")
    op.drop_table("creators")
    op.drop_table("users")
