"""initial schema

Revision ID: 3b9e1c4d2a10
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9e1c4d2a10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
TZ = sa.DateTime(timezone=True)

user_type = sa.Enum("admin", "sub_admin", "user", name="user_type")
invitation_type = sa.Enum("new_joiner", "existing_joiner", name="invitation_type")
progress_status = sa.Enum(
    "not_started", "in_progress", "completed", name="progress_status"
)


def _id() -> sa.Column:
    return sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True)


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, TZ, nullable=False, server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", TZ, nullable=False, server_default=sa.func.now())


def _fk(name: str, target: str, ondelete: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name, sa.Integer(), sa.ForeignKey(target, ondelete=ondelete), nullable=nullable
    )


def _progress_table(name: str, key: str, target: str, with_percentage: bool = True) -> None:
    columns = [
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        _fk(key, target, "CASCADE"),
        sa.Column("status", progress_status, nullable=False, server_default="not_started"),
    ]
    if with_percentage:
        columns.append(
            sa.Column(
                "completion_percentage",
                sa.Numeric(5, 2),
                nullable=False,
                server_default="0",
            )
        )
    columns += [
        sa.Column("started_at", TZ),
        sa.Column("completed_at", TZ),
        sa.UniqueConstraint("user_id", key),
    ]
    op.create_table(name, *columns)


def upgrade() -> None:
    # --- Identity ---
    op.create_table(
        "users",
        _id(),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("organization", sa.Text(), nullable=False),
        sa.Column("sub_organization", JSON),
        sa.Column("asset", sa.Text(), nullable=False),
        sa.Column("sub_asset", sa.Text(), nullable=False),
        sa.Column("user_type", user_type, nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        _created_at("last_login"),
        _created_at(),
        _updated_at(),
    )
    op.create_table(
        "sub_admins",
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("job_title", sa.Text(), nullable=False),
        sa.Column("total_frontliners", sa.Integer()),
        sa.Column("eid", sa.String(64), nullable=False, unique=True),
        sa.Column("phone_number", sa.Text(), nullable=False),
    )
    op.create_table(
        "normal_users",
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("role_category", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("seniority", sa.Text(), nullable=False),
        sa.Column("eid", sa.String(64), nullable=False, unique=True),
        sa.Column("phone_number", sa.Text(), nullable=False),
        sa.Column("existing", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "initial_assessment", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
    )
    op.create_table(
        "invitations",
        _id(),
        _fk("created_by", "sub_admins.user_id", "CASCADE"),
        sa.Column("type", invitation_type, nullable=False),
        sa.Column("token_hash", sa.String(128), nullable=False, unique=True),
        _created_at(),
    )
    op.create_table(
        "password_resets",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("token_hash", sa.String(128), nullable=False, unique=True),
        sa.Column("expires_at", TZ, nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )

    # --- Taxonomy ---
    op.create_table(
        "assets",
        _id(),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        _created_at(),
    )
    op.create_table(
        "sub_assets",
        _id(),
        _fk("asset_id", "assets.id", "CASCADE"),
        sa.Column("name", sa.String(255), nullable=False),
        _created_at(),
    )
    op.create_table(
        "organizations",
        _id(),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        _fk("asset_id", "assets.id", "CASCADE", nullable=True),
        _fk("sub_asset_id", "sub_assets.id", "CASCADE", nullable=True),
        _created_at(),
    )
    op.create_table(
        "sub_organizations",
        _id(),
        _fk("asset_id", "assets.id", "CASCADE"),
        _fk("sub_asset_id", "sub_assets.id", "CASCADE"),
        _fk("organization_id", "organizations.id", "CASCADE"),
        sa.Column("name", sa.String(255), nullable=False),
        _created_at(),
    )
    op.create_table(
        "role_categories",
        _id(),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        _created_at(),
    )
    op.create_table(
        "roles",
        _id(),
        _fk("category_id", "role_categories.id", "CASCADE"),
        sa.Column("name", sa.String(255), nullable=False),
        _created_at(),
    )
    op.create_table(
        "seniority_levels",
        _id(),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        _created_at(),
    )

    # --- Training hierarchy ---
    op.create_table(
        "training_areas",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("image_url", sa.Text()),
        _created_at(),
        _updated_at(),
    )
    op.create_table(
        "modules",
        _id(),
        _fk("training_area_id", "training_areas.id", "CASCADE"),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("image_url", sa.Text()),
        _created_at(),
        _updated_at(),
    )
    op.create_table(
        "courses",
        _id(),
        _fk("module_id", "modules.id", "CASCADE"),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("image_url", sa.Text()),
        sa.Column("internal_note", sa.Text()),
        sa.Column("duration", sa.Integer()),
        sa.Column("show_duration", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("level", sa.String(32), nullable=False, server_default="beginner"),
        sa.Column("show_level", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
    )
    op.create_table(
        "units",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("internal_note", sa.Text()),
        sa.Column("order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("duration", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("show_duration", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("xp_points", sa.Integer(), nullable=False, server_default="100"),
        _created_at(),
        _updated_at(),
    )
    op.create_table(
        "course_units",
        _id(),
        _fk("course_id", "courses.id", "CASCADE"),
        _fk("unit_id", "units.id", "CASCADE"),
        sa.Column("order", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_table(
        "learning_blocks",
        _id(),
        _fk("unit_id", "units.id", "CASCADE"),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("content", sa.Text()),
        sa.Column("video_url", sa.Text()),
        sa.Column("image_url", sa.Text()),
        sa.Column("interactive_data", JSON),
        sa.Column("order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("xp_points", sa.Integer(), nullable=False, server_default="10"),
        _created_at(),
        _updated_at(),
    )
    op.create_table(
        "unit_role_assignments",
        _id(),
        _fk("unit_id", "units.id", "CASCADE"),
        _fk("role_category_id", "role_categories.id", "SET NULL", nullable=True),
        _fk("role_id", "roles.id", "SET NULL", nullable=True),
        _fk("seniority_level_id", "seniority_levels.id", "SET NULL", nullable=True),
        _fk("asset_id", "assets.id", "SET NULL", nullable=True),
        _created_at(),
        sa.UniqueConstraint(
            "unit_id",
            "role_category_id",
            "role_id",
            "seniority_level_id",
            "asset_id",
            name="uq_unit_role_assignment",
        ),
    )

    # --- Assessments ---
    op.create_table(
        "assessments",
        _id(),
        _fk("training_area_id", "training_areas.id", "SET NULL", nullable=True),
        _fk("module_id", "modules.id", "SET NULL", nullable=True),
        _fk("unit_id", "units.id", "SET NULL", nullable=True),
        _fk("course_id", "courses.id", "SET NULL", nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("placement", sa.String(32), nullable=False, server_default="end"),
        sa.Column("is_graded", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "show_correct_answers", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("passing_score", sa.Integer()),
        sa.Column("has_time_limit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("time_limit", sa.Integer()),
        sa.Column("max_retakes", sa.Integer(), nullable=False, server_default="3"),
        sa.Column(
            "has_certificate", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("certificate_template", sa.Text()),
        sa.Column("xp_points", sa.Integer(), nullable=False, server_default="50"),
        _created_at(),
        _updated_at(),
    )
    op.create_table(
        "questions",
        _id(),
        _fk("assessment_id", "assessments.id", "CASCADE"),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("question_type", sa.String(32), nullable=False, server_default="mcq"),
        sa.Column("options", JSON),
        sa.Column("correct_answer", sa.Text(), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default="1"),
        _created_at(),
        _updated_at(),
    )
    op.create_table(
        "assessment_attempts",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        _fk("assessment_id", "assessments.id", "CASCADE"),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=False),
        sa.Column("answers", JSON),
        _created_at("started_at"),
        sa.Column("completed_at", TZ),
    )

    # --- Progress ---
    _progress_table("user_training_area_progress", "training_area_id", "training_areas.id")
    _progress_table("user_module_progress", "module_id", "modules.id")
    _progress_table("user_course_progress", "course_id", "courses.id")
    _progress_table("user_course_unit_progress", "course_unit_id", "course_units.id")
    _progress_table(
        "user_learning_block_progress",
        "learning_block_id",
        "learning_blocks.id",
        with_percentage=False,
    )

    # --- Gamification ---
    op.create_table(
        "badges",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("image_url", sa.Text()),
        sa.Column("xp_points", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("type", sa.String(64), nullable=False),
        _created_at(),
    )
    op.create_table(
        "user_badges",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        _fk("badge_id", "badges.id", "CASCADE"),
        _created_at("earned_at"),
        sa.UniqueConstraint("user_id", "badge_id"),
    )
    op.create_table(
        "certificates",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        _fk("training_area_id", "training_areas.id", "CASCADE", nullable=True),
        _fk("course_id", "courses.id", "SET NULL", nullable=True),
        sa.Column("certificate_number", sa.String(128), nullable=False, unique=True),
        _created_at("issue_date"),
        sa.Column("expiry_date", TZ),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
    )

    # --- System ---
    op.create_table(
        "notifications",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("metadata", JSON),
        _created_at(),
    )
    op.create_table(
        "media_files",
        _id(),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("original_name", sa.Text(), nullable=False),
        sa.Column("mime_type", sa.String(255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        _fk("uploaded_by", "users.id", "CASCADE"),
        _created_at(),
        _updated_at(),
    )
    op.create_table(
        "course_enrollments",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        _fk("course_id", "courses.id", "CASCADE"),
        _created_at("enrolled_at"),
        sa.Column(
            "enrollment_source", sa.String(32), nullable=False, server_default="manual"
        ),
        sa.UniqueConstraint("user_id", "course_id"),
    )


def downgrade() -> None:
    for table in (
        "course_enrollments",
        "media_files",
        "notifications",
        "certificates",
        "user_badges",
        "badges",
        "user_learning_block_progress",
        "user_course_unit_progress",
        "user_course_progress",
        "user_module_progress",
        "user_training_area_progress",
        "assessment_attempts",
        "questions",
        "assessments",
        "unit_role_assignments",
        "learning_blocks",
        "course_units",
        "units",
        "courses",
        "modules",
        "training_areas",
        "seniority_levels",
        "roles",
        "role_categories",
        "sub_organizations",
        "organizations",
        "sub_assets",
        "assets",
        "password_resets",
        "invitations",
        "normal_users",
        "sub_admins",
        "users",
    ):
        op.drop_table(table)
    for enum in (progress_status, invitation_type, user_type):
        enum.drop(op.get_bind(), checkfirst=True)
