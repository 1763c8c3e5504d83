"""SQLAlchemy table definitions.

Column types are kept portable (Integer identity keys, JSON, non-native
enums fall back to CHECK constraints) so the same metadata runs on
PostgreSQL in production and SQLite in the test suite. Referential
actions are declared on the foreign keys and enforced by the database.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.timeutil import utcnow
from app.db.engine import Base

USER_TYPES = ("admin", "sub_admin", "user")
INVITATION_TYPES = ("new_joiner", "existing_joiner")
PROGRESS_STATUSES = ("not_started", "in_progress", "completed")

UserTypeEnum = Enum(*USER_TYPES, name="user_type")
InvitationTypeEnum = Enum(*INVITATION_TYPES, name="invitation_type")
ProgressStatusEnum = Enum(*PROGRESS_STATUSES, name="progress_status")

JsonType = JSON().with_variant(JSONB(), "postgresql")


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )


def _updated_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )


def _fk(target: str, ondelete: str, nullable: bool = False) -> Mapped[Any]:
    return mapped_column(
        Integer, ForeignKey(target, ondelete=ondelete), nullable=nullable
    )


# --- Identity ---


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    organization: Mapped[str] = mapped_column(Text, nullable=False)
    sub_organization: Mapped[list[str] | None] = mapped_column(JsonType)
    asset: Mapped[str] = mapped_column(Text, nullable=False)
    sub_asset: Mapped[str] = mapped_column(Text, nullable=False)
    user_type: Mapped[str] = mapped_column(UserTypeEnum, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_login: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class SubAdminRow(Base):
    __tablename__ = "sub_admins"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    job_title: Mapped[str] = mapped_column(Text, nullable=False)
    total_frontliners: Mapped[int | None] = mapped_column(Integer)
    eid: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    phone_number: Mapped[str] = mapped_column(Text, nullable=False)


class NormalUserRow(Base):
    __tablename__ = "normal_users"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    role_category: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False)
    seniority: Mapped[str] = mapped_column(Text, nullable=False)
    eid: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    phone_number: Mapped[str] = mapped_column(Text, nullable=False)
    existing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    initial_assessment: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )


class InvitationRow(Base):
    __tablename__ = "invitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_by: Mapped[int] = _fk("sub_admins.user_id", "CASCADE")
    type: Mapped[str] = mapped_column(InvitationTypeEnum, nullable=False)
    token_hash: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    created_at: Mapped[datetime] = _created_at()


class PasswordResetRow(Base):
    __tablename__ = "password_resets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = _fk("users.id", "CASCADE")
    token_hash: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = _created_at()


# --- Taxonomy ---


class AssetRow(Base):
    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = _created_at()


class SubAssetRow(Base):
    __tablename__ = "sub_assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[int] = _fk("assets.id", "CASCADE")
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = _created_at()


class OrganizationRow(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    asset_id: Mapped[int | None] = _fk("assets.id", "CASCADE", nullable=True)
    sub_asset_id: Mapped[int | None] = _fk("sub_assets.id", "CASCADE", nullable=True)
    created_at: Mapped[datetime] = _created_at()


class SubOrganizationRow(Base):
    __tablename__ = "sub_organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[int] = _fk("assets.id", "CASCADE")
    sub_asset_id: Mapped[int] = _fk("sub_assets.id", "CASCADE")
    organization_id: Mapped[int] = _fk("organizations.id", "CASCADE")
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = _created_at()


class RoleCategoryRow(Base):
    __tablename__ = "role_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = _created_at()


class RoleRow(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = _fk("role_categories.id", "CASCADE")
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = _created_at()


class SeniorityLevelRow(Base):
    __tablename__ = "seniority_levels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = _created_at()


# --- Training hierarchy ---


class TrainingAreaRow(Base):
    __tablename__ = "training_areas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class ModuleRow(Base):
    __tablename__ = "modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    training_area_id: Mapped[int] = _fk("training_areas.id", "CASCADE")
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[int] = _fk("modules.id", "CASCADE")
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)
    internal_note: Mapped[str | None] = mapped_column(Text)
    duration: Mapped[int | None] = mapped_column(Integer)
    show_duration: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    level: Mapped[str] = mapped_column(String(32), nullable=False, default="beginner")
    show_level: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class UnitRow(Base):
    __tablename__ = "units"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    internal_note: Mapped[str | None] = mapped_column(Text)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    show_duration: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    xp_points: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class CourseUnitRow(Base):
    __tablename__ = "course_units"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course_id: Mapped[int] = _fk("courses.id", "CASCADE")
    unit_id: Mapped[int] = _fk("units.id", "CASCADE")
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class LearningBlockRow(Base):
    __tablename__ = "learning_blocks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    unit_id: Mapped[int] = _fk("units.id", "CASCADE")
    type: Mapped[str] = mapped_column(String(32), nullable=False)  # video|image|text|interactive
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str | None] = mapped_column(Text)
    video_url: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)
    interactive_data: Mapped[Any | None] = mapped_column(JsonType)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    xp_points: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class UnitRoleAssignmentRow(Base):
    __tablename__ = "unit_role_assignments"
    __table_args__ = (
        UniqueConstraint(
            "unit_id",
            "role_category_id",
            "role_id",
            "seniority_level_id",
            "asset_id",
            name="uq_unit_role_assignment",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    unit_id: Mapped[int] = _fk("units.id", "CASCADE")
    role_category_id: Mapped[int | None] = _fk(
        "role_categories.id", "SET NULL", nullable=True
    )
    role_id: Mapped[int | None] = _fk("roles.id", "SET NULL", nullable=True)
    seniority_level_id: Mapped[int | None] = _fk(
        "seniority_levels.id", "SET NULL", nullable=True
    )
    asset_id: Mapped[int | None] = _fk("assets.id", "SET NULL", nullable=True)
    created_at: Mapped[datetime] = _created_at()


# --- Assessments ---


class AssessmentRow(Base):
    __tablename__ = "assessments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    training_area_id: Mapped[int | None] = _fk(
        "training_areas.id", "SET NULL", nullable=True
    )
    module_id: Mapped[int | None] = _fk("modules.id", "SET NULL", nullable=True)
    unit_id: Mapped[int | None] = _fk("units.id", "SET NULL", nullable=True)
    course_id: Mapped[int | None] = _fk("courses.id", "SET NULL", nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    placement: Mapped[str] = mapped_column(String(32), nullable=False, default="end")
    is_graded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_correct_answers: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    passing_score: Mapped[int | None] = mapped_column(Integer)
    has_time_limit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    time_limit: Mapped[int | None] = mapped_column(Integer)
    max_retakes: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    has_certificate: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    certificate_template: Mapped[str | None] = mapped_column(Text)
    xp_points: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class QuestionRow(Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assessment_id: Mapped[int] = _fk("assessments.id", "CASCADE")
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default="mcq"
    )  # mcq|true_false
    options: Mapped[Any | None] = mapped_column(JsonType)
    correct_answer: Mapped[str] = mapped_column(Text, nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class AssessmentAttemptRow(Base):
    __tablename__ = "assessment_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = _fk("users.id", "CASCADE")
    assessment_id: Mapped[int] = _fk("assessments.id", "CASCADE")
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    answers: Mapped[Any | None] = mapped_column(JsonType)
    started_at: Mapped[datetime] = _created_at()
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


# --- Progress ---


def _percentage() -> Mapped[float]:
    return mapped_column(
        Numeric(5, 2, asdecimal=False), nullable=False, default=0
    )


def _status() -> Mapped[str]:
    return mapped_column(ProgressStatusEnum, nullable=False, default="not_started")


class UserTrainingAreaProgressRow(Base):
    __tablename__ = "user_training_area_progress"
    __table_args__ = (UniqueConstraint("user_id", "training_area_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = _fk("users.id", "CASCADE")
    training_area_id: Mapped[int] = _fk("training_areas.id", "CASCADE")
    status: Mapped[str] = _status()
    completion_percentage: Mapped[float] = _percentage()
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class UserModuleProgressRow(Base):
    __tablename__ = "user_module_progress"
    __table_args__ = (UniqueConstraint("user_id", "module_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = _fk("users.id", "CASCADE")
    module_id: Mapped[int] = _fk("modules.id", "CASCADE")
    status: Mapped[str] = _status()
    completion_percentage: Mapped[float] = _percentage()
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class UserCourseProgressRow(Base):
    __tablename__ = "user_course_progress"
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = _fk("users.id", "CASCADE")
    course_id: Mapped[int] = _fk("courses.id", "CASCADE")
    status: Mapped[str] = _status()
    completion_percentage: Mapped[float] = _percentage()
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class UserCourseUnitProgressRow(Base):
    __tablename__ = "user_course_unit_progress"
    __table_args__ = (UniqueConstraint("user_id", "course_unit_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = _fk("users.id", "CASCADE")
    course_unit_id: Mapped[int] = _fk("course_units.id", "CASCADE")
    status: Mapped[str] = _status()
    completion_percentage: Mapped[float] = _percentage()
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class UserLearningBlockProgressRow(Base):
    __tablename__ = "user_learning_block_progress"
    __table_args__ = (UniqueConstraint("user_id", "learning_block_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = _fk("users.id", "CASCADE")
    learning_block_id: Mapped[int] = _fk("learning_blocks.id", "CASCADE")
    status: Mapped[str] = _status()
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


# --- Gamification ---


class BadgeRow(Base):
    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)
    xp_points: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = _created_at()


class UserBadgeRow(Base):
    __tablename__ = "user_badges"
    __table_args__ = (UniqueConstraint("user_id", "badge_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = _fk("users.id", "CASCADE")
    badge_id: Mapped[int] = _fk("badges.id", "CASCADE")
    earned_at: Mapped[datetime] = _created_at()


class CertificateRow(Base):
    __tablename__ = "certificates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = _fk("users.id", "CASCADE")
    training_area_id: Mapped[int | None] = _fk(
        "training_areas.id", "CASCADE", nullable=True
    )
    course_id: Mapped[int | None] = _fk("courses.id", "SET NULL", nullable=True)
    certificate_number: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False
    )
    issue_date: Mapped[datetime] = _created_at()
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")


# --- System ---


class NotificationRow(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = _fk("users.id", "CASCADE")
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # "metadata" is reserved on declarative classes
    meta: Mapped[Any | None] = mapped_column("metadata", JsonType)
    created_at: Mapped[datetime] = _created_at()


class MediaFileRow(Base):
    __tablename__ = "media_files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    original_name: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    uploaded_by: Mapped[int] = _fk("users.id", "CASCADE")
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class CourseEnrollmentRow(Base):
    __tablename__ = "course_enrollments"
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = _fk("users.id", "CASCADE")
    course_id: Mapped[int] = _fk("courses.id", "CASCADE")
    enrolled_at: Mapped[datetime] = _created_at()
    enrollment_source: Mapped[str] = mapped_column(
        String(32), nullable=False, default="manual"
    )
