"""Initial schema - laboratories, storage hierarchy, samples, movement ledger.

Revision ID: 001
Revises: None
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SAMPLE_STATUS = postgresql.ENUM(
    "COLLECTED", "STORED", "IN_TRANSIT", "DISCARDED", "ARCHIVED",
    name="samplestatus", create_type=False,
)
BOX_TYPE = postgresql.ENUM(
    "CRYO_81", "CRYO_100", "RACK_96", "CUSTOM", name="boxtype", create_type=False,
)
AUDIT_ACTION = postgresql.ENUM(
    "CREATE", "UPDATE", "DELETE", "MOVE", "STATUS_CHANGE", "BLOCK",
    name="auditaction", create_type=False,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _laboratory_fk() -> sa.Column:
    return sa.Column("laboratory_id", sa.Uuid, sa.ForeignKey("laboratory.id"), nullable=False)


def upgrade() -> None:
    # Enum types are shared by several tables, so they are created once here.
    for enum_type in (SAMPLE_STATUS, BOX_TYPE, AUDIT_ACTION):
        enum_type.create(op.get_bind(), checkfirst=True)

    # --- Tenancy ---

    op.create_table(
        "laboratory",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("code", sa.String(50), unique=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean, server_default="true"),
        *_timestamps(),
    )

    # --- Storage hierarchy ---

    op.create_table(
        "storage_room",
        sa.Column("id", sa.Uuid, primary_key=True),
        _laboratory_fk(),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, server_default="true"),
        *_timestamps(),
        sa.UniqueConstraint("laboratory_id", "code", name="uq_storage_room_lab_code"),
    )
    op.create_index("ix_storage_room_laboratory_id", "storage_room", ["laboratory_id"])

    op.create_table(
        "freezer",
        sa.Column("id", sa.Uuid, primary_key=True),
        _laboratory_fk(),
        sa.Column("storage_room_id", sa.Uuid, sa.ForeignKey("storage_room.id"), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("temperature_c", sa.Integer, nullable=True),
        sa.Column("is_active", sa.Boolean, server_default="true"),
        *_timestamps(),
        sa.UniqueConstraint("laboratory_id", "code", name="uq_freezer_lab_code"),
    )
    op.create_index("ix_freezer_laboratory_id", "freezer", ["laboratory_id"])
    op.create_index("ix_freezer_room", "freezer", ["storage_room_id"])

    op.create_table(
        "shelf",
        sa.Column("id", sa.Uuid, primary_key=True),
        _laboratory_fk(),
        sa.Column("freezer_id", sa.Uuid, sa.ForeignKey("freezer.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("position_number", sa.Integer, nullable=False),
        sa.Column("is_active", sa.Boolean, server_default="true"),
        *_timestamps(),
    )
    op.create_index("ix_shelf_laboratory_id", "shelf", ["laboratory_id"])
    op.create_index("ix_shelf_freezer", "shelf", ["freezer_id"])

    op.create_table(
        "box",
        sa.Column("id", sa.Uuid, primary_key=True),
        _laboratory_fk(),
        sa.Column("shelf_id", sa.Uuid, sa.ForeignKey("shelf.id"), nullable=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("box_type", BOX_TYPE, server_default="CRYO_81", nullable=False),
        sa.Column("rows", sa.Integer, nullable=False),
        sa.Column("columns", sa.Integer, nullable=False),
        sa.Column("is_active", sa.Boolean, server_default="true"),
        *_timestamps(),
        sa.UniqueConstraint("laboratory_id", "code", name="uq_box_lab_code"),
    )
    op.create_index("ix_box_laboratory_id", "box", ["laboratory_id"])
    op.create_index("ix_box_shelf", "box", ["shelf_id"])

    op.create_table(
        "storage_position",
        sa.Column("id", sa.Uuid, primary_key=True),
        _laboratory_fk(),
        sa.Column("box_id", sa.Uuid, sa.ForeignKey("box.id"), nullable=False),
        sa.Column("row_number", sa.Integer, nullable=False),
        sa.Column("column_number", sa.Integer, nullable=False),
        sa.Column("position_label", sa.String(10), nullable=False),
        sa.Column("is_occupied", sa.Boolean, server_default="false", nullable=False),
        sa.Column("is_blocked", sa.Boolean, server_default="false", nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("box_id", "row_number", "column_number", name="uq_box_row_col"),
    )
    op.create_index("ix_storage_position_laboratory_id", "storage_position", ["laboratory_id"])
    op.create_index("ix_position_box", "storage_position", ["box_id"])
    op.create_index(
        "ix_position_availability", "storage_position",
        ["laboratory_id", "is_occupied", "is_blocked"],
    )

    # --- Samples ---

    op.create_table(
        "sample_type",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("code", sa.String(50), unique=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("storage_requirements", sa.Text, nullable=True),
        sa.Column("default_expiration_days", sa.Integer, nullable=True),
        sa.Column("is_active", sa.Boolean, server_default="true"),
        *_timestamps(),
    )

    op.create_table(
        "sample",
        sa.Column("id", sa.Uuid, primary_key=True),
        _laboratory_fk(),
        sa.Column("barcode", sa.String(100), unique=True, nullable=False),
        sa.Column("external_id", sa.String(100), nullable=True),
        sa.Column("patient_code", sa.String(100), nullable=False),
        sa.Column("request_code", sa.String(100), nullable=True),
        sa.Column("sample_type_id", sa.Uuid, sa.ForeignKey("sample_type.id"), nullable=False),
        sa.Column("volume_ml", sa.Numeric(10, 2), nullable=True),
        sa.Column("collection_datetime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("collected_by", sa.Uuid, nullable=True),
        sa.Column("expiration_date", sa.Date, nullable=True),
        sa.Column("status", SAMPLE_STATUS, nullable=False),
        sa.Column("current_position_id", sa.Uuid, sa.ForeignKey("storage_position.id"), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("is_deleted", sa.Boolean, server_default="false", nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_sample_laboratory_id", "sample", ["laboratory_id"])
    op.create_index("ix_sample_status", "sample", ["status"])
    op.create_index("ix_sample_type", "sample", ["sample_type_id"])
    op.create_index("ix_sample_position", "sample", ["current_position_id"])
    op.create_index("ix_sample_expiration", "sample", ["expiration_date"])

    op.create_table(
        "sample_movement",
        sa.Column("id", sa.Uuid, primary_key=True),
        _laboratory_fk(),
        sa.Column("sample_id", sa.Uuid, sa.ForeignKey("sample.id"), nullable=False),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("from_position_id", sa.Uuid, sa.ForeignKey("storage_position.id"), nullable=True),
        sa.Column("to_position_id", sa.Uuid, sa.ForeignKey("storage_position.id"), nullable=True),
        sa.Column("previous_status", SAMPLE_STATUS, nullable=True),
        sa.Column("new_status", SAMPLE_STATUS, nullable=False),
        sa.Column("performed_by", sa.Uuid, nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("performed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("sample_id", "sequence", name="uq_movement_sample_sequence"),
    )
    op.create_index("ix_sample_movement_laboratory_id", "sample_movement", ["laboratory_id"])
    op.create_index("ix_movement_sample", "sample_movement", ["sample_id"])
    op.create_index("ix_movement_performed_at", "sample_movement", ["performed_at"])

    # --- Audit ---

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, nullable=True),
        sa.Column("laboratory_id", sa.Uuid, nullable=True),
        sa.Column("action", AUDIT_ACTION, nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.Uuid, nullable=True),
        sa.Column("old_values", sa.JSON, nullable=True),
        sa.Column("new_values", sa.JSON, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_type", "entity_id"])
    op.create_index("ix_audit_log_laboratory", "audit_log", ["laboratory_id"])
    op.create_index("ix_audit_log_timestamp", "audit_log", ["timestamp"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("sample_movement")
    op.drop_table("sample")
    op.drop_table("sample_type")
    op.drop_table("storage_position")
    op.drop_table("box")
    op.drop_table("shelf")
    op.drop_table("freezer")
    op.drop_table("storage_room")
    op.drop_table("laboratory")
    for enum_type in (AUDIT_ACTION, SAMPLE_STATUS, BOX_TYPE):
        enum_type.drop(op.get_bind(), checkfirst=True)
