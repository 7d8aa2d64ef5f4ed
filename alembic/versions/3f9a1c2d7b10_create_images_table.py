"""create_images_table

Revision ID: 3f9a1c2d7b10
Revises:
Create Date: 2026-10-19 10:12:41.318204

"""

from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2d7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

IMAGE_STATUS = sa.Enum(
    "PENDING", "PROCESSING", "COMPLETED", "FAILED", "ERROR", name="imagestatus"
)


def upgrade() -> None:
    """Create images table with status and owner indexes."""
    op.create_table(
        "images",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column(
            "original_storage_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False
        ),
        sa.Column("original_image_url", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column(
            "cartoon_storage_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True
        ),
        sa.Column("cartoon_image_url", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("style", sqlmodel.sql.sqltypes.AutoString(length=50), nullable=True),
        sa.Column("file_name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column("error_message", sqlmodel.sql.sqltypes.AutoString(length=1000), nullable=True),
        sa.Column("status", IMAGE_STATUS, nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_images_user_id"), "images", ["user_id"], unique=False)
    op.create_index(
        op.f("ix_images_original_storage_id"), "images", ["original_storage_id"], unique=False
    )
    op.create_index(op.f("ix_images_status"), "images", ["status"], unique=False)
    op.create_index(op.f("ix_images_created_at"), "images", ["created_at"], unique=False)


def downgrade() -> None:
    """Drop images table and its status enum."""
    op.drop_index(op.f("ix_images_created_at"), table_name="images")
    op.drop_index(op.f("ix_images_status"), table_name="images")
    op.drop_index(op.f("ix_images_original_storage_id"), table_name="images")
    op.drop_index(op.f("ix_images_user_id"), table_name="images")
    op.drop_table("images")
    IMAGE_STATUS.drop(op.get_bind(), checkfirst=True)
