"""Laboratory (tenant root) model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModelNoSoftDelete


class Laboratory(BaseModelNoSoftDelete):
    __tablename__ = "laboratory"

    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, server_default="true")
