from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from clipstage.models.base import Base, TimestampMixin


class AppState(Base, TimestampMixin):
    """Small key/value pairs that must survive a restart."""

    __tablename__ = "app_state"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
