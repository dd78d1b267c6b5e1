# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# Tabular source records. Each row becomes one Document via RecordLoader
# ("id: 1, name: Rex, description: ...").
#
# ┌──────────────────────┐
# │  dogs                │
# ├──────────────────────┤
# │ id (PK)              │
# │ name                 │
# │ description (text)   │
# └──────────────────────┘
# =============================================================================

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class Dog(Base):
    """An adoptable dog, the example tabular source."""

    __tablename__ = "dogs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    def __repr__(self) -> str:
        return f"<Dog id={self.id} name={self.name!r}>"
