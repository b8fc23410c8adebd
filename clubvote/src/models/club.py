from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base


class Club(Base):
    __tablename__ = "clubs"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    members: Mapped[list["Member"]] = relationship(back_populates="club")  # noqa: F821
    meetings: Mapped[list["Meeting"]] = relationship(back_populates="club")  # noqa: F821
