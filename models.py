from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from constants import PROJECT_STATUS_OPEN, REQUEST_STATUS_PENDING
from db import Base


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    telegram_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True)
    username: Mapped[str] = mapped_column(String(32), unique=True, index=True)

    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email: Mapped[str | None] = mapped_column(String(256), nullable=True)

    # file_id из хранилища Telegram
    avatar_file_id: Mapped[str | None] = mapped_column(String(256), nullable=True)

    # список строк, по смыслу множество тегов
    skills: Mapped[list[str]] = mapped_column(JSON, default=list)

    github_url: Mapped[str | None] = mapped_column(String(256), nullable=True)
    website_url: Mapped[str | None] = mapped_column(String(256), nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<Profile id={self.id} username={self.username!r}>"


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)

    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)
    tech_stack: Mapped[list[str]] = mapped_column(JSON, default=list)

    # open / closed
    status: Mapped[str] = mapped_column(String(16), default=PROJECT_STATUS_OPEN)

    # роли, которых не хватает в команде
    contributors_needed: Mapped[list[str]] = mapped_column(JSON, default=list)

    github_url: Mapped[str | None] = mapped_column(String(256), nullable=True)
    live_url: Mapped[str | None] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    owner: Mapped[Profile | None] = relationship(lazy="raise")

    def __repr__(self) -> str:
        return f"<Project id={self.id} owner={self.owner_id} title={self.title!r}>"


class ConnectionRequest(Base):
    __tablename__ = "connection_requests"
    # Хранилище гарантирует только уникальность направленной пары.
    # «Одна pending-заявка на неупорядоченную пару» не гарантируется.
    __table_args__ = (
        UniqueConstraint("sender_id", "receiver_id", name="uq_connection_request_pair"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    sender_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    receiver_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)

    status: Mapped[str] = mapped_column(
        String(16), default=REQUEST_STATUS_PENDING
    )  # pending / accepted / rejected / withdrawn

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    sender: Mapped[Profile | None] = relationship(
        foreign_keys=[sender_id], lazy="raise"
    )
    receiver: Mapped[Profile | None] = relationship(
        foreign_keys=[receiver_id], lazy="raise"
    )

    def __repr__(self) -> str:
        return (
            f"<ConnectionRequest id={self.id} sender={self.sender_id} "
            f"receiver={self.receiver_id} status={self.status}>"
        )


class Connection(Base):
    """
    Одна направленная половина дружбы: на одну связь A<->B в таблице две строки.
    """

    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint("user_id", "connected_user_id", name="uq_connection_half"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    connected_user_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id"), index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    connected_user: Mapped[Profile | None] = relationship(
        foreign_keys=[connected_user_id], lazy="raise"
    )

    def __repr__(self) -> str:
        return f"<Connection id={self.id} user={self.user_id} with={self.connected_user_id}>"
