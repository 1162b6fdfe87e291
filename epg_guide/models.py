"""
SQLAlchemy ORM Models for the guide snapshot

The database holds exactly one published guide: the channels, the
normalized programs and a single metadata row describing the run that
produced them. Times are stored as UTC ISO8601 strings.
"""
from datetime import datetime, timezone
from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class GuideMeta(Base):
    """Metadata of the published guide snapshot"""
    __tablename__ = "guide_meta"

    source: Mapped[str] = mapped_column(String, primary_key=True)
    source_mode: Mapped[str] = mapped_column(String, nullable=False)
    generated_at: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc))


class Channel(Base):
    """Channel of the published guide"""
    __tablename__ = "channels"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    logo_url: Mapped[str | None] = mapped_column(String, nullable=True)
    categories: Mapped[list] = mapped_column(JSON, default=list)
    languages: Mapped[list] = mapped_column(JSON, default=list)
    country: Mapped[str | None] = mapped_column(String, nullable=True)
    stream_url: Mapped[str | None] = mapped_column(String, nullable=True)

    def __repr__(self) -> str:
        return f"<Channel(id={self.id}, name={self.name})>"


class Program(Base):
    """Normalized program of the published guide"""
    __tablename__ = "programs"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    # Not a foreign key: programs of unknown channels are kept
    channel_id: Mapped[str] = mapped_column(String, nullable=False)
    channel_name: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    start_time: Mapped[str] = mapped_column(String, nullable=False)
    end_time: Mapped[str] = mapped_column(String, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String, nullable=True)
    is_live: Mapped[bool] = mapped_column(Boolean, default=False)
    actors: Mapped[list] = mapped_column(JSON, default=list)

    __table_args__ = (
        Index("idx_programs_channel_time", "channel_id", "start_time"),
        Index("idx_programs_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Program(id={self.id}, title={self.title}, channel={self.channel_id})>"
