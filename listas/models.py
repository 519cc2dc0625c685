import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, Text, Integer, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from sqlalchemy.dialects.postgresql import JSONB

Base = declarative_base()

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JsonDoc = JSON().with_variant(JSONB(), "postgresql")


def _new_id() -> str:
    return str(uuid.uuid4())


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Curso(Base):
    __tablename__ = "cursos"

    id = Column(Text, primary_key=True, default=_new_id)
    school_id = Column(Text, index=True)
    name = Column(Text)

    level = Column(Text, nullable=False)  # Basic | Secondary
    grade = Column(Integer, nullable=False)
    section = Column(Text)
    year = Column(Integer)

    review_state = Column(Text, nullable=False, default="Draft")
    reviewed_at = Column(DateTime(timezone=True))

    # list of MaterialsVersion documents, oldest first
    versions = Column(JsonDoc, nullable=False, default=list)

    # bumped on every write; updates compare-and-swap on it
    revision = Column(Integer, nullable=False, default=0)

    # catalog order (and so match tie-breaks) follows creation time
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
