from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Engine,
    Integer,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .conversation import parse_direction
from .errors import StoreError
from .models import Direction, MessageQuery, MessageRecord
from .phone import normalize

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # digits only, so the store can narrow by variant
    counterpart: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    from_number: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    to_number: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    body: Mapped[str] = mapped_column(Text, nullable=False)
    # "OUTBOUND" / "INBOUND", NULL on rows imported without one
    direction: Mapped[str | None] = mapped_column(String(8), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    carrier_message_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True
    )


def make_engine(database_url: str) -> Engine:
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {},
    )


def _to_record(row: Message) -> MessageRecord:
    direction = parse_direction(row.direction)
    return MessageRecord(
        id=str(row.id),
        counterpart=row.counterpart,
        from_number=row.from_number,
        to_number=row.to_number,
        body=row.body,
        direction=direction,
        timestamp=row.sent_at,
        status=row.status,
        carrier_message_id=row.carrier_message_id,
    )


class SqlRecordStore:
    """
    Conversation records in a SQL database.

    A create carrying a carrier message id that is already stored is a
    no-op and returns the existing row's id.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    @classmethod
    def from_url(cls, database_url: str) -> SqlRecordStore:
        return cls(make_engine(database_url))

    def init_db(self) -> None:
        """Create tables if they don't exist."""
        Base.metadata.create_all(bind=self.engine)

    def _existing_id(self, db: Session, carrier_message_id: str) -> int | None:
        return db.scalar(
            select(Message.id).where(Message.carrier_message_id == carrier_message_id)
        )

    def create(self, record: MessageRecord) -> str:
        row = Message(
            counterpart=normalize(record.counterpart).digits,
            from_number=normalize(record.from_number).digits,
            to_number=normalize(record.to_number).digits,
            body=record.body,
            direction=record.direction.value if isinstance(record.direction, Direction) else None,
            sent_at=record.timestamp if isinstance(record.timestamp, datetime) else None,
            status=record.status,
            carrier_message_id=record.carrier_message_id,
        )
        try:
            with self.session_factory() as db:
                if record.carrier_message_id:
                    existing = self._existing_id(db, record.carrier_message_id)
                    if existing is not None:
                        logger.info(
                            "Carrier message %s already stored as #%s",
                            record.carrier_message_id,
                            existing,
                        )
                        return str(existing)
                db.add(row)
                try:
                    db.commit()
                except IntegrityError:
                    # lost a race against a redelivery of the same message
                    db.rollback()
                    if record.carrier_message_id:
                        existing = self._existing_id(db, record.carrier_message_id)
                        if existing is not None:
                            return str(existing)
                    raise
                return str(row.id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not write message: {exc}") from exc

    def query(self, query: MessageQuery | None = None) -> list[MessageRecord]:
        stmt = select(Message)
        if query is not None and query.counterparts is not None:
            stmt = stmt.where(Message.counterpart.in_(sorted(query.counterparts)))
        if query is not None and query.limit is not None:
            stmt = stmt.order_by(Message.id.desc()).limit(query.limit)
        else:
            stmt = stmt.order_by(Message.id)
        try:
            with self.session_factory() as db:
                rows = list(db.scalars(stmt))
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not read messages: {exc}") from exc
        if query is not None and query.limit is not None:
            rows.reverse()
        return [_to_record(row) for row in rows]
