import logging
from datetime import datetime, timezone
from typing import List

from fastapi import Request
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base

logger = logging.getLogger(__name__)

# Base class for SQLAlchemy models
Base = declarative_base()

SMS_TABLE = "sms"


class MessageStore:
    """
    Append-only store of normalized SMS records.

    Owns the SQLAlchemy engine and session factory. One instance is created
    by the app factory and handed to routes through `get_store`; each call
    opens and closes its own session.
    """

    def __init__(self, database_url: str):
        connect_args = {}
        if database_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a threadpool
            connect_args["check_same_thread"] = False

        self.database_url = database_url
        self.engine = create_engine(database_url, connect_args=connect_args, echo=False)
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    def init_schema(self) -> None:
        """
        Create the sms table if it does not exist.
        Called during application startup.
        """
        logger.debug(f"Initializing database with URL: {self.database_url}")
        try:
            # register SmsRecord with Base.metadata
            from sms_inbox.models import SmsRecord  # noqa: F401

            Base.metadata.create_all(bind=self.engine)
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def session(self) -> Session:
        return self.SessionLocal()

    def check_health(self) -> bool:
        """
        Check if the database is reachable and the sms table exists.

        Returns:
            True if DB is healthy and schema exists, False otherwise.
        """
        try:
            with self.session() as db:
                db.execute(text("SELECT 1"))
            if not inspect(self.engine).has_table(SMS_TABLE):
                logger.error(f"Database schema not applied: '{SMS_TABLE}' table not found")
                return False
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    # =========================================================================
    # Record operations
    # =========================================================================

    def append(self, from_number: str, to_number: str, body: str, provider_raw: str) -> int:
        """
        Persist one SMS record.

        The store assigns `id` and `created_at`; callers never supply them.

        Args:
            from_number: Normalized sender
            to_number: Normalized recipient
            body: Message text
            provider_raw: Inbound payload serialized as JSON

        Returns:
            The id assigned to the new record.

        Raises:
            Any database error, after rolling back the session.
        """
        from sms_inbox.models import SmsRecord

        created_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        record = SmsRecord(
            from_number=from_number,
            to_number=to_number,
            body=body,
            provider_raw=provider_raw,
            created_at=created_at,
        )

        with self.session() as db:
            try:
                db.add(record)
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to store SMS record: {e}")
                raise
            logger.debug(f"Stored SMS record id={record.id} at {created_at}")
            return record.id

    def recent(self, limit: int) -> List["SmsRecord"]:  # noqa: F821
        """
        Return at most `limit` records, newest first.

        Ordering is created_at DESC with id DESC breaking ties, which equals
        reverse insertion order.
        """
        from sms_inbox.models import SmsRecord

        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValueError(f"limit must be a positive integer, got {limit!r}")

        with self.session() as db:
            records = (
                db.query(SmsRecord)
                .order_by(SmsRecord.created_at.desc(), SmsRecord.id.desc())
                .limit(limit)
                .all()
            )
        logger.debug(f"Retrieved {len(records)} recent records (limit={limit})")
        return records


def get_store(request: Request) -> MessageStore:
    """Dependency returning the store owned by the running app."""
    return request.app.state.store
