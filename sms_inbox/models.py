"""
SQLAlchemy ORM models for database tables.

For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Column, Integer, String, Text

from sms_inbox.storage import Base


class SmsRecord(Base):
    """
    One inbound SMS as received from the provider.

    Table: sms
    Rows are append-only: nothing in the service updates or deletes them.
    """
    __tablename__ = "sms"
    # AUTOINCREMENT keeps ids from ever being reused
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    from_number = Column(String, nullable=False, default="unknown")
    to_number = Column(String, nullable=False, default="unknown")
    body = Column(Text, nullable=False, default="")
    provider_raw = Column(Text, nullable=False)
    created_at = Column(String, nullable=False, index=True)  # Server time ISO-8601

    def __repr__(self) -> str:
        return f"<SmsRecord id={self.id} from={self.from_number!r} at={self.created_at}>"
