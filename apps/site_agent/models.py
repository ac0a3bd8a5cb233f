from __future__ import annotations

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text

from common_core.db import Base

QUEUE_EVENT = "event"
QUEUE_SYSTEM_DATA = "system_data"


class QueueItem(Base):
    __tablename__ = "delivery_queue"
    id = Column(Integer, primary_key=True, autoincrement=True)
    queue_name = Column(String(32), nullable=False, index=True)  # event / system_data
    payload = Column(Text, nullable=False)  # sent verbatim; never rewritten after enqueue
    created_at_utc = Column(DateTime, nullable=False, index=True)
    retry_count = Column(Integer, nullable=False, default=0)
    next_attempt_at_utc = Column(DateTime, nullable=True, index=True)
    leased_until_utc = Column(DateTime, nullable=True)
    last_error = Column(String(300), nullable=True)


class DeadLetter(Base):
    __tablename__ = "delivery_dead_letter"
    id = Column(Integer, primary_key=True, autoincrement=True)
    queue_name = Column(String(32), nullable=False, index=True)
    payload = Column(Text, nullable=False)
    retry_count = Column(Integer, nullable=False, default=0)
    error = Column(String(300), nullable=False)
    queued_at_utc = Column(DateTime, nullable=False)
    created_at_utc = Column(DateTime, nullable=False)


class SiteCredential(Base):
    __tablename__ = "site_credential"
    id = Column(Integer, primary_key=True)  # single row, id=1
    access_token = Column(Text, nullable=True)
    expires_at = Column(BigInteger, nullable=True)  # epoch seconds
    updated_at_utc = Column(DateTime, nullable=False)


SITE_TABLES = [QueueItem.__table__, DeadLetter.__table__, SiteCredential.__table__]
