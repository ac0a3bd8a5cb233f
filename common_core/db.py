"""Engines and sessions for the two databases: the site agent's queue and credentials, and the monitor's store."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from common_core.config import settings


class Base(DeclarativeBase):
    pass


def make_engine(db_url: str):
    return create_engine(db_url, pool_pre_ping=True, future=True)


def make_session(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


site_engine = make_engine(settings.site_db_url)
monitor_engine = make_engine(settings.monitor_db_url)

SiteSessionLocal = make_session(site_engine)
MonitorSessionLocal = make_session(monitor_engine)
