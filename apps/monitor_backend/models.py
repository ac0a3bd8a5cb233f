from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from common_core.db import Base

system_data_error_warning = Table(
    "ow_system_data_error_warning",
    Base.metadata,
    Column("system_data_id", Integer, ForeignKey("ow_system_data.id"), primary_key=True),
    Column("error_warning_id", Integer, ForeignKey("ow_error_warning.id"), primary_key=True),
)

system_data_extension = Table(
    "ow_system_data_extension",
    Base.metadata,
    Column("system_data_id", Integer, ForeignKey("ow_system_data.id"), primary_key=True),
    Column("extension_info_id", Integer, ForeignKey("ow_extension_info.id"), primary_key=True),
)


class TenantRegistry(Base):
    __tablename__ = "ow_tenant"
    site_machine_name = Column(String(32), primary_key=True)
    site_name = Column(String(255), nullable=False, default="")
    site_base_url = Column(String(512), nullable=True)
    last_seen_at_utc = Column(DateTime, nullable=True)
    created_at_utc = Column(DateTime, nullable=False)
    updated_at_utc = Column(DateTime, nullable=False)


class Event(Base):
    __tablename__ = "ow_event"
    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    author = Column(String(255), nullable=False)
    bundle = Column(String(64), nullable=False, index=True)
    entity = Column(String(32), nullable=False, index=True)
    timestamp = Column(Float, nullable=False, index=True)  # epoch seconds as sent by the site
    type = Column(String(16), nullable=False)
    site_base_url = Column(String(512), nullable=False)
    site_machine_name = Column(String(32), nullable=False, index=True)
    site_name = Column(String(255), nullable=False)
    severity = Column(String(16), nullable=True)
    context = Column(Text, nullable=True)
    created_at_utc = Column(DateTime, nullable=False)


class ErrorWarning(Base):
    __tablename__ = "ow_error_warning"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime, nullable=False)
    kind = Column(String(16), nullable=False, index=True)  # error / warning


class ExtensionInfo(Base):
    __tablename__ = "ow_extension_info"
    id = Column(Integer, primary_key=True, autoincrement=True)
    extension_name = Column(String(255), nullable=False)
    current_version = Column(String(64), nullable=False)
    recommended_version = Column(String(64), nullable=True)
    update_available = Column(Boolean, nullable=False, default=False)
    security_update = Column(Boolean, nullable=False, default=False)


class SystemData(Base):
    __tablename__ = "ow_system_data"
    id = Column(Integer, primary_key=True, autoincrement=True)
    site_name = Column(String(255), nullable=False)
    site_machine_name = Column(String(32), nullable=False, index=True)
    site_type = Column(String(64), nullable=False)
    core_version = Column(String(64), nullable=False)
    report_time = Column(DateTime, nullable=False)
    extensions_count = Column(Integer, nullable=False, default=0)
    security_updates = Column(Integer, nullable=False, default=0)
    all_updates = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    warning_count = Column(Integer, nullable=False, default=0)
    status_report = Column(JSON, nullable=False, default=dict)
    created_at_utc = Column(DateTime, nullable=False, index=True)

    errors_warnings = relationship(ErrorWarning, secondary=system_data_error_warning, lazy="selectin")
    extensions = relationship(ExtensionInfo, secondary=system_data_extension, lazy="selectin")


class AllowedValue(Base):
    __tablename__ = "ow_allowed_value"
    id = Column(Integer, primary_key=True, autoincrement=True)
    field_name = Column(String(32), nullable=False, index=True)  # entity / severity / type
    value = Column(String(64), nullable=False)
    label = Column(String(128), nullable=True)

    __table_args__ = (UniqueConstraint("field_name", "value", name="uq_allowed_field_value"),)


class ApiClient(Base):
    __tablename__ = "ow_api_client"
    client_id = Column(String(64), primary_key=True)
    secret_hash = Column(String(128), nullable=False)
    scopes = Column(String(256), nullable=False, default="rest_api")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at_utc = Column(DateTime, nullable=False)


class MonitorUser(Base):
    __tablename__ = "ow_user"
    username = Column(String(64), primary_key=True)
    password_hash = Column(String(128), nullable=False)
    roles = Column(String(256), nullable=False, default="site_reporter")
    created_at_utc = Column(DateTime, nullable=False)


MONITOR_TABLES = [
    TenantRegistry.__table__,
    Event.__table__,
    ErrorWarning.__table__,
    ExtensionInfo.__table__,
    SystemData.__table__,
    system_data_error_warning,
    system_data_extension,
    AllowedValue.__table__,
    ApiClient.__table__,
    MonitorUser.__table__,
]
