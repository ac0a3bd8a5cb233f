from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr, ValidationError
from sqlalchemy import delete, select

from apps.monitor_backend.models import AllowedValue
from common_core.errors import IngestValidationError

log = logging.getLogger("overwatch.ingest")

ENUM_FIELDS = ("entity", "severity", "type")

DEFAULT_ALLOWED_VALUES: Dict[str, List[str]] = {
    "entity": ["node", "user", "block", "error"],
    "severity": ["low", "high"],
    "type": ["insert", "update", "delete"],
}


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class EventIn(_Strict):
    uuid: StrictStr
    title: StrictStr
    author: StrictStr
    bundle: StrictStr
    entity: StrictStr
    timestamp: Union[StrictInt, StrictFloat]
    type: StrictStr
    site_base_url: StrictStr
    site_machine_name: StrictStr
    site_name: StrictStr
    severity: Optional[StrictStr] = None
    context: Optional[StrictStr] = None


class ExtensionIn(_Strict):
    extension_name: StrictStr
    current_version: StrictStr
    recommended_version: Optional[StrictStr] = None
    update_available: StrictBool
    security_update: StrictBool


class UpdatesAvailableIn(_Strict):
    security_updates: StrictInt = 0
    all_updates: StrictInt = 0


class StatusReportIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    database_system_version: Optional[StrictStr] = None
    php_version: Optional[StrictStr] = None


class IssueIn(_Strict):
    title: StrictStr
    description: StrictStr = ""
    timestamp: datetime


class ErrorsAndWarningsIn(_Strict):
    errors: List[IssueIn] = Field(default_factory=list)
    warnings: List[IssueIn] = Field(default_factory=list)


class SystemDataIn(_Strict):
    site_name: StrictStr
    site_machine_name: StrictStr
    site_type: StrictStr
    core_version: StrictStr
    report_time: datetime
    extensions: List[ExtensionIn]
    updates_available: UpdatesAvailableIn
    extensions_count: StrictInt
    status_report: StatusReportIn
    errors_and_warnings: ErrorsAndWarningsIn


def _field_errors(e: ValidationError) -> List[Dict[str, str]]:
    return [{"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]} for err in e.errors()]


def _parse(model, raw: Union[bytes, str, Dict[str, Any]]):
    if isinstance(raw, (bytes, str)):
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, ValueError) as e:
            raise IngestValidationError("invalid_json") from e
    else:
        data = raw
    if not isinstance(data, dict):
        # Positional arrays are refused; fields are matched by key only.
        raise IngestValidationError("payload_must_be_object")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = _field_errors(e)
        log.error("ingest_schema_invalid", extra={"entity_type": model.__name__, "err": json.dumps(fields)[:300]})
        raise IngestValidationError("invalid_payload", fields=fields) from e


def parse_event(raw: Union[bytes, str, Dict[str, Any]]) -> EventIn:
    return _parse(EventIn, raw)


def parse_system_data(raw: Union[bytes, str, Dict[str, Any]]) -> SystemDataIn:
    return _parse(SystemDataIn, raw)


def load_allowed_values(db) -> Dict[str, List[str]]:
    rows = db.execute(select(AllowedValue.field_name, AllowedValue.value).order_by(AllowedValue.id)).all()
    out: Dict[str, List[str]] = {f: [] for f in ENUM_FIELDS}
    for field_name, value in rows:
        out.setdefault(field_name, []).append(value)
    return out


def validate_allowed_values(db, event: EventIn) -> None:
    """Check enumerated fields against the values currently configured on this monitor."""
    allowed = load_allowed_values(db)
    bad: List[Dict[str, str]] = []
    for field_name in ENUM_FIELDS:
        value = getattr(event, field_name)
        if field_name == "severity" and value is None:
            continue
        if value not in allowed.get(field_name, []):
            bad.append({"field": field_name, "error": f"value '{value}' is not allowed"})
            log.error(
                "ingest_enum_invalid",
                extra={"entity_type": field_name, "err": ",".join(allowed.get(field_name, []))},
            )
    if bad:
        raise IngestValidationError(
            "invalid_enumerated_value",
            fields=bad,
            allowed={b["field"]: allowed.get(b["field"], []) for b in bad},
        )


def set_allowed_values(db, field_name: str, values: List[str]) -> None:
    if field_name not in ENUM_FIELDS:
        raise ValueError(f"unknown enumerated field: {field_name}")
    db.execute(delete(AllowedValue).where(AllowedValue.field_name == field_name))
    for v in dict.fromkeys(values):
        db.add(AllowedValue(field_name=field_name, value=v, label=v.capitalize()))
    db.commit()


def ensure_default_allowed_values(db) -> None:
    current = load_allowed_values(db)
    for field_name, values in DEFAULT_ALLOWED_VALUES.items():
        if not current.get(field_name):
            set_allowed_values(db, field_name, values)
