from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "companies": {"id", "cnpj", "max_users", "active"},
    "users": {"id", "company_id", "email", "role", "daily_work_hours", "lunch_duration", "active"},
    "time_records": {
        "id",
        "user_id",
        "date",
        "entry_time",
        "exit_time",
        "lunch_start",
        "lunch_end",
        "worked_minutes",
        "expected_minutes",
        "entry_time_recorded_at",
        "exit_time_recorded_at",
        "lunch_start_recorded_at",
        "lunch_end_recorded_at",
    },
    "absences": {"id", "user_id", "status", "impact_type", "approved_by", "approved_at"},
    "time_record_adjustments": {
        "id",
        "time_record_id",
        "field_to_change",
        "requested_value",
        "status",
        "reviewed_by",
        "reviewed_at",
    },
    "api_logs": {"id", "level", "url", "method", "created_at"},
    "audit_logs": {"id", "action", "success"},
    "alembic_version": {"version_num"},
}

REQUIRED_ENUM_VALUES: dict[str, set[str]] = {
    "user_role": {"master", "admin", "user"},
    "review_status": {"pending", "approved", "rejected"},
    "absence_impact_type": {"discount", "neutral", "bonus"},
    "adjustable_field": {"entry_time", "exit_time", "lunch_start", "lunch_end", "date", "notes"},
}


def _check_columns(inspector: Any, issues: list[str]) -> None:
    for table_name, required in REQUIRED_TABLE_COLUMNS.items():
        try:
            present = {str(column.get("name")) for column in inspector.get_columns(table_name)}
        except Exception as exc:  # pragma: no cover
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue
        missing = sorted(required - present)
        if missing:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing)}")


def _enum_labels(inspector: Any, warnings: list[str]) -> dict[str, set[str]] | None:
    # Only PostgreSQL inspectors expose get_enums.
    get_enums = getattr(inspector, "get_enums", None)
    if get_enums is None:
        warnings.append("ENUM_INSPECTION_UNSUPPORTED")
        return None
    try:
        enums = get_enums() or []
    except Exception as exc:  # pragma: no cover
        warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")
        return None

    labels_by_name: dict[str, set[str]] = {}
    for item in enums:
        name = str(item.get("name") or "").strip()
        labels = item.get("labels")
        if name and isinstance(labels, list):
            labels_by_name[name] = {str(label) for label in labels}
    return labels_by_name


def _check_enums(inspector: Any, issues: list[str], warnings: list[str]) -> None:
    labels_by_name = _enum_labels(inspector, warnings)
    if labels_by_name is None:
        return
    for enum_name, required in REQUIRED_ENUM_VALUES.items():
        labels = labels_by_name.get(enum_name)
        if labels is None:
            warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
            continue
        missing = sorted(required - labels)
        if missing:
            issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing)}")


def _check_alembic_version(engine: Engine, issues: list[str]) -> None:
    try:
        with engine.connect() as connection:
            version = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
    except Exception as exc:  # pragma: no cover
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")
        return
    if not str(version or "").strip():
        issues.append("ALEMBIC_VERSION_EMPTY")


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    """Compare the live database against the columns and enum labels the models need."""
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)

    inspector = inspect(engine)
    _check_columns(inspector, issues)
    _check_enums(inspector, issues, warnings)
    _check_alembic_version(engine, issues)

    return SchemaGuardResult(ok=not issues, checked_at_utc=checked_at_utc, issues=issues, warnings=warnings)
