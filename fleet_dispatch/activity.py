# fleet_dispatch/activity.py
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from .dispatch_models import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMATION,
    STATUS_IN_PROGRESS,
    STATUS_ON_HOLD,
    STATUS_OPEN,
    STATUS_READY,
    TERMINAL_STATUSES,
    WorkOrder,
)

STATUS_CHANGE_RE = re.compile(r"Status changed from '(.+)' to '(.+)'")

# "+00" de Postgres -> "+00:00"; fracciones de cualquier largo -> 6 dígitos
_SHORT_OFFSET_RE = re.compile(r"(\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)([+-]\d{2})$")
_FRACTION_RE = re.compile(r"\.(\d+)")

ENTRY_TYPE_STATUS_CHANGE = "status_change"
ENTRY_TYPE_NOTE = "note"


class InvalidStatusTransition(ValueError):
    def __init__(self, old_status: str, new_status: str):
        self.old_status = old_status
        self.new_status = new_status
        super().__init__(f"Invalid status transition from '{old_status}' to '{new_status}'.")


# --------------------------
# Timestamps
# --------------------------


def parse_timestamp(value: datetime | str) -> datetime:
    """
    Convierte un timestamp ISO-8601 (o datetime) a datetime con zona horaria.
    Los valores sin zona se asumen UTC.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        s = _SHORT_OFFSET_RE.sub(r"\1\2:00", s)
        s = _FRACTION_RE.sub(lambda m: "." + (m.group(1) + "000000")[:6], s, count=1)
        dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _entry_timestamp(raw: Dict[str, Any]) -> Optional[datetime]:
    value = raw.get("timestamp")
    if value is None:
        return None
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError):
        return None


def isoformat_utc(value: datetime) -> str:
    return parse_timestamp(value).astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# --------------------------
# Entradas del log
# --------------------------


@dataclass
class StatusChange:
    from_status: str
    to_status: str
    timestamp: datetime
    user_id: Optional[str] = None


@dataclass
class ActivityNote:
    text: str
    timestamp: datetime
    user_id: Optional[str] = None


ActivityEntry = Union[StatusChange, ActivityNote]


def parse_activity_entry(raw: Dict[str, Any]) -> Optional[ActivityEntry]:
    """
    Convierte una entrada cruda del activity_log en un valor etiquetado.

    - Entradas estructuradas (`type == "status_change"` con `from`/`to`) se usan tal cual.
    - Entradas antiguas solo traen texto: se busca el patrón
      "Status changed from 'X' to 'Y'".
    - Cualquier otra cosa es una nota (nunca error).
    - Sin timestamp válido no se puede ubicar en el tiempo: devuelve None.
    """
    if not isinstance(raw, dict):
        return None
    ts = _entry_timestamp(raw)
    if ts is None:
        return None
    user_id = raw.get("userId") or raw.get("user_id")

    if raw.get("type") == ENTRY_TYPE_STATUS_CHANGE and raw.get("from") and raw.get("to"):
        return StatusChange(str(raw["from"]), str(raw["to"]), ts, user_id)

    text = str(raw.get("activity") or "")
    m = STATUS_CHANGE_RE.search(text)
    if m:
        return StatusChange(m.group(1), m.group(2), ts, user_id)
    return ActivityNote(text, ts, user_id)


def status_change_entry(
    old_status: Optional[str],
    new_status: str,
    timestamp: datetime,
    user_id: Optional[str] = None,
    note: str = "",
) -> Dict[str, Any]:
    """Entrada nueva de cambio de estado: forma estructurada + texto legible."""
    old = old_status or "N/A"
    entry: Dict[str, Any] = {
        "type": ENTRY_TYPE_STATUS_CHANGE,
        "from": old,
        "to": new_status,
        "activity": f"Status changed from '{old}' to '{new_status}'." + (f" {note}" if note else ""),
        "timestamp": isoformat_utc(timestamp),
    }
    if user_id:
        entry["userId"] = user_id
    return entry


# --------------------------
# Transiciones de estado
# --------------------------

_TRANSITIONS: Dict[str, set] = {
    STATUS_OPEN: {STATUS_CONFIRMATION},
    STATUS_CONFIRMATION: {STATUS_READY},
    STATUS_READY: {STATUS_IN_PROGRESS},
    STATUS_IN_PROGRESS: {STATUS_ON_HOLD, STATUS_COMPLETED},
    STATUS_ON_HOLD: {STATUS_IN_PROGRESS},
}


def is_valid_transition(old_status: str, new_status: str, direct_start: bool = False) -> bool:
    if not old_status or not new_status:
        return False
    if old_status == new_status:
        return True
    if old_status in TERMINAL_STATUSES:
        return False
    if new_status == STATUS_CANCELLED:
        return True
    if old_status == STATUS_OPEN and new_status == STATUS_IN_PROGRESS:
        return direct_start
    return new_status in _TRANSITIONS.get(old_status, set())


def apply_status_change(
    work_order: WorkOrder,
    new_status: str,
    now: datetime,
    user_id: Optional[str] = None,
    direct_start: bool = False,
) -> List[Dict[str, Any]]:
    """
    Aplica un cambio de estado sobre la orden (in-place) y devuelve el log actualizado.

    `completed_at` queda puesto si y solo si el estado nuevo es Completed.
    """
    old_status = work_order.status
    if not is_valid_transition(old_status, new_status, direct_start=direct_start):
        raise InvalidStatusTransition(old_status, new_status)
    if old_status == new_status:
        return work_order.activity_log

    log = list(work_order.activity_log or [])
    log.append(status_change_entry(old_status, new_status, now, user_id))

    work_order.activity_log = log
    work_order.status = new_status
    work_order.completed_at = now if new_status == STATUS_COMPLETED else None
    return log
