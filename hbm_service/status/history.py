"""
In-memory status change history

Order and inquiry services record every successful transition here when a
recorder is injected. Records are append-only.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from hbm_service.core.utils import utcnow


@dataclass(frozen=True)
class StatusChange:
    entity_type: str  # order, inquiry
    entity_id: str
    from_status: Optional[str]
    to_status: str
    changed_at: datetime
    changed_by: Optional[str] = None
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


class StatusHistoryRecorder:
    def __init__(self):
        self._history: List[StatusChange] = []

    def record(
        self,
        entity_type: str,
        entity_id,
        from_status: Optional[str],
        to_status: str,
        changed_by: Optional[str] = None,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        changed_at: Optional[datetime] = None,
    ) -> StatusChange:
        change = StatusChange(
            entity_type=entity_type,
            entity_id=str(entity_id),
            from_status=from_status,
            to_status=to_status,
            changed_at=changed_at or utcnow(),
            changed_by=changed_by,
            reason=reason,
            metadata=dict(metadata or {}),
        )
        self._history.append(change)
        return change

    def get_history(self, entity_type: str, entity_id) -> List[StatusChange]:
        """Changes for one entity, oldest first."""
        entity_id = str(entity_id)
        return sorted(
            (c for c in self._history if c.entity_type == entity_type and c.entity_id == entity_id),
            key=lambda c: c.changed_at,
        )

    def get_last_change(self, entity_type: str, entity_id) -> Optional[StatusChange]:
        history = self.get_history(entity_type, entity_id)
        return history[-1] if history else None

    def query(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        changed_by: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[StatusChange]:
        """Filtered changes, most recent first."""
        results = [
            c for c in self._history
            if (entity_type is None or c.entity_type == entity_type)
            and (entity_id is None or c.entity_id == str(entity_id))
            and (changed_by is None or c.changed_by == changed_by)
            and (start is None or c.changed_at >= start)
            and (end is None or c.changed_at <= end)
        ]
        results.sort(key=lambda c: c.changed_at, reverse=True)
        if page and limit:
            offset = (page - 1) * limit
            results = results[offset:offset + limit]
        return results

    def get_transition_counts(self, entity_type: Optional[str] = None) -> Dict[str, int]:
        stats: Dict[str, int] = {}
        for change in self._history:
            if entity_type and change.entity_type != entity_type:
                continue
            key = f"{change.from_status or 'initial'} -> {change.to_status}"
            stats[key] = stats.get(key, 0) + 1
        return stats

    def clear(self):
        self._history.clear()

    def __len__(self) -> int:
        return len(self._history)
