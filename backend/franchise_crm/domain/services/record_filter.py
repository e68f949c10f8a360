"""
Record Filtering and Statistics
List filters and campaign progress numbers over aggregated records
"""
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from franchise_crm.domain.models.modules import ModuleSpec
from franchise_crm.domain.models.record import AggregatedRecord, BaseRecord


class DateScope(str, Enum):
    ALL = "all"
    TODAY = "today"
    MONTH = "month"


class RecordFilter(BaseModel):
    """
    Filters applied to a module's list view.

    All filters are optional and combined with AND. Order of the input
    list is preserved, so a filtered list is a stable campaign order.
    """

    search: Optional[str] = Field(default=None, description="Substring of name or phone")
    status: Optional[str] = None
    city: Optional[str] = None
    owner_tenant: Optional[str] = None
    date_scope: DateScope = Field(default=DateScope.ALL)
    month: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}$", description="YYYY-MM, for month scope")

    def matches(self, item: AggregatedRecord, today: date) -> bool:
        record = item.record

        if self.search:
            needle = self.search.strip().lower()
            if needle not in record.display_name.lower() and needle not in record.phone:
                return False

        if self.status and self.status != "All" and record.status != self.status:
            return False

        if self.city and self.city != "All" and (record.city or "Unknown") != self.city:
            return False

        if self.owner_tenant and record.owner_tenant != self.owner_tenant:
            return False

        if self.date_scope == DateScope.TODAY:
            return _on_day(record, today)
        if self.date_scope == DateScope.MONTH:
            return _in_month(record, self.month or today.strftime("%Y-%m"))
        return True

    def apply(self, items: List[AggregatedRecord], today: date) -> List[AggregatedRecord]:
        return [item for item in items if self.matches(item, today)]


def _on_day(record: BaseRecord, day: date) -> bool:
    called = record.last_interaction_at is not None and record.last_interaction_at.date() == day
    due = record.next_follow_up is not None and record.next_follow_up.date() == day
    return called or due


def _in_month(record: BaseRecord, month: str) -> bool:
    if record.next_follow_up is None:
        return False
    return record.next_follow_up.strftime("%Y-%m") == month


def distinct_cities(items: List[AggregatedRecord]) -> List[str]:
    """City options for the filter dropdown, first-seen order."""
    seen: Dict[str, None] = {}
    for item in items:
        seen.setdefault(item.record.city or "Unknown", None)
    return list(seen.keys())


def campaign_stats(records: List[BaseRecord], spec: ModuleSpec, today: date) -> Dict[str, Any]:
    """
    Progress numbers for a campaign list.

    `completed` counts every record that has left the untouched status.
    """
    total = len(records)
    by_status = {status: 0 for status in spec.statuses}
    for record in records:
        by_status[record.status] = by_status.get(record.status, 0) + 1

    untouched = by_status.get(spec.untouched_status, 0) if spec.untouched_status else 0
    completed = total - untouched
    follow_ups_today = [
        r.id for r in records
        if r.next_follow_up is not None and r.next_follow_up.date() == today
    ]

    return {
        "total": total,
        "completed": completed,
        "progress": 0 if total == 0 else round(completed / total * 100),
        "by_status": by_status,
        "follow_ups_today": follow_ups_today,
    }
