"""
Campaign Session Engine
Sequential outreach over a filtered record list

States: idle -> active -> idle

start():   cursor = first record that is untouched or has a due follow-up
advance(): forward scan from cursor + 1 for the next untouched record;
           due follow-ups are not spliced into a running scan, a fresh
           start() picks them up
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

from franchise_crm.domain.models.modules import ModuleSpec
from franchise_crm.domain.models.record import BaseRecord

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass
class CampaignSession:
    """
    Transient cursor over a snapshot of record ids.

    The id order is fixed at start(); statuses are always read from the
    current collection passed to advance().
    """
    module: str
    ordered_record_ids: List[str] = field(default_factory=list)
    cursor: Optional[int] = None
    state: SessionState = SessionState.IDLE
    started_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    @property
    def current_record_id(self) -> Optional[str]:
        if not self.is_active or self.cursor is None:
            return None
        return self.ordered_record_ids[self.cursor]

    def to_dict(self) -> dict:
        return {
            "module": self.module,
            "state": self.state.value,
            "cursor": self.cursor,
            "current_record_id": self.current_record_id,
            "total": len(self.ordered_record_ids),
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }


class CampaignEngine:
    """Session rules for one module."""

    def __init__(self, spec: ModuleSpec):
        if not spec.campaignable:
            raise ValueError(f"Module {spec.module.value} does not support campaigns")
        self.spec = spec

    def is_untouched(self, record: BaseRecord) -> bool:
        return record.status == self.spec.untouched_status

    def is_due(self, record: BaseRecord, today: date) -> bool:
        """Follow-up status with a due date on or before today."""
        if self.spec.follow_up_status is None or record.status != self.spec.follow_up_status:
            return False
        if record.next_follow_up is None:
            return False
        return record.next_follow_up.date() <= today

    def is_candidate(self, record: BaseRecord, today: date) -> bool:
        return self.is_untouched(record) or self.is_due(record, today)

    def due_pool(self, records: Iterable[BaseRecord], today: date) -> List[BaseRecord]:
        return [r for r in records if self.is_due(r, today)]

    def start(
        self,
        records: List[BaseRecord],
        today: date,
        now: Optional[datetime] = None
    ) -> CampaignSession:
        """
        Open a session over records in their display order.

        Returns an idle session when no record is untouched or due.
        """
        session = CampaignSession(
            module=self.spec.module.value,
            ordered_record_ids=[r.id for r in records],
            started_at=now,
        )

        for i, record in enumerate(records):
            if self.is_candidate(record, today):
                session.cursor = i
                session.state = SessionState.ACTIVE
                break

        if session.is_active:
            logger.info(
                f"Campaign started on {session.module}: {len(records)} records, "
                f"cursor at {session.cursor} ({session.current_record_id})"
            )
        else:
            logger.info(f"Campaign on {session.module} has nothing to call")
        return session

    def advance(self, session: CampaignSession, current_records: Iterable[BaseRecord]) -> CampaignSession:
        """
        Move to the next untouched record after the cursor.

        Records deleted since start() are skipped. Ends the session when
        nothing is left; the cursor only ever moves forward.
        """
        if not session.is_active:
            return session

        by_id: Dict[str, BaseRecord] = {r.id: r for r in current_records}
        for i in range(session.cursor + 1, len(session.ordered_record_ids)):
            record = by_id.get(session.ordered_record_ids[i])
            if record is not None and self.is_untouched(record):
                session.cursor = i
                logger.debug(f"Campaign on {session.module} advanced to {i} ({record.id})")
                return session

        self.end(session)
        return session

    def jump(self, session: CampaignSession, record_id: str) -> CampaignSession:
        """Point the cursor at record_id (manual selection)."""
        try:
            index = session.ordered_record_ids.index(record_id)
        except ValueError:
            raise ValueError(f"Record {record_id} is not part of this session")

        session.cursor = index
        session.state = SessionState.ACTIVE
        return session

    def end(self, session: CampaignSession) -> CampaignSession:
        session.state = SessionState.IDLE
        session.cursor = None
        logger.info(f"Campaign on {session.module} ended")
        return session
