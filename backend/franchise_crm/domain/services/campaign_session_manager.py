"""
Campaign Session Manager
Keeps the active campaign session per (viewer, module) in memory
"""
import logging
from typing import Dict, Optional, Tuple

from franchise_crm.domain.services.campaign_engine import CampaignSession

logger = logging.getLogger(__name__)


class CampaignSessionManager:
    """
    In-memory session registry.

    Sessions are transient by nature (a cursor over a snapshot of ids)
    and are never persisted; a restart simply returns every viewer to idle.
    """

    def __init__(self):
        self._sessions: Dict[Tuple[str, str], CampaignSession] = {}

    def get(self, viewer_tenant: str, module: str) -> Optional[CampaignSession]:
        return self._sessions.get((viewer_tenant, module))

    def put(self, viewer_tenant: str, session: CampaignSession) -> CampaignSession:
        """Store session, replacing any previous one for this viewer and module."""
        key = (viewer_tenant, session.module)
        if key in self._sessions:
            logger.debug(f"Replacing campaign session for {viewer_tenant}/{session.module}")
        self._sessions[key] = session
        return session

    def end(self, viewer_tenant: str, module: str) -> bool:
        session = self._sessions.pop((viewer_tenant, module), None)
        if session is None:
            return False
        logger.info(f"Discarded campaign session for {viewer_tenant}/{module}")
        return True

    def get_active_session_count(self) -> int:
        return sum(1 for s in self._sessions.values() if s.is_active)

    def clear(self) -> None:
        self._sessions.clear()
