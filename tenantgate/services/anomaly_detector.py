"""Heuristic login anomaly detection against a user's recent session history."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from tenantgate.infra.config import config
from tenantgate.models.context import AnomalyFinding, RequestMeta
from tenantgate.services.session_manager import SessionLifecycleManager
from tenantgate.services.user_agent import parse_user_agent

logger = logging.getLogger(__name__)


class AnomalyDetector:
    """
    Compares a login with the user's sessions created in the lookback window.

    Read-only. Rapid location change is an IP change within a time window;
    no geographic distance is computed.
    """

    def __init__(
        self,
        manager: SessionLifecycleManager,
        lookback_days: Optional[int] = None,
        rapid_window_minutes: Optional[int] = None,
    ):
        self.manager = manager
        self.lookback_days = lookback_days or config.ANOMALY_LOOKBACK_DAYS
        self.rapid_window_minutes = rapid_window_minutes or config.ANOMALY_RAPID_WINDOW_MINUTES

    def detect(
        self,
        user_id: int,
        meta: RequestMeta,
        exclude_session_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[AnomalyFinding]:
        now = now or self.manager.clock()
        baseline = self.manager.recent_sessions(
            user_id,
            since=now - timedelta(days=self.lookback_days),
            exclude_session_id=exclude_session_id,
        )
        if not baseline:
            return []

        findings: List[AnomalyFinding] = []
        device = parse_user_agent(meta.user_agent)

        known_ips = {session.ip_address for session in baseline}
        if meta.ip_address not in known_ips:
            findings.append(AnomalyFinding(
                type="new_ip",
                message="Login from new IP address",
                severity="medium",
                details={
                    "ip": meta.ip_address,
                    "location": self.manager.locate(meta.ip_address),
                },
            ))

        known_devices = {session.device_type for session in baseline}
        if device.device_type not in known_devices:
            findings.append(AnomalyFinding(
                type="new_device",
                message="Login from new device type",
                severity="medium",
                details={"device_type": device.device_type, "browser": device.browser},
            ))

        # baseline is newest first
        previous = baseline[0]
        elapsed = now - previous.created_at
        if elapsed <= timedelta(minutes=self.rapid_window_minutes) and previous.ip_address != meta.ip_address:
            findings.append(AnomalyFinding(
                type="rapid_location_change",
                message="Rapid location change detected",
                severity="high",
                details={
                    "previous_ip": previous.ip_address,
                    "current_ip": meta.ip_address,
                    "time_difference_minutes": max(0, int(elapsed.total_seconds() // 60)),
                },
            ))

        return findings
