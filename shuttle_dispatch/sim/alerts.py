from __future__ import annotations

"""
File: shuttle_dispatch/sim/alerts.py
Purpose: Emergency alert creation and resolution.
"""

import logging

from shuttle_dispatch import events
from shuttle_dispatch.errors import InvalidTransition, ValidationError
from shuttle_dispatch.sim.entities import EmergencyAlert

logger = logging.getLogger("shuttle-alerts")


class AlertDesk:
    def __init__(self, store, notifier: events.EventNotifier, clock) -> None:
        self.store = store
        self.notifier = notifier
        self.clock = clock

    async def raise_alert(self, alert_type: str, message: str, priority: str = "high") -> EmergencyAlert:
        if not alert_type or not message:
            raise ValidationError("alert_type and message are required")
        now = self.clock.now()
        fields = {
            "alert_type": alert_type,
            "message": message,
            "priority": priority,
            "status": "active",
            "created_date": now,
        }
        record = await self.store.alerts.create(fields)
        alert = EmergencyAlert.model_validate({**fields, **(record or {})})
        logger.warning("emergency alert raised alert_id=%s type=%s", alert.id, alert.alert_type)
        await self.notifier.notify(
            events.ALERT_CREATED,
            {
                "alert_id": alert.id,
                "alert_type": alert.alert_type,
                "message": alert.message,
                "priority": alert.priority,
                "status": alert.status,
                "created_at": now,
            },
        )
        return alert

    async def resolve_alert(self, alert: EmergencyAlert) -> EmergencyAlert:
        if alert.status != "active":
            raise InvalidTransition(alert.id, "resolve alert", alert.status)
        now = self.clock.now()
        fields = {"status": "resolved", "resolved_time": now}
        record = await self.store.alerts.update(alert.id, fields)
        resolved = EmergencyAlert.model_validate({**alert.model_dump(), **fields, **(record or {})})
        logger.info("emergency alert resolved alert_id=%s", alert.id)
        await self.notifier.notify(
            events.ALERT_RESOLVED,
            {"alert_id": alert.id, "alert_type": alert.alert_type, "resolved_at": now},
        )
        return resolved
