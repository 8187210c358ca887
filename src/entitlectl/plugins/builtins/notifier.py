"""Built-in notifier: records the notice in the log instead of sending it."""

from __future__ import annotations

import pluggy
import structlog

hookimpl = pluggy.HookimplMarker("entitlectl")

log = structlog.get_logger("entitlectl.notifier")


class LogNotifierPlugin:
    """Stand-in for a mail transport; always reports success."""

    @hookimpl(trylast=True)
    def send_notification(
        self,
        recipient: str,
        public_link: str,
        artifact_ref: str,
    ) -> bool | None:
        log.info(
            "notification.sent",
            recipient=recipient,
            public_link=public_link,
            artifact_ref=artifact_ref,
        )
        return True
