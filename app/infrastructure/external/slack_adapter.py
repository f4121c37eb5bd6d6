import logging
from typing import Any, Optional

import httpx

from app.application.interfaces import OperationsAlertInterface
from app.config.settings import settings
from app.pipelines.recording.types import FailureReport

logger = logging.getLogger(__name__)


def build_failure_message(report: FailureReport) -> dict[str, Any]:
    """Slack-compatible payload describing a permanently failed recording."""

    duration = (
        f"{report.duration_seconds:.0f}s" if report.duration_seconds is not None else "unknown"
    )
    audio = f"<{report.audio_url}|Listen>" if report.audio_url else "unavailable"
    lines = [
        ":rotating_light: *Recording processing failed*",
        f"*Recording:* `{report.recording_id}`",
        f"*User:* `{report.user_id}`",
        f"*Retry attempts:* {report.retry_count + 1}/{report.max_attempts}",
        f"*Duration:* {duration}",
        f"*Audio:* {audio}",
        f"*Failed at:* {report.failed_at.isoformat()}",
        f"*Error:* ```{report.error[:1500]}```",
    ]
    return {"text": "\n".join(lines)}


class SlackOpsAlerter(OperationsAlertInterface):
    """Post failure reports to an incoming-webhook URL."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._webhook_url = webhook_url or settings.notifications.slack_webhook_url
        self._timeout = settings.notifications.alert_timeout_seconds
        self._transport = transport

    async def report_failure(self, report: FailureReport) -> None:
        if not self._webhook_url:
            logger.warning(
                "No ops webhook configured; failure for recording %s not reported: %s",
                report.recording_id,
                report.error,
            )
            return

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._webhook_url, json=build_failure_message(report))
            response.raise_for_status()
