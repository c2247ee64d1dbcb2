"""Tenant notification delivery."""

from trust_ledger.domain.events import TenantFundsEvent
from trust_ledger.logging_config import get_logger
from trust_ledger.services.interfaces import NotificationService

logger = get_logger(__name__)


class LoggingNotificationService(NotificationService):
    """Records tenant fund movements in the structured log.

    Stands in for an email or SMS gateway; deployments that deliver real
    messages provide their own NotificationService.
    """

    def notify(self, event: TenantFundsEvent) -> None:
        logger.info(
            "tenant_funds_notification",
            kind=event.kind.value,
            tenant_id=str(event.tenant_id),
            amount=str(event.amount),
            account_type=event.account_type.value,
            account_id=str(event.account_id),
            transaction_id=str(event.transaction_id),
            transaction_date=event.transaction_date.isoformat(),
        )


class RecordingNotificationService(NotificationService):
    """Keeps delivered events in memory."""

    def __init__(self) -> None:
        self.events: list[TenantFundsEvent] = []

    def notify(self, event: TenantFundsEvent) -> None:
        self.events.append(event)
