from .audit import AuditLog
from .config import SubmoduleBinding
from .constants import BRANCH_REF_PREFIX, PUSH_EVENT
from .events import PushNotification
from .registry import SubmoduleRegistry
from .sync import SyncOrchestrator, SyncResult


class EventRouter:
    """Decides which received webhooks trigger a sync.

    Only a push to the watched branch of a monitored submodule repository
    reaches the orchestrator; everything else is logged as a minor reception.
    """

    def __init__(
        self,
        registry: SubmoduleRegistry,
        orchestrator: SyncOrchestrator,
        audit: AuditLog,
    ):
        self.registry = registry
        self.orchestrator = orchestrator
        self.audit = audit

    def match(
        self, event_kind: str, notification: PushNotification
    ) -> SubmoduleBinding | None:
        """Returns the binding a delivery should sync, or None to ignore it.

        Args:
            event_kind (str): The webhook event name (e.g. 'push', 'ping').
            notification (PushNotification): The parsed delivery.
        """
        if event_kind != PUSH_EVENT:
            return None

        binding = self.registry.lookup(notification.name)
        if binding is None:
            return None

        if notification.ref != BRANCH_REF_PREFIX + binding.branch:
            return None

        return binding

    async def handle(
        self, event_kind: str, notification: PushNotification
    ) -> SyncResult | None:
        """Logs a delivery and runs the sync it calls for, if any.

        Returns:
            SyncResult | None: The sync outcome, or None if the delivery was
            filtered out.
        """
        binding = self.match(event_kind, notification)
        if binding is None:
            self.audit.reception(event_kind, notification, minor=True)
            return None

        self.audit.reception(event_kind, notification)
        return await self.orchestrator.run(binding, notification)
