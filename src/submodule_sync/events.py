from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PushNotification:
    """The parts of a webhook delivery the router and orchestrator consume.

    Attributes:
        full_name (str): `owner/name` of the repository that sent the event.
        name (str): Short repository name, used as the registry key.
        ref (str): Fully qualified ref that was pushed (e.g. `refs/heads/main`).
        before (str): SHA the ref pointed at before the push.
        after (str): SHA the ref points at after the push.
    """

    full_name: str
    name: str
    ref: str = ""
    before: str = ""
    after: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PushNotification":
        """Extracts a notification from a decoded webhook payload.

        Non-push payloads lack most fields; missing values become empty strings
        so every delivery can still be logged.
        """
        repository = payload.get("repository") or {}
        return cls(
            full_name=repository.get("full_name") or "",
            name=repository.get("name") or "",
            ref=payload.get("ref") or "",
            before=payload.get("before") or "",
            after=payload.get("after") or "",
        )
