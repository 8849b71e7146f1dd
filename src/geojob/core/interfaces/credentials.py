from typing import Optional, Protocol


class CredentialPort(Protocol):
    """Supplies the token to attach to the next request.

    The core calls this once per request and uses whatever it gets. Acquiring,
    caching and refreshing tokens (including refreshing ahead of expiry) is
    the implementation's business.
    """

    async def current_credential(self) -> Optional[str]:  # pragma: no cover - protocol
        ...
