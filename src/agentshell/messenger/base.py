"""Abstract chat adapter interface for the polling bot."""

from __future__ import annotations

from abc import ABC, abstractmethod

from agentshell.messenger.models import OutgoingMessage, Update


class ChatAdapter(ABC):
    """Base class for chat platform adapters.

    The bot pulls updates itself (long poll) and acknowledges them by passing
    a higher offset on the next fetch, so an adapter keeps no delivery state.
    """

    async def start(self) -> None:
        """Connect to the platform."""

    async def stop(self) -> None:
        """Gracefully disconnect."""

    @abstractmethod
    async def fetch_updates(self, offset: int, timeout: int) -> list[Update]:
        """Return updates with ``update_id >= offset``, waiting up to *timeout* seconds."""
        ...

    @abstractmethod
    async def send_message(self, message: OutgoingMessage) -> None:
        ...

    @abstractmethod
    async def send_typing_indicator(self, chat_id: str) -> None:
        """Show typing/processing indicator."""
        ...

    @property
    @abstractmethod
    def platform_name(self) -> str:
        ...
