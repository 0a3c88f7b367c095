"""Abstract service lifecycle interface."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Service(ABC):
    """Base class for long-lived collaborators started and stopped with the app.

    Services that hold network clients open them in ``start`` and release
    them in ``stop``; ``health_check`` feeds startup logging.
    """

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...
