"""Abstract base classes for channel providers."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable

from notifier.domain.models import EmailParams, ProviderResult, SMSParams


class BaseProvider(ABC):
    """Common behaviour for providers backed by blocking client libraries."""

    name = "base"

    async def run_blocking(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking client call in a worker thread."""
        return await asyncio.to_thread(func, *args)


class BaseEmailProvider(BaseProvider):
    """Email provider contract.

    ``send`` returns a ProviderResult for failures the provider understands
    and may raise a NotificationError subclass for transport failures.
    """

    @abstractmethod
    async def send(self, params: EmailParams) -> ProviderResult:
        raise NotImplementedError


class BaseSMSProvider(BaseProvider):
    """SMS provider contract."""

    @abstractmethod
    async def send(self, params: SMSParams) -> ProviderResult:
        raise NotImplementedError
