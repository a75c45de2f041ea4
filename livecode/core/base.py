"""Abstract base class for guest runtime adapters.

Provides GuestRuntime ABC that defines the contract the loader and the
execution session rely on: bootstrapping, booting, executing source for its
final expression value, loading and installing packages, and restoring the
output instrumentation. Each adapter shares the policy, logging and the
per-handle execution lock defined here.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from livecode.core.errors import GuestExecutionError
from livecode.instrumentation import Instrumentation

if TYPE_CHECKING:
    from livecode.core.logging import LiveCodeLogger
    from livecode.core.models import RuntimePolicy


class GuestRuntime(ABC):
    """Abstract base class for guest runtime implementations.

    A runtime is booted once by a RuntimeLoader and then shared by every
    ExecutionSession of that loader. Its interpreter state (globals, imported
    modules, the stdout redirection installed by the instrumentation) is
    mutable and shared, so runs must hold ``exclusive`` for the whole
    prologue-to-epilogue span.

    Attributes:
        policy: RuntimePolicy with interpreter, package and timeout settings
        instrumentation: Instrumentation built from the policy
        logger: LiveCodeLogger for structured event logging
    """

    def __init__(self, policy: RuntimePolicy, logger: LiveCodeLogger | None = None) -> None:
        """Initialize GuestRuntime with policy and logger.

        Args:
            policy: RuntimePolicy with validated settings
            logger: Optional LiveCodeLogger for structured events.
                    If None, creates default logger named 'livecode'.
        """
        self.policy = policy
        self.instrumentation = Instrumentation(policy)
        self._lock = asyncio.Lock()

        if logger is None:
            # Import here to avoid circular dependency
            from livecode.core.logging import LiveCodeLogger
            self.logger = LiveCodeLogger()
        else:
            self.logger = logger

    @property
    def exclusive(self) -> asyncio.Lock:
        """Lock guarding the non-reentrant instrumentation protocol."""
        return self._lock

    @property
    @abstractmethod
    def is_alive(self) -> bool:
        """Whether the runtime is booted and can accept work."""

    @abstractmethod
    async def bootstrap(self) -> bool:
        """Make the bootstrap asset available, fetching it only if missing.

        Returns:
            True if the asset had to be fetched or created, False if present

        Raises:
            RuntimeLoadError: If the asset cannot be obtained
        """

    @abstractmethod
    async def start(self) -> None:
        """Boot the interpreter with its own output streams silenced.

        Raises:
            RuntimeLoadError: If the interpreter fails to come up
        """

    @abstractmethod
    async def run(self, source: str) -> str | None:
        """Execute guest source and return its final expression value.

        Args:
            source: Guest source; a trailing expression statement is evaluated

        Returns:
            The final expression value as text, or None if there is none

        Raises:
            GuestExecutionError: If guest code raises
            RuntimeCrashedError: If the interpreter is gone
        """

    @abstractmethod
    async def install_package(self, name: str) -> None:
        """Install a package into the guest environment on demand.

        Raises:
            RuntimeLoadError: If the installer fails
        """

    @abstractmethod
    async def close(self, *, force: bool = False) -> None:
        """Shut the interpreter down. Safe to call more than once.

        Args:
            force: Stop immediately even if guest code is still running
        """

    async def load_packages(self, names: list[str]) -> None:
        """Import packages in the guest so later runs find them warm."""
        if names:
            await self.run("\n".join(f"import {name}" for name in names))

    async def has_module(self, name: str) -> bool:
        """Return whether the guest can import ``name``."""
        try:
            await self.run(f"import {name}")
        except GuestExecutionError as e:
            if "ModuleNotFoundError" in e.message or "ImportError" in e.message:
                return False
            raise
        return True

    async def restore(self) -> str:
        """Undo the instrumentation and return whatever output was buffered.

        Used after a failed run: the epilogue never ran as part of the program,
        so it is submitted on its own.
        """
        value = await self.run(self.instrumentation.epilogue)
        return value or ""
