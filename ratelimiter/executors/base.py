"""Script executor contract.

An executor runs a named atomic procedure in the shared store. The limiter
relies on nothing else: connection handling, retries and timeouts belong to
the executor and the client it wraps.
"""

from abc import ABC, abstractmethod
from typing import Any, List


class ScriptExecutor(ABC):
    """Abstract base class for synchronous script executors."""

    @abstractmethod
    def execute(self, script: str, key: str, *args: str) -> List[Any]:
        """Run ``script`` atomically against ``key``.

        Args:
            script: Source text of the procedure
            key: Store key the procedure operates on
            *args: Ordered, string-encoded procedure arguments

        Returns:
            The procedure's ordered reply values
        """
        pass


class AsyncScriptExecutor(ABC):
    """Abstract base class for asyncio script executors."""

    @abstractmethod
    async def execute(self, script: str, key: str, *args: str) -> List[Any]:
        """Run ``script`` atomically against ``key``.

        Same contract as ``ScriptExecutor.execute``.
        """
        pass
