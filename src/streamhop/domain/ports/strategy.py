"""Port for a hop-chain resolution strategy."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from streamhop.domain.entities.resolution import (
    ChainDefinition,
    Deadline,
    ExtractionResult,
    HopTrace,
    ProgressCallback,
    StrategyName,
)


@runtime_checkable
class ResolutionStrategyPort(Protocol):
    """Walks a chain definition from an initial URL to a manifest URL.

    Implementations never raise for hop failures; they return a failed
    ``ExtractionResult`` and leave their hop attempts in *trace*.  They know
    nothing about escalation to other strategies.
    """

    @property
    def name(self) -> StrategyName:
        """Strategy name recorded in traces ('fetch', 'render')."""
        ...

    async def resolve(
        self,
        initial_url: str,
        chain: ChainDefinition,
        *,
        trace: HopTrace | None = None,
        deadline: Deadline | None = None,
        progress: ProgressCallback | None = None,
    ) -> ExtractionResult:
        """Resolve *chain* starting at *initial_url*."""
        ...
