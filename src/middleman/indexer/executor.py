"""Adaptive query executor.

Per logical operation the executor is either UNPROBED or LOCKED onto the
variant that last succeeded. An unprobed call walks the registered variants
in order and locks onto the first that works; a locked call uses only that
variant and, if it fails, drops back to UNPROBED and probes again.

Probing is single-flight per operation: concurrent callers wait on the
operation's lock and then reuse whatever variant the first prober
installed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from middleman.indexer.errors import (
    AllVariantsExhaustedError,
    CursorInvalidatedError,
    ShapeMismatchError,
    TransportError,
)
from middleman.indexer.models import NormalizedPage
from middleman.indexer.transport import GraphQLTransport
from middleman.indexer.variants import (
    NullVariantGenerator,
    QueryVariant,
    VariantGenerator,
    VariantRegistry,
    default_registry,
)

logger = logging.getLogger(__name__)


@dataclass
class Execution:
    """Result of one executed operation."""

    variant: QueryVariant
    page: NormalizedPage
    next_cursor: Optional[str] = None


@dataclass
class OperationState:
    """UNPROBED when active is None, LOCKED(active) otherwise."""

    active: Optional[QueryVariant] = None
    discovered: list[QueryVariant] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class AdaptiveExecutor:
    """Runs logical operations against a drifting GraphQL schema."""

    def __init__(
        self,
        transport: GraphQLTransport,
        registry: Optional[VariantRegistry] = None,
        generator: Optional[VariantGenerator] = None,
        max_discovery_rounds: int = 1,
    ):
        self.transport = transport
        self.registry = registry or default_registry()
        self.generator = generator or NullVariantGenerator()
        self.max_discovery_rounds = max_discovery_rounds
        self._states: dict[str, OperationState] = {}

    def _state(self, operation: str) -> OperationState:
        if operation not in self._states:
            self._states[operation] = OperationState()
        return self._states[operation]

    def active_variant(self, operation: str) -> Optional[QueryVariant]:
        """Variant the operation is currently locked onto, if any."""
        state = self._states.get(operation)
        return state.active if state else None

    def reset(self, operation: Optional[str] = None) -> None:
        """Forget lock-ins (all operations when none is given)."""
        if operation is None:
            self._states.clear()
        else:
            self._states.pop(operation, None)

    async def execute(
        self,
        operation: str,
        owner: Optional[str],
        limit: int,
        cursor: Optional[str] = None,
        pinned: Optional[str] = None,
    ) -> Execution:
        """Run an operation and return its normalized page.

        Args:
            operation: Logical operation name
            owner: Owner address (None for operations without one)
            limit: Page size
            cursor: Opaque cursor from a previous page, None for the first
            pinned: Name of the variant that issued `cursor`; only that
                variant may consume it

        Raises:
            CursorInvalidatedError: pinned variant is gone or failed
            AllVariantsExhaustedError: no variant could serve the request
        """
        state = self._state(operation)

        if pinned is not None:
            variant = state.active
            if variant is None or variant.name != pinned:
                raise CursorInvalidatedError(operation, pinned)
            try:
                return await self._attempt(variant, owner, limit, cursor)
            except (TransportError, ShapeMismatchError) as e:
                logger.warning(f"Variant '{variant.name}' failed mid-stream for {operation}: {e}")
                self._demote(state, variant)
                raise CursorInvalidatedError(operation, pinned) from e

        active = state.active
        if active is not None:
            try:
                return await self._attempt(active, owner, limit, cursor)
            except (TransportError, ShapeMismatchError) as e:
                logger.warning(
                    f"Locked variant '{active.name}' failed for {operation}, re-probing: {e}"
                )
                self._demote(state, active)

        return await self._probe(operation, state, owner, limit, cursor)

    async def _probe(
        self,
        operation: str,
        state: OperationState,
        owner: Optional[str],
        limit: int,
        cursor: Optional[str],
    ) -> Execution:
        async with state.lock:
            # Another caller may have locked in while we waited
            if state.active is not None:
                installed = state.active
                try:
                    return await self._attempt(installed, owner, limit, cursor)
                except (TransportError, ShapeMismatchError) as e:
                    logger.warning(f"Variant '{installed.name}' failed for {operation}: {e}")
                    self._demote(state, installed)

            candidates = list(self.registry.variants(operation)) + state.discovered
            tried: set[str] = set()
            last_error: Optional[Exception] = None

            for round_number in range(self.max_discovery_rounds + 1):
                for variant in candidates:
                    tried.add(variant.name)
                    try:
                        execution = await self._attempt(variant, owner, limit, cursor)
                    except (TransportError, ShapeMismatchError) as e:
                        logger.debug(f"Variant '{variant.name}' rejected for {operation}: {e}")
                        last_error = e
                        continue

                    state.active = variant
                    logger.info(f"Locked {operation} onto variant '{variant.name}'")
                    return execution

                if round_number >= self.max_discovery_rounds:
                    break
                discovered = await self.generator.discover(operation, self.transport)
                candidates = [v for v in discovered if v.name not in tried]
                if not candidates:
                    break
                logger.info(f"Discovered {len(candidates)} new variant(s) for {operation}")
                state.discovered.extend(candidates)

        logger.error(f"All variants failed for {operation}: {last_error}")
        raise AllVariantsExhaustedError(operation, last_error)

    async def _attempt(
        self,
        variant: QueryVariant,
        owner: Optional[str],
        limit: int,
        cursor: Optional[str],
    ) -> Execution:
        variables = variant.build_variables(owner, limit, cursor)
        data = await self.transport.send(variant.document, variables)
        page = variant.extract(data)
        if page is None:
            raise ShapeMismatchError(variant.name)
        return Execution(
            variant=variant,
            page=page,
            next_cursor=variant.next_cursor(page, cursor, limit),
        )

    @staticmethod
    def _demote(state: OperationState, variant: QueryVariant) -> None:
        if state.active is variant:
            state.active = None
