"""Tests for variant probing, lock-in and re-probing."""

import asyncio
from typing import Optional

import pytest

from middleman.indexer.errors import (
    AllVariantsExhaustedError,
    CursorInvalidatedError,
    TransportError,
)
from middleman.indexer.executor import AdaptiveExecutor
from middleman.indexer.models import NormalizedPage, PageInfo
from middleman.indexer.variants import QueryVariant, VariantGenerator, VariantRegistry

OP = "things"


def make_variant(root: str, shape_ok: bool = True) -> QueryVariant:
    """Variant whose document is just its root field name."""

    def extract(data: dict) -> Optional[NormalizedPage]:
        if not shape_ok or root not in data:
            return None
        return NormalizedPage(items=data[root], page_info=PageInfo())

    return QueryVariant(
        name=root,
        document=root,
        extract=extract,
        build_variables=lambda owner, limit, cursor: {"owner": owner},
    )


class Schema:
    """Fake transport that only knows a set of root fields."""

    def __init__(self, roots, delay: float = 0.0):
        self.roots = set(roots)
        self.delay = delay
        self.calls: list[str] = []

    async def send(self, document, variables=None, endpoint=None):
        self.calls.append(document)
        if self.delay:
            await asyncio.sleep(self.delay)
        if document not in self.roots:
            raise TransportError(f'Cannot query field "{document}" on type "Query".')
        return {document: [f"{document}-item"]}


class StaticGenerator(VariantGenerator):
    def __init__(self, variants):
        self.variants = variants
        self.calls = 0

    async def discover(self, operation, transport):
        self.calls += 1
        return list(self.variants)


def make_executor(schema: Schema, roots=("a", "b", "c"), **kwargs) -> AdaptiveExecutor:
    registry = VariantRegistry({OP: tuple(make_variant(r) for r in roots)})
    return AdaptiveExecutor(schema, registry=registry, **kwargs)


class TestProbing:
    """Tests for the UNPROBED -> LOCKED transition."""

    @pytest.mark.asyncio
    async def test_locks_onto_first_working_variant(self):
        schema = Schema({"b", "c"})
        executor = make_executor(schema)

        execution = await executor.execute(OP, "stars1owner", 10)

        assert execution.variant.name == "b"
        assert execution.page.items == ["b-item"]
        assert schema.calls == ["a", "b"]
        assert executor.active_variant(OP).name == "b"

    @pytest.mark.asyncio
    async def test_locked_variant_skips_earlier_candidates(self):
        schema = Schema({"b"})
        executor = make_executor(schema)
        await executor.execute(OP, "stars1owner", 10)
        schema.calls.clear()

        await executor.execute(OP, "stars1owner", 10)
        await executor.execute(OP, "stars1owner", 10)

        assert schema.calls == ["b", "b"]

    @pytest.mark.asyncio
    async def test_reprobes_after_locked_variant_breaks(self):
        """Schema drift: the locked root disappears and a later one appears."""
        schema = Schema({"b"})
        executor = make_executor(schema)
        await executor.execute(OP, "stars1owner", 10)

        schema.roots = {"c"}
        schema.calls.clear()
        execution = await executor.execute(OP, "stars1owner", 10)

        assert execution.variant.name == "c"
        assert schema.calls == ["b", "a", "b", "c"]
        assert executor.active_variant(OP).name == "c"

    @pytest.mark.asyncio
    async def test_shape_mismatch_counts_as_failure(self):
        schema = Schema({"a", "b"})
        registry = VariantRegistry({OP: (make_variant("a", shape_ok=False), make_variant("b"))})
        executor = AdaptiveExecutor(schema, registry=registry)

        execution = await executor.execute(OP, None, 10)

        assert execution.variant.name == "b"

    @pytest.mark.asyncio
    async def test_all_variants_exhausted(self):
        schema = Schema(set())
        executor = make_executor(schema)

        with pytest.raises(AllVariantsExhaustedError) as exc_info:
            await executor.execute(OP, "stars1owner", 10)

        assert exc_info.value.operation == OP
        assert isinstance(exc_info.value.last_error, TransportError)
        assert "all variants failed for 'things'" in str(exc_info.value)
        assert executor.active_variant(OP) is None
        assert schema.calls == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_unknown_operation(self):
        executor = make_executor(Schema({"a"}))

        with pytest.raises(KeyError):
            await executor.execute("missing", None, 10)

    @pytest.mark.asyncio
    async def test_reset_forgets_lock_in(self):
        schema = Schema({"b"})
        executor = make_executor(schema)
        await executor.execute(OP, None, 10)

        executor.reset(OP)

        assert executor.active_variant(OP) is None
        schema.calls.clear()
        await executor.execute(OP, None, 10)
        assert schema.calls == ["a", "b"]


class TestDiscovery:
    """Tests for the variant generator extension point."""

    @pytest.mark.asyncio
    async def test_generator_consulted_after_registry_fails(self):
        schema = Schema({"z"})
        generator = StaticGenerator([make_variant("z")])
        executor = make_executor(schema, generator=generator)

        execution = await executor.execute(OP, None, 10)

        assert execution.variant.name == "z"
        assert generator.calls == 1
        assert schema.calls == ["a", "b", "c", "z"]

    @pytest.mark.asyncio
    async def test_discovered_variant_is_kept(self):
        schema = Schema({"z"})
        generator = StaticGenerator([make_variant("z")])
        executor = make_executor(schema, generator=generator)
        await executor.execute(OP, None, 10)

        # Lock is lost but "z" is remembered as a candidate
        executor._states[OP].active = None
        await executor.execute(OP, None, 10)

        assert generator.calls == 1

    @pytest.mark.asyncio
    async def test_discovery_of_already_tried_variants_stops(self):
        schema = Schema(set())
        generator = StaticGenerator([make_variant("a")])
        executor = make_executor(schema, generator=generator)

        with pytest.raises(AllVariantsExhaustedError):
            await executor.execute(OP, None, 10)

        assert generator.calls == 1
        assert schema.calls == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_discovery_disabled(self):
        schema = Schema({"z"})
        generator = StaticGenerator([make_variant("z")])
        executor = make_executor(schema, generator=generator, max_discovery_rounds=0)

        with pytest.raises(AllVariantsExhaustedError):
            await executor.execute(OP, None, 10)

        assert generator.calls == 0


class TestPinnedCursors:
    """Tests for cursors bound to the variant that issued them."""

    @pytest.mark.asyncio
    async def test_pinned_variant_is_used(self):
        schema = Schema({"b"})
        executor = make_executor(schema)
        await executor.execute(OP, None, 10)
        schema.calls.clear()

        execution = await executor.execute(OP, None, 10, cursor="10", pinned="b")

        assert execution.variant.name == "b"
        assert schema.calls == ["b"]

    @pytest.mark.asyncio
    async def test_cursor_from_replaced_variant_is_rejected(self):
        schema = Schema({"b"})
        executor = make_executor(schema)
        await executor.execute(OP, None, 10)
        schema.calls.clear()

        with pytest.raises(CursorInvalidatedError) as exc_info:
            await executor.execute(OP, None, 10, cursor="10", pinned="a")

        assert exc_info.value.variant == "a"
        assert schema.calls == []

    @pytest.mark.asyncio
    async def test_pinned_failure_invalidates_and_unlocks(self):
        schema = Schema({"b"})
        executor = make_executor(schema)
        await executor.execute(OP, None, 10)

        schema.roots = {"c"}
        with pytest.raises(CursorInvalidatedError):
            await executor.execute(OP, None, 10, cursor="10", pinned="b")

        assert executor.active_variant(OP) is None

    @pytest.mark.asyncio
    async def test_pinned_on_unprobed_operation(self):
        executor = make_executor(Schema({"a"}))

        with pytest.raises(CursorInvalidatedError):
            await executor.execute(OP, None, 10, cursor="10", pinned="a")


class TestSingleFlight:
    """Tests for concurrent callers during probing."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_probe_once(self):
        schema = Schema({"b"}, delay=0.01)
        executor = make_executor(schema)

        results = await asyncio.gather(*(executor.execute(OP, None, 10) for _ in range(5)))

        assert all(r.variant.name == "b" for r in results)
        # Only the first caller walks past the broken candidate
        assert schema.calls.count("a") == 1
        assert schema.calls.count("b") == 5
        assert "c" not in schema.calls

    @pytest.mark.asyncio
    async def test_operations_probe_independently(self):
        schema = Schema({"b", "y"})
        registry = VariantRegistry(
            {
                OP: (make_variant("a"), make_variant("b")),
                "others": (make_variant("x"), make_variant("y")),
            }
        )
        executor = AdaptiveExecutor(schema, registry=registry)

        first, second = await asyncio.gather(
            executor.execute(OP, None, 10),
            executor.execute("others", None, 10),
        )

        assert first.variant.name == "b"
        assert second.variant.name == "y"
