from __future__ import annotations

import asyncio

import pytest

from darkpatch.engine import DarkPatchEngine, status_confidence
from darkpatch.errors import ApplyError
from darkpatch.llm.generator import GenerationResult
from darkpatch.observability.telemetry import get_counter
from darkpatch.patching.applier import PAGE_IDENTITY
from darkpatch.patching.selectors import block_id_for
from darkpatch.runtime.policy import Policy, SynthesisPolicy
from darkpatch.runtime.scheduler import CycleScope
from darkpatch.runtime.state import MAX_TRACKED_SCOPES, RuntimeState

MENU = "html/body[1]/div[1]"
SELECTOR_RULE = "div.dropdown-menu { background-color: #222 !important; }"


@pytest.fixture
def make_engine(dropdown_tree, store, fake_generator, policy):
    def _make(tree=None, **overrides) -> DarkPatchEngine:
        options = {
            "store": store,
            "generator": fake_generator,
            "policy": policy,
            "debounce": 60,
            "tick": 60,
        }
        options.update(overrides)
        return DarkPatchEngine(tree or dropdown_tree(), **options)

    return _make


def _run(engine: DarkPatchEngine, *steps):
    """Enable, run the given coroutine factories, then disable."""

    async def scenario():
        results = [await engine.enable()]
        for step in steps:
            results.append(await step())
        await engine.disable()
        return results

    return asyncio.run(scenario())


class TestCycle:
    def test_enable_patches_transparent_menu(self, make_engine, fake_generator):
        engine = make_engine()

        async def scenario():
            report = await engine.enable()
            snapshot = (dict(engine.tree.style_blocks()), engine.tree.mode_marker())
            await engine.disable()
            return report, snapshot

        report, (blocks, mode_marker) = asyncio.run(scenario())

        assert report.issues == 1
        assert report.applied == 1
        assert report.generations == 1
        assert list(blocks) == [block_id_for(MENU)]
        assert ".dropdown-menu" in blocks[block_id_for(MENU)]
        assert mode_marker
        assert fake_generator.calls[0].selector == "div.dropdown-menu"

    def test_disable_restores_page(self, make_engine):
        engine = make_engine()

        _run(engine)

        assert engine.tree.style_blocks() == {}
        assert engine.tree.marked_nodes() == []
        assert engine.tree.mode_marker() is False
        assert not engine.state.enabled

    def test_unchanged_issue_set_is_skipped(self, make_engine, fake_generator):
        engine = make_engine()
        document = CycleScope.document

        _, after_patch, repeat = _run(
            engine,
            lambda: engine.run_cycle(document()),
            lambda: engine.run_cycle(document()),
        )

        # The patched menu is skipped, so the second cycle sees an empty set
        assert after_patch.changed and after_patch.issues == 0
        assert not repeat.changed
        assert repeat.skipped_reason == "issue set unchanged"
        assert len(fake_generator.calls) == 1

    def test_scoped_cycles_keep_bounded_memory(self, make_engine):
        engine = make_engine()
        # Each scope adds one more vanished node to the mutated set
        scopes = [
            CycleScope(
                whole_document=False,
                identities=frozenset({MENU, *(f"gone-{j}" for j in range(i))}),
            )
            for i in range(MAX_TRACKED_SCOPES * 2)
        ]

        async def scenario():
            await engine.enable()
            for scope in scopes:
                await engine.run_cycle(scope)
            tracked = len(engine.state.last_issue_sets)
            repeat = await engine.run_cycle(scopes[-1])
            await engine.disable()
            return tracked, repeat

        tracked, repeat = asyncio.run(scenario())

        assert tracked == MAX_TRACKED_SCOPES
        assert not repeat.changed

    def test_failed_generation_is_retried(self, make_engine, make_generator):
        generator = make_generator(GenerationResult.failure("timeout", "slow"))
        engine = make_engine(generator=generator)

        first, second = _run(engine, lambda: engine.run_cycle(CycleScope.document()))

        assert first.no_patch == 1
        assert second.changed
        assert len(generator.calls) == 2
        assert engine.tree.style_blocks() == {}

    def test_generation_budget_defers_issue(self, make_engine, fake_generator):
        policy = Policy(synthesis=SynthesisPolicy(max_generations_per_cycle=0))
        engine = make_engine(policy=policy)

        (report,) = _run(engine)

        assert report.no_patch == 1
        assert fake_generator.calls == []
        assert get_counter("synthesizer.generation_deferred") == 1

    def test_template_patch_without_generator(self, make_engine):
        engine = make_engine(generator=None)

        (report,) = _run(engine)

        assert report.applied == 1

    def test_disabled_engine_does_nothing(self, make_engine):
        engine = make_engine()

        report = asyncio.run(engine.run_cycle(CycleScope.document()))

        assert report.skipped_reason == "disabled"
        assert engine.tree.style_blocks() == {}

    def test_rejected_writes_are_contained(self, make_engine):
        engine = make_engine()
        engine.tree.reject_writes = True

        async def scenario():
            report = await engine.enable()
            await engine.monitor.stop()
            return report

        report = asyncio.run(scenario())

        assert report.applied == 0
        assert len(report.errors) == 1
        assert report.errors[0].startswith(MENU)
        assert get_counter("engine.apply_error") == 1

    def test_mutation_triggers_scoped_cycle(self, make_engine, fake_generator):
        engine = make_engine(debounce=0.01)

        async def scenario():
            await engine.enable()
            intro = engine.tree.resolve('id("intro")')
            engine.tree.set_style(intro, "background-color", "rgb(255, 255, 255)")
            await asyncio.sleep(0.1)
            await engine.monitor.wait_idle()
            blocks = dict(engine.tree.style_blocks())
            await engine.disable()
            return blocks

        blocks = asyncio.run(scenario())

        assert block_id_for('id("intro")') in blocks
        assert len(blocks) == 2
        assert len(fake_generator.calls) == 2


class TestFeedback:
    def test_rating_records_generalized_rule(self, make_engine, make_generator, store):
        engine = make_engine(generator=make_generator(GenerationResult.success(SELECTOR_RULE)))

        async def scenario():
            await engine.enable(domain="Example.com")
            record = engine.rate(MENU, "up")
            await engine.disable()
            return record

        record = asyncio.run(scenario())

        assert record.success_count == 1
        entry = store.ledger()[0]
        assert entry.rule_text == "{{selector}} { background-color: #222 !important; }"
        assert entry.domain == "example.com"
        assert entry.signature.element == "navigation"

    def test_rating_unpatched_node(self, make_engine):
        engine = make_engine()
        with pytest.raises(KeyError):
            engine.rate('id("intro")', "up")

    def test_rating_without_store(self, make_engine):
        engine = make_engine(store=None)
        with pytest.raises(ValueError):
            engine.rate(MENU, "up")

    def test_learned_rule_is_reused(self, make_engine, make_generator, store):
        generator = make_generator(GenerationResult.success(SELECTOR_RULE))

        for _ in range(3):
            engine = make_engine(generator=generator)

            async def rate_once(engine=engine):
                await engine.enable()
                engine.rate(MENU, "up")
                await engine.disable()

            asyncio.run(rate_once())

        engine = make_engine(generator=generator)
        (report,) = _run(engine)

        assert report.applied == 1
        assert report.generations == 0
        assert len(generator.calls) == 3
        assert get_counter("synthesizer.learned") == 1


class TestVerification:
    def test_verify_rescans_patched_nodes(self, make_engine):
        engine = make_engine()

        async def scenario():
            await engine.enable()
            report = engine.verify()
            await engine.disable()
            return report

        report = asyncio.run(scenario())

        assert report.remaining_issues == 1
        assert report.patched_nodes == 1
        assert report.problems == {"transparent_menu_background": 1}
        assert report.is_working_well

    def test_status(self, make_engine):
        engine = make_engine()
        assert engine.status()["enabled"] is False
        assert engine.status()["confidence"] == 100

        async def scenario():
            await engine.enable()
            status = engine.status()
            await engine.disable()
            return status

        status = asyncio.run(scenario())

        assert status["enabled"] is True
        assert status["mode_marker"] is True
        assert status["applied_patches"] == 1
        assert status["problems_found"] == 1
        assert status["confidence"] == 90
        assert status["store_available"] is True

    @pytest.mark.parametrize("count,expected", [(0, 100), (1, 90), (5, 50), (8, 20), (30, 20)])
    def test_status_confidence(self, count, expected):
        assert status_confidence(count) == expected


class TestConversation:
    def test_converse_applies_page_patch(self, make_engine, make_generator):
        generator = make_generator(
            converse_result=GenerationResult.success(":root { color-scheme: dark; }")
        )
        engine = make_engine(generator=generator)

        async def scenario():
            await engine.enable()
            result = await engine.converse("darker please")
            blocks = dict(engine.tree.style_blocks())
            await engine.disable()
            return result, blocks

        result, blocks = asyncio.run(scenario())

        assert result.ok
        assert blocks[block_id_for(PAGE_IDENTITY)] == ":root { color-scheme: dark; }"
        assert engine.tree.style_blocks() == {}


def test_disable_failure_still_resets_state(make_engine):
    engine = make_engine()

    async def scenario():
        await engine.enable()
        engine.tree.reject_writes = True
        with pytest.raises(ApplyError):
            await engine.disable()

    asyncio.run(scenario())

    assert not engine.state.enabled
    assert engine.state.applied == {}
    assert engine.tree.mode_marker() is False


def test_issue_memory_evicts_least_recent_scope():
    state = RuntimeState(max_tracked_scopes=2)
    empty: frozenset[str] = frozenset()

    assert state.issues_changed("a", empty)
    assert state.issues_changed("b", empty)
    assert not state.issues_changed("a", empty)
    assert state.issues_changed("c", empty)

    assert list(state.last_issue_sets) == ["a", "c"]
