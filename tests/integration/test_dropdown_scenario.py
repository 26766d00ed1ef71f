"""
The canonical defect: a transparent, absolutely positioned dropdown drawn
over page content. Enabling dark mode must patch it with one style block and
disabling must leave the page exactly as it was.
"""

from __future__ import annotations

import asyncio

from darkpatch.engine import DarkPatchEngine
from darkpatch.llm.generator import GenerationResult
from darkpatch.runtime.policy import Policy


def test_enable_then_disable(dropdown_tree, store, fake_generator):
    tree = dropdown_tree()
    engine = DarkPatchEngine(tree, store=store, generator=fake_generator, policy=Policy(), tick=60)

    async def scenario():
        await engine.enable(domain="example.com")
        enabled = (dict(tree.style_blocks()), len(tree.marked_nodes()), tree.mode_marker())
        await engine.disable()
        return enabled

    blocks, marked, mode_marker = asyncio.run(scenario())

    assert len(blocks) == 1
    assert ".dropdown-menu" in next(iter(blocks.values()))
    assert marked == 1
    assert mode_marker

    assert tree.style_blocks() == {}
    assert tree.marked_nodes() == []
    assert tree.mode_marker() is False


def test_opaque_dropdown_is_left_alone(dropdown_tree, store, fake_generator):
    tree = dropdown_tree(
        **{"background-color": "rgb(34, 34, 34)", "color": "rgb(230, 230, 230)"}
    )
    engine = DarkPatchEngine(tree, store=store, generator=fake_generator, policy=Policy(), tick=60)

    async def scenario():
        report = await engine.enable()
        await engine.disable()
        return report

    report = asyncio.run(scenario())

    assert report.issues == 0
    assert fake_generator.calls == []


def test_low_z_index_dropdown_is_not_a_menu(dropdown_tree, store, fake_generator):
    tree = dropdown_tree(**{"z-index": "50"})
    engine = DarkPatchEngine(tree, store=store, generator=fake_generator, policy=Policy(), tick=60)

    async def scenario():
        report = await engine.enable()
        await engine.disable()
        return report

    assert asyncio.run(scenario()).issues == 0


def test_learning_loop_across_page_loads(dropdown_tree, store, make_generator):
    """Three good ratings on generated fixes teach the store; the fourth load reuses the rule."""
    rule = "div.dropdown-menu { background-color: #1e1e1e !important; }"
    generator = make_generator(GenerationResult.success(rule))
    menu = "html/body[1]/div[1]"

    async def page_load(rate: bool):
        engine = DarkPatchEngine(
            dropdown_tree(), store=store, generator=generator, policy=Policy(), tick=60
        )
        report = await engine.enable(domain="example.com")
        patch = engine.state.applied[menu]
        if rate:
            engine.rate(menu, "up")
        await engine.disable()
        return report, patch

    for _ in range(3):
        asyncio.run(page_load(rate=True))
    report, patch = asyncio.run(page_load(rate=False))

    assert report.generations == 0
    assert patch.source_kind.value == "learned"
    assert patch.rule_text == rule
    assert patch.confidence == 1.0
    assert len(generator.calls) == 3
