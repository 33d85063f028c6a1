"""Unit tests for the fold and focus engine.

Uses a recording renderer so the order of layout, highlight and centering
requests can be asserted, and an optional gate to hold a layout "in flight".
"""

from __future__ import annotations

import asyncio
import unittest
from typing import Optional

from engine import MindmapEngine, build_ancestry, collapse_all, expand_all, toggle_fold
from node_models import MindmapNode


class RecordingRenderer:
    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.gate: Optional[asyncio.Event] = None
        self.fail_next = False
        self.in_flight = 0
        self.max_in_flight = 0

    async def render(self, node: MindmapNode) -> None:
        self.calls.append(("render", node.content))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if self.fail_next:
                self.fail_next = False
                raise RuntimeError("layout exploded")
        finally:
            self.in_flight -= 1

    def set_highlight(self, node: MindmapNode) -> None:
        self.calls.append(("highlight", node.content))

    def center_node(self, node: MindmapNode) -> None:
        self.calls.append(("center", node.content))

    def fit(self) -> None:
        self.calls.append(("fit",))


def _make_tree() -> MindmapNode:
    """A -> [B -> [D, E], C]"""
    d = MindmapNode("D", kind="list")
    e = MindmapNode("E", kind="list")
    b = MindmapNode("B", children=[d, e])
    c = MindmapNode("C")
    return MindmapNode("A", children=[b, c])


def _find(root: MindmapNode, content: str) -> MindmapNode:
    return next(node for node in root.walk() if node.content == content)


class AncestryTests(unittest.TestCase):
    def test_every_node_maps_to_its_parent(self) -> None:
        root = _make_tree()
        ancestry = build_ancestry(root)
        self.assertIsNone(ancestry[root])
        for node in root.walk():
            for child in node.children:
                self.assertIs(ancestry[child], node)
        self.assertEqual(len(ancestry), 5)

    def test_repeated_content_keeps_distinct_identities(self) -> None:
        first = MindmapNode("Same")
        second = MindmapNode("Same")
        root = MindmapNode("Root", children=[first, second])
        ancestry = build_ancestry(root)
        self.assertIs(ancestry[first], root)
        self.assertIs(ancestry[second], root)
        self.assertEqual(len(ancestry), 3)

    def test_shared_node_is_rejected(self) -> None:
        shared = MindmapNode("Shared")
        root = MindmapNode("Root", children=[MindmapNode("X", children=[shared]), shared])
        with self.assertRaises(ValueError):
            build_ancestry(root)


class FoldStateTests(unittest.TestCase):
    def test_collapse_all_folds_everything_but_the_root(self) -> None:
        root = _make_tree()
        root.folded = True
        collapse_all(root)
        self.assertFalse(root.folded)
        self.assertTrue(_find(root, "B").folded)
        self.assertFalse(_find(root, "C").folded)

    def test_collapse_all_folds_deep_descendants(self) -> None:
        grandchild = MindmapNode("G", children=[MindmapNode("H")])
        root = MindmapNode("R", children=[MindmapNode("X", children=[grandchild])])
        collapse_all(root)
        self.assertTrue(root.children[0].folded)
        self.assertTrue(grandchild.folded)

    def test_expand_all_clears_every_flag(self) -> None:
        root = _make_tree()
        collapse_all(root)
        root.folded = True
        expand_all(root)
        self.assertTrue(all(not node.folded for node in root.walk()))

    def test_toggle_fold_ignores_leaves(self) -> None:
        root = _make_tree()
        leaf = _find(root, "C")
        self.assertFalse(toggle_fold(leaf))
        self.assertFalse(leaf.folded)
        branch = _find(root, "B")
        self.assertTrue(toggle_fold(branch))
        self.assertTrue(branch.folded)


class NavigationTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.root = _make_tree()
        self.renderer = RecordingRenderer()
        self.engine = MindmapEngine(self.root, self.renderer)

    async def test_start_renders_fits_and_focuses_root(self) -> None:
        await self.engine.start()
        self.assertEqual(
            self.renderer.calls,
            [("render", "A"), ("fit",), ("highlight", "A"), ("center", "A")],
        )
        self.assertIs(self.engine.focused, self.root)

    async def test_walkthrough_scenario(self) -> None:
        await self.engine.navigate("right")
        self.assertEqual(self.engine.focused.content, "B")
        await self.engine.navigate("down")
        self.assertEqual(self.engine.focused.content, "C")
        await self.engine.navigate("up")
        self.assertEqual(self.engine.focused.content, "B")
        await self.engine.navigate("left")
        self.assertIs(self.engine.focused, self.root)

        await self.engine.collapse_all()
        self.assertIs(self.engine.focused, self.root)
        self.assertTrue(_find(self.root, "B").folded)
        self.renderer.calls.clear()
        await self.engine.navigate("right")
        self.assertEqual(self.engine.focused.content, "B")
        self.assertNotIn(("render", "A"), self.renderer.calls)

    async def test_right_on_expanded_node_skips_layout(self) -> None:
        await self.engine.navigate("right")
        self.assertEqual(self.renderer.calls, [("highlight", "B"), ("center", "B")])

    async def test_right_on_folded_node_unfolds_before_focusing_child(self) -> None:
        b = _find(self.root, "B")
        b.folded = True
        self.engine.focus_node(b)
        self.renderer.calls.clear()
        await self.engine.navigate("right")
        self.assertFalse(b.folded)
        self.assertEqual(self.engine.focused.content, "D")
        self.assertEqual(
            self.renderer.calls,
            [("render", "B"), ("highlight", "D"), ("center", "D")],
        )

    async def test_right_on_leaf_is_a_noop(self) -> None:
        self.engine.focus_node(_find(self.root, "C"))
        self.renderer.calls.clear()
        await self.engine.navigate("right")
        self.assertEqual(self.engine.focused.content, "C")
        self.assertEqual(self.renderer.calls, [])

    async def test_root_boundary(self) -> None:
        for direction in ("up", "down", "left"):
            await self.engine.navigate(direction)
            self.assertIs(self.engine.focused, self.root)
        self.assertEqual(self.renderer.calls, [])

    async def test_down_from_last_sibling_goes_to_parent(self) -> None:
        self.engine.focus_node(_find(self.root, "E"))
        await self.engine.navigate("down")
        self.assertEqual(self.engine.focused.content, "B")

    async def test_up_from_first_sibling_goes_to_parent(self) -> None:
        self.engine.focus_node(_find(self.root, "D"))
        await self.engine.navigate("up")
        self.assertEqual(self.engine.focused.content, "B")

    async def test_down_moves_to_next_sibling(self) -> None:
        self.engine.focus_node(_find(self.root, "D"))
        await self.engine.navigate("down")
        self.assertEqual(self.engine.focused.content, "E")

    async def test_left_never_folds(self) -> None:
        self.engine.focus_node(_find(self.root, "D"))
        await self.engine.navigate("left")
        self.assertEqual(self.engine.focused.content, "B")
        self.assertTrue(all(not node.folded for node in self.root.walk()))
        self.assertFalse(any(call[0] == "render" for call in self.renderer.calls))

    async def test_left_then_right_round_trip(self) -> None:
        b = _find(self.root, "B")
        self.engine.focus_node(b)
        await self.engine.navigate("left")
        await self.engine.navigate("right")
        self.assertIs(self.engine.focused, b)

        b.folded = True
        self.engine.focus_node(_find(self.root, "B"))
        await self.engine.navigate("right")
        self.assertEqual(self.engine.focused.content, "D")

    async def test_navigation_with_nothing_focused_is_a_noop(self) -> None:
        self.engine.focused = None
        await self.engine.navigate("right")
        await self.engine.toggle_focused()
        self.assertIsNone(self.engine.focused)
        self.assertEqual(self.renderer.calls, [])

    async def test_unknown_direction_raises(self) -> None:
        with self.assertRaises(ValueError):
            await self.engine.navigate("sideways")

    async def test_focusing_a_foreign_node_raises(self) -> None:
        with self.assertRaises(ValueError):
            self.engine.focus_node(MindmapNode("A"))


class ToggleTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.root = _make_tree()
        self.renderer = RecordingRenderer()
        self.engine = MindmapEngine(self.root, self.renderer)

    async def test_toggle_focused_twice_restores_fold_state(self) -> None:
        b = _find(self.root, "B")
        self.engine.focus_node(b)
        self.renderer.calls.clear()
        await self.engine.toggle_focused()
        self.assertTrue(b.folded)
        self.assertEqual(
            self.renderer.calls,
            [("render", "B"), ("fit",), ("highlight", "B"), ("center", "B")],
        )
        await self.engine.toggle_focused()
        self.assertFalse(b.folded)
        self.assertIs(self.engine.focused, b)

    async def test_toggle_focused_on_leaf_issues_nothing(self) -> None:
        self.engine.focus_node(_find(self.root, "C"))
        self.renderer.calls.clear()
        await self.engine.toggle_focused()
        self.assertEqual(self.renderer.calls, [])

    async def test_toggle_keeps_previous_focus(self) -> None:
        c = _find(self.root, "C")
        self.engine.focus_node(c)
        await self.engine.toggle(_find(self.root, "B"))
        self.assertTrue(_find(self.root, "B").folded)
        self.assertIs(self.engine.focused, c)

    async def test_set_folded_applies_requested_state(self) -> None:
        c = _find(self.root, "C")
        b = _find(self.root, "B")
        self.engine.focus_node(c)
        self.renderer.calls.clear()
        await self.engine.set_folded(b, True)
        self.assertTrue(b.folded)
        self.assertEqual(
            self.renderer.calls,
            [("render", "B"), ("fit",), ("highlight", "C"), ("center", "C")],
        )

    async def test_set_folded_matching_flag_only_relays_out(self) -> None:
        b = _find(self.root, "B")
        self.renderer.calls.clear()
        await self.engine.set_folded(b, False)
        self.assertFalse(b.folded)
        self.assertEqual(self.renderer.calls, [("render", "B")])

    async def test_set_folded_waits_for_layout_in_flight(self) -> None:
        b = _find(self.root, "B")
        self.renderer.gate = asyncio.Event()
        expanding = asyncio.create_task(self.engine.expand_all())
        folding = asyncio.create_task(self.engine.set_folded(b, True))
        for _ in range(5):
            await asyncio.sleep(0)
        self.assertTrue(self.engine.busy)
        self.assertFalse(b.folded)

        self.renderer.gate.set()
        await asyncio.gather(expanding, folding)
        self.assertTrue(b.folded)
        self.assertEqual(self.renderer.max_in_flight, 1)

    async def test_expand_all_refocuses_previous_node(self) -> None:
        collapse_all(self.root)
        c = _find(self.root, "C")
        self.engine.focus_node(c)
        self.renderer.calls.clear()
        await self.engine.expand_all()
        self.assertFalse(_find(self.root, "B").folded)
        self.assertEqual(
            self.renderer.calls,
            [("render", "A"), ("fit",), ("highlight", "C"), ("center", "C")],
        )

    async def test_collapse_all_refocuses_root(self) -> None:
        self.engine.focus_node(_find(self.root, "E"))
        await self.engine.collapse_all()
        self.assertIs(self.engine.focused, self.root)


class SerializationTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.root = _make_tree()
        self.renderer = RecordingRenderer()
        self.engine = MindmapEngine(self.root, self.renderer)

    async def test_navigation_waits_for_pending_unfold(self) -> None:
        b = _find(self.root, "B")
        b.folded = True
        self.engine.focus_node(b)
        self.renderer.gate = asyncio.Event()

        unfold = asyncio.create_task(self.engine.navigate("right"))
        step = asyncio.create_task(self.engine.navigate("down"))
        for _ in range(5):
            await asyncio.sleep(0)

        self.assertTrue(self.engine.busy)
        self.assertIs(self.engine.focused, b)

        self.renderer.gate.set()
        await asyncio.gather(unfold, step)
        self.assertEqual(self.engine.focused.content, "E")
        self.assertFalse(self.engine.busy)

    async def test_structural_operations_never_overlap(self) -> None:
        self.engine.focus_node(_find(self.root, "B"))
        await asyncio.gather(
            self.engine.toggle_focused(),
            self.engine.collapse_all(),
            self.engine.expand_all(),
            self.engine.toggle_focused(),
        )
        self.assertEqual(self.renderer.max_in_flight, 1)
        # toggle, collapse (focus root), expand, toggle on root.
        self.assertTrue(self.root.folded)

    async def test_failed_layout_releases_the_queue(self) -> None:
        b = _find(self.root, "B")
        self.engine.focus_node(b)
        self.renderer.fail_next = True
        with self.assertRaises(RuntimeError):
            await self.engine.toggle_focused()
        # Fold state already changed; the view is stale until re-rendered.
        self.assertTrue(b.folded)
        self.assertFalse(self.engine.busy)

        self.renderer.calls.clear()
        await self.engine.rerender()
        self.assertEqual(
            self.renderer.calls,
            [("render", "A"), ("fit",), ("highlight", "B"), ("center", "B")],
        )


if __name__ == "__main__":
    unittest.main()
