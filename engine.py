"""Fold and focus state for one loaded mind map.

A ``MindmapEngine`` is built fresh for every document. It owns the outline
tree, the parent index derived from it and the focused node, and drives a
rendering layer whose layout is asynchronous. Structural changes (folding,
unfolding) are applied one at a time: every public coroutine runs under a
single lock, so a new operation starts only after the previous layout has
settled, in the order the operations arrived.
"""

from __future__ import annotations

import asyncio
from typing import Literal, Optional, Protocol

from node_models import MindmapNode

Direction = Literal["up", "down", "left", "right"]
DIRECTIONS: tuple[str, ...] = ("up", "down", "left", "right")


class Renderer(Protocol):
    """Rendering layer driven by the engine.

    ``render`` resolves once the layout of ``node``'s subtree has settled and
    reflects the current fold flags. The other calls are fire-and-forget.
    """

    async def render(self, node: MindmapNode) -> None: ...

    def set_highlight(self, node: MindmapNode) -> None: ...

    def center_node(self, node: MindmapNode) -> None: ...

    def fit(self) -> None: ...


def build_ancestry(root: MindmapNode) -> dict[MindmapNode, Optional[MindmapNode]]:
    """Map every node of the tree to its parent; the root maps to ``None``."""
    ancestry: dict[MindmapNode, Optional[MindmapNode]] = {root: None}
    stack = [root]
    while stack:
        node = stack.pop()
        for child in reversed(node.children):
            if child in ancestry:
                raise ValueError(f"Node {child.content!r} appears more than once in the outline")
            ancestry[child] = node
            stack.append(child)
    return ancestry


def collapse_all(root: MindmapNode) -> None:
    for node in root.walk():
        if node is not root and node.children:
            node.folded = True
    # First-level children stay visible.
    root.folded = False


def expand_all(root: MindmapNode) -> None:
    for node in root.walk():
        node.folded = False


def toggle_fold(node: MindmapNode) -> bool:
    """Flip ``node``'s fold flag. Leaves are left alone and return ``False``."""
    if not node.children:
        return False
    node.folded = not node.folded
    return True


class MindmapEngine:
    """Navigation and fold controller over a single outline tree."""

    def __init__(self, root: MindmapNode, renderer: Renderer) -> None:
        self.root = root
        self._renderer = renderer
        self._ancestry = build_ancestry(root)
        self.focused: Optional[MindmapNode] = root
        self._layout_lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        """True while an operation (and its layout) is in flight."""
        return self._layout_lock.locked()

    def contains(self, node: MindmapNode) -> bool:
        return node in self._ancestry

    def _require_member(self, node: MindmapNode) -> None:
        if node not in self._ancestry:
            raise ValueError(f"Node {node.content!r} does not belong to this mind map")

    def focus_node(self, node: MindmapNode) -> None:
        self._require_member(node)
        self.focused = node
        self._renderer.set_highlight(node)
        self._renderer.center_node(node)

    def fit(self) -> None:
        self._renderer.fit()

    async def start(self) -> None:
        """Lay out the whole tree and focus the root."""
        async with self._layout_lock:
            await self._renderer.render(self.root)
            self._renderer.fit()
            self.focus_node(self.root)

    async def rerender(self) -> None:
        """Lay out the whole tree again, e.g. after a failed layout."""
        async with self._layout_lock:
            await self._renderer.render(self.root)
            self._renderer.fit()
            self.focus_node(self.focused or self.root)

    async def select(self, node: MindmapNode) -> None:
        async with self._layout_lock:
            self.focus_node(node)

    async def navigate(self, direction: Direction) -> None:
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown direction: {direction!r}")
        async with self._layout_lock:
            node = self.focused
            if node is None:
                return
            if direction == "right":
                await self._descend(node)
                return
            parent = self._ancestry[node]
            if parent is None:
                return
            if direction == "left":
                self.focus_node(parent)
                return
            siblings = parent.children
            index = next(i for i, sibling in enumerate(siblings) if sibling is node)
            if direction == "down":
                target = siblings[index + 1] if index + 1 < len(siblings) else parent
            else:
                target = siblings[index - 1] if index > 0 else parent
            self.focus_node(target)

    async def _descend(self, node: MindmapNode) -> None:
        if not node.children:
            return
        if node.folded:
            node.folded = False
            await self._renderer.render(node)
        self.focus_node(node.children[0])

    async def toggle(self, node: MindmapNode) -> None:
        async with self._layout_lock:
            self._require_member(node)
            await self._toggle_and_refocus(node, self.focused)

    async def set_folded(self, node: MindmapNode, folded: bool) -> None:
        """Bring ``node``'s fold flag to ``folded``, as requested by the view.

        If the flag already matches, the subtree is laid out again so the view
        returns to the flag's state.
        """
        async with self._layout_lock:
            self._require_member(node)
            if node.folded == folded or not node.children:
                await self._renderer.render(node)
                return
            await self._toggle_and_refocus(node, self.focused)

    async def toggle_focused(self) -> None:
        async with self._layout_lock:
            node = self.focused
            if node is None:
                return
            await self._toggle_and_refocus(node, node)

    async def _toggle_and_refocus(
        self, node: MindmapNode, refocus: Optional[MindmapNode]
    ) -> None:
        if not toggle_fold(node):
            return
        await self._renderer.render(node)
        self._renderer.fit()
        if refocus is not None:
            self.focus_node(refocus)

    async def collapse_all(self) -> None:
        async with self._layout_lock:
            collapse_all(self.root)
            await self._renderer.render(self.root)
            self._renderer.fit()
            self.focus_node(self.root)

    async def expand_all(self) -> None:
        async with self._layout_lock:
            previous = self.focused
            expand_all(self.root)
            await self._renderer.render(self.root)
            self._renderer.fit()
            self.focus_node(previous or self.root)
