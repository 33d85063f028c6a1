from __future__ import annotations

import asyncio
from typing import Optional

from rich.text import Text
from textual.widgets import Tree
from textual.widgets.tree import TreeNode

from node_models import MindmapNode


_LABEL_STYLES = {
    "heading": "bold",
    "list": None,
    "text": "dim italic",
}


def format_node_label(node: MindmapNode, *, is_root: bool = False) -> Text:
    style = "bold underline" if is_root else _LABEL_STYLES.get(node.kind)
    return Text(node.content or "(untitled)", style=style or "")


class MindmapTree(Tree[MindmapNode]):
    """Tree widget specialised for ``MindmapNode`` data."""

    def __init__(self, label: str | Text, **kwargs) -> None:
        super().__init__(label, **kwargs)
        self.show_root = True
        # Fold state is owned by the engine; clicks must not toggle on their own.
        self.auto_expand = False
        self.center_scroll = True

    def process_label(self, label: str | Text) -> Text:
        if isinstance(label, str):
            return Text.from_markup(label, justify="left")
        return label


class TreeRenderer:
    """Drives a ``MindmapTree`` from the engine's fold and focus requests."""

    def __init__(self, tree: MindmapTree) -> None:
        self._tree = tree
        self._tree_nodes: dict[MindmapNode, TreeNode[MindmapNode]] = {}

    def attach(self, root: MindmapNode) -> None:
        """Replace the widget's contents with a new outline tree."""
        tree = self._tree
        tree.clear()
        self._tree_nodes = {}
        tree.root.set_label(format_node_label(root, is_root=True))
        tree.root.data = root
        self._tree_nodes[root] = tree.root
        self._populate(tree.root, root)

    def _populate(self, tree_node: TreeNode[MindmapNode], mindmap_node: MindmapNode) -> None:
        for child in mindmap_node.children:
            label = format_node_label(child)
            if child.children:
                child_tree_node = tree_node.add(label, data=child)
                self._populate(child_tree_node, child)
            else:
                child_tree_node = tree_node.add_leaf(label, data=child)
            self._tree_nodes[child] = child_tree_node

    def tree_node_for(self, node: MindmapNode) -> Optional[TreeNode[MindmapNode]]:
        return self._tree_nodes.get(node)

    async def render(self, node: MindmapNode) -> None:
        if node not in self._tree_nodes:
            return
        for model_node in node.walk():
            tree_node = self._tree_nodes[model_node]
            if not model_node.children:
                continue
            if model_node.folded:
                tree_node.collapse()
            else:
                tree_node.expand()
        await self._after_refresh()

    async def _after_refresh(self) -> None:
        loop = asyncio.get_running_loop()
        settled: asyncio.Future[None] = loop.create_future()

        def _resolve() -> None:
            if not settled.done():
                settled.set_result(None)

        self._tree.refresh(layout=True)
        self._tree.call_after_refresh(_resolve)
        await settled

    def _visible_tree_node(self, node: MindmapNode) -> Optional[TreeNode[MindmapNode]]:
        tree_node = self._tree_nodes.get(node)
        while tree_node is not None and tree_node.line < 0 and tree_node.parent is not None:
            tree_node = tree_node.parent
        return tree_node

    def set_highlight(self, node: MindmapNode) -> None:
        tree_node = self._visible_tree_node(node)
        if tree_node is not None:
            self._tree.move_cursor(tree_node)

    def center_node(self, node: MindmapNode) -> None:
        tree_node = self._visible_tree_node(node)
        if tree_node is not None:
            self._tree.scroll_to_node(tree_node, animate=True)

    def fit(self) -> None:
        self._tree.scroll_home(animate=False)
