from dataclasses import dataclass, field
from typing import Iterator, List, Literal


@dataclass(eq=False)
class MindmapNode:
    content: str
    children: List["MindmapNode"] = field(default_factory=list)
    # Children hidden in the rendered view; ignored for leaves.
    folded: bool = False
    # Markdown construct the node came from, used for label styling only.
    kind: Literal["heading", "list", "text"] = "heading"

    def walk(self) -> Iterator["MindmapNode"]:
        """Yield this node and its descendants depth-first, in sibling order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))
