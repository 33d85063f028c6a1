import re
from typing import List, Optional, Tuple

from node_models import MindmapNode


UNTITLED = "Untitled Mindmap"

_HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.*)$")
_BULLET_PATTERN = re.compile(r"^(\s*)([-+*])\s+(.*)$")
_ORDERED_PATTERN = re.compile(r"^(\s*)(\d+)([.\)])\s+(.*)$")
_FENCE_PATTERN = re.compile(r"^\s*(```|~~~)\s*([\w+-]*)")
_OUTLINE_FENCE_LANGUAGES = {"markdown", "md"}
_RULE_PATTERN = re.compile(r"^\s*([-*_])(\s*\1){2,}\s*$")
_TITLE_PATTERN = re.compile(r"^#\s+(.+)$", re.MULTILINE)

_LINK_PATTERN = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_EMPHASIS_PATTERN = re.compile(r"(\*\*|\*|~~)(?=\S)(.+?)(?<=\S)\1")
_UNDERSCORE_PATTERN = re.compile(r"(?<!\w)(__|_)(?=\S)(.+?)(?<=\S)\1(?!\w)")
_CODE_PATTERN = re.compile(r"`([^`]*)`")


def _plain_text(text: str) -> str:
    """Reduce inline Markdown (links, emphasis, code spans) to its text."""
    text = _LINK_PATTERN.sub(r"\1", text)
    text = _CODE_PATTERN.sub(r"\1", text)
    previous = None
    while previous != text:
        previous = text
        text = _EMPHASIS_PATTERN.sub(r"\2", text)
        text = _UNDERSCORE_PATTERN.sub(r"\2", text)
    return text.strip()


def _match_list_item(line: str) -> Optional[Tuple[int, str]]:
    """Return (indent, text) for a bullet or ordered list item, or None."""
    bullet_match = _BULLET_PATTERN.match(line)
    if bullet_match:
        indent = len(bullet_match.group(1).replace("\t", "    "))
        return indent, bullet_match.group(3).rstrip()

    ordered_match = _ORDERED_PATTERN.match(line)
    if ordered_match:
        indent = len(ordered_match.group(1).replace("\t", "    "))
        return indent, ordered_match.group(4).rstrip()

    return None


def extract_title(md: str) -> str:
    """Title of the outline: the first level-one heading."""
    match = _TITLE_PATTERN.search(md)
    if not match:
        return UNTITLED
    return _plain_text(match.group(1)) or UNTITLED


def from_markdown(md: str) -> MindmapNode:
    """Parse a Markdown outline into a freshly allocated, fully expanded tree.

    - Headings nest by level.
    - Bullet and ordered list items nest by indentation under the most
      recent heading.
    - Any other non-blank line becomes a text leaf under the current heading.
    - Blank lines and horizontal rules are skipped, as are code fences with
      their contents. A fence tagged ``markdown`` or ``md`` only has its
      marker lines dropped, so a wrapped outline still parses.

    A single top-level heading becomes the root; several top-level items are
    gathered under a synthetic root titled ``UNTITLED``.
    """
    # Level 0 holds everything that has no enclosing heading.
    top = MindmapNode(content=UNTITLED)
    heading_stack: List[Tuple[int, MindmapNode]] = [(0, top)]
    list_stack: List[Tuple[int, MindmapNode]] = []
    # Open fence: None, or whether its body is skipped.
    skipping_fence: Optional[bool] = None

    for line in md.splitlines():
        fence_match = _FENCE_PATTERN.match(line)
        if fence_match:
            if skipping_fence is None:
                skipping_fence = fence_match.group(2).lower() not in _OUTLINE_FENCE_LANGUAGES
            else:
                skipping_fence = None
            continue
        if skipping_fence or not line.strip():
            continue
        if _RULE_PATTERN.match(line):
            continue

        heading_match = _HEADING_PATTERN.match(line)
        if heading_match:
            level = len(heading_match.group(1))
            node = MindmapNode(content=_plain_text(heading_match.group(2)), kind="heading")
            while heading_stack[-1][0] >= level:
                heading_stack.pop()
            heading_stack[-1][1].children.append(node)
            heading_stack.append((level, node))
            list_stack = []
            continue

        list_match = _match_list_item(line)
        if list_match:
            indent, text = list_match
            node = MindmapNode(content=_plain_text(text), kind="list")
            while list_stack and indent <= list_stack[-1][0]:
                list_stack.pop()
            parent = list_stack[-1][1] if list_stack else heading_stack[-1][1]
            parent.children.append(node)
            list_stack.append((indent, node))
            continue

        heading_stack[-1][1].children.append(MindmapNode(content=_plain_text(line), kind="text"))
        list_stack = []

    if not top.children:
        raise ValueError("No outline content found in Markdown")

    if len(top.children) == 1 and top.children[0].kind == "heading":
        return top.children[0]
    return top
