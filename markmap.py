import html
import subprocess
import sys
import webbrowser
from pathlib import Path

from node_models import MindmapNode


def _markmap_escape(text_value: str) -> str:
    return html.escape(text_value, quote=False)


def _collect_lines(node: MindmapNode, level: int) -> list[str]:
    indent = "  " * level
    label = node.content.strip() or "(untitled)"
    css_class = "mm-label mm-text" if node.kind == "text" else "mm-label"
    lines = [f'{indent}- <span class="{css_class}">{_markmap_escape(label)}</span>']
    if node.children:
        if node.folded:
            lines.append(f"{indent}  <!-- markmap: fold -->")
        for child in node.children:
            lines.extend(_collect_lines(child, level + 1))
    return lines


def to_markmap_markdown(root: MindmapNode) -> str:
    """Markmap source for the tree as currently folded."""
    title = root.content.strip() or "Mind map"
    lines: list[str] = [f'# <span class="mm-label mm-root">{_markmap_escape(title)}</span>', ""]
    if root.folded and root.children:
        lines.append("<!-- markmap: fold -->")
        lines.append("")
    for index, child in enumerate(root.children):
        lines.extend(_collect_lines(child, level=0))
        if index != len(root.children) - 1:
            lines.append("")
    while lines and not lines[-1].strip():
        lines.pop()
    lines.append("")
    return "\n".join(lines)


def preview_html(markdown: str, title: str = "Mind map") -> str:
    safe_markdown = markdown.replace("</script>", "<\\/script>")
    safe_title = _markmap_escape(title)
    return f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>{safe_title} - ytmindmap</title>
    <meta name="viewport" content="width=device-width,initial-scale=1" />
    <style>
      :root, html, body {{
        height: 100%;
      }}
      body {{
        margin: 0;
        font-family: system-ui, -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
        background: #0f0f0f;
        color: #f2f2f2;
      }}
      .markmap {{
        position: relative;
        width: 100%;
        height: 100%;
      }}
      .markmap > svg {{
        width: 100%;
        height: 100%;
      }}
      .mm-label {{
        color: #f2f2f2 !important;
      }}
      .mm-text {{
        font-style: italic;
      }}
      .mm-root {{
        color: #ffffff !important;
        font-weight: 600;
      }}
    </style>
    <script>
      window.markmap = {{ autoLoader: {{ toolbar: true }} }};
    </script>
  </head>
  <body>
    <div class="markmap">
      <script type="text/template">
---
markmap:
  duration: 300
  maxWidth: 300
  paddingX: 16
---

{safe_markdown.strip()}
      </script>
    </div>
    <script src="https://cdn.jsdelivr.net/npm/markmap-autoloader@latest"></script>
  </body>
</html>
"""


def write_preview(root: MindmapNode, path: Path = Path("markmap_preview.html")) -> Path:
    markdown = to_markmap_markdown(root)
    path.write_text(preview_html(markdown, root.content.strip() or "Mind map"), encoding="utf-8")
    return path


def open_preview(path: Path) -> None:
    uri = path.resolve().as_uri()
    if sys.platform == "darwin":
        try:
            subprocess.Popen(["open", "-g", uri])
            return
        except OSError:
            pass
    webbrowser.open(uri, new=2)
