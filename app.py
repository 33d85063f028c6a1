from __future__ import annotations

import asyncio
from pathlib import Path
import sys
from typing import Awaitable, Optional

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Footer, Header, Input, OptionList, Static, TextArea, Tree
from textual.widgets.option_list import Option, OptionDoesNotExist
from textual.widgets.tree import TreeNode

import ai
import history
import markmap
import youtube
from dispatcher import InputDispatcher
from engine import MindmapEngine
from md_io import extract_title, from_markdown
from node_models import MindmapNode
from tree_view import MindmapTree, TreeRenderer


class ModelSelectorScreen(ModalScreen[str | None]):
    """Modal dialog that lets the user pick the outline model."""

    DEFAULT_CSS = """
    ModelSelectorScreen {
        align: center middle;
    }

    #model-selector-panel {
        min-width: 50;
        max-width: 80;
        background: $panel;
        border: round $secondary;
        padding: 1 2 2 2;
        box-sizing: border-box;
    }

    #model-selector-title {
        content-align: center middle;
        text-style: bold;
        padding-bottom: 1;
    }

    #model-selector-list {
        border: none;
        background: $surface;
        padding: 0;
    }
    """

    def __init__(self, models: list[str], current_model: str) -> None:
        super().__init__()
        self._models = models
        self._current_model = current_model

    def compose(self) -> ComposeResult:
        with Vertical(id="model-selector-panel"):
            yield Static("Select outline model", id="model-selector-title")
            yield OptionList(
                *[Option(model, id=model) for model in self._models],
                id="model-selector-list",
            )

    def on_mount(self) -> None:
        option_list = self.query_one("#model-selector-list", OptionList)
        option_list.focus()
        try:
            option_list.highlighted = option_list.get_option_index(self._current_model)
        except OptionDoesNotExist:
            option_list.highlighted = 0 if option_list.option_count else None

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        event.stop()
        self.dismiss(event.option_id or str(event.option.prompt))

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            event.stop()
            self.dismiss(None)


class URLInputScreen(ModalScreen[str | None]):
    """Modal prompt for the video to summarise."""

    DEFAULT_CSS = """
    URLInputScreen {
        align: center middle;
        background: transparent;
    }

    #url-input-field {
        width: 70;
        border: round $secondary;
        background: $surface;
    }
    """

    def __init__(self, initial_url: str) -> None:
        super().__init__()
        self._initial_url = initial_url

    def compose(self) -> ComposeResult:
        yield Input(
            value=self._initial_url,
            placeholder="Paste a YouTube URL...",
            id="url-input-field",
        )

    def on_mount(self) -> None:
        self.query_one("#url-input-field", Input).focus()

    def on_key(self, event: events.Key) -> None:
        field = self.query_one("#url-input-field", Input)
        if event.key == "escape":
            event.stop()
            self.dismiss(None)
        elif event.key == "enter":
            event.stop()
            self.dismiss(field.value)


class HistoryScreen(ModalScreen[str | None]):
    """Past mind maps, newest first. Dismisses with the chosen entry id."""

    DEFAULT_CSS = """
    HistoryScreen {
        align: center middle;
    }

    #history-panel {
        min-width: 60;
        max-width: 100;
        max-height: 80%;
        background: $panel;
        border: round $secondary;
        padding: 1 2 1 2;
        box-sizing: border-box;
    }

    #history-title {
        content-align: center middle;
        text-style: bold;
        padding-bottom: 1;
    }

    #history-list {
        border: none;
        background: $surface;
        padding: 0;
    }

    #history-hint {
        color: $text-muted;
        padding-top: 1;
    }
    """

    def compose(self) -> ComposeResult:
        with Vertical(id="history-panel"):
            yield Static("History", id="history-title")
            yield OptionList(id="history-list")
            yield Static("enter open · d delete · x clear all · esc close", id="history-hint")

    def on_mount(self) -> None:
        self._reload()
        self.query_one("#history-list", OptionList).focus()

    def _reload(self) -> None:
        option_list = self.query_one("#history-list", OptionList)
        option_list.clear_options()
        entries = history.get_history()
        if not entries:
            option_list.add_option(Option("No mind maps yet", id="__empty__", disabled=True))
            return
        option_list.add_options(
            [
                Option(f"{entry.title}  ·  {history.time_ago(entry.created_at)}", id=entry.id)
                for entry in entries
            ]
        )
        option_list.highlighted = 0

    def _highlighted_id(self) -> Optional[str]:
        option_list = self.query_one("#history-list", OptionList)
        if option_list.highlighted is None:
            return None
        option = option_list.get_option_at_index(option_list.highlighted)
        if option.disabled:
            return None
        return option.id

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        event.stop()
        if event.option.disabled:
            return
        self.dismiss(event.option_id)

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            event.stop()
            self.dismiss(None)
        elif event.key == "d":
            event.stop()
            entry_id = self._highlighted_id()
            if entry_id is not None:
                history.delete_from_history(entry_id)
                self._reload()
        elif event.key == "x":
            event.stop()
            history.clear_history()
            self._reload()


class MindmapApp(App[None]):
    """Textual user interface turning YouTube transcripts into mind maps."""

    TITLE = "ytmindmap"

    CSS = """
    #mindmap-tree {
        width: 1fr;
    }
    #mindmap-tree .tree--cursor,
    #mindmap-tree:focus .tree--cursor {
        text-style: bold reverse;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("g", "generate", "Generate"),
        Binding("r", "regenerate", "Regenerate"),
        Binding("v", "reload", "Reset view", show=False),
        Binding("h", "history", "History"),
        Binding("c", "collapse_all", "Collapse all"),
        Binding("a", "expand_all", "Expand all"),
        Binding("f", "fit", "Fit"),
        Binding("m", "choose_model", "Model"),
        Binding("p", "preview_markmap", "Markmap"),
    ]

    def __init__(self, initial_markdown_path: str | Path | None = None) -> None:
        super().__init__()
        self._tree_widget: Optional[MindmapTree] = None
        self._renderer: Optional[TreeRenderer] = None
        self._engine: Optional[MindmapEngine] = None
        self._dispatcher = InputDispatcher(lambda: self._engine, on_error=self._handle_operation_error)
        self._markdown: Optional[str] = None
        self._active_entry: Optional[history.HistoryEntry] = None
        self._last_url = ""
        self._pipeline_task: Optional[asyncio.Task[None]] = None
        self.model_choices = list(ai.AVAILABLE_MODELS)
        self.selected_model = ai.get_active_model()
        if self.selected_model not in self.model_choices:
            self.model_choices.append(self.selected_model)
        self._initial_load_path: Optional[Path] = (
            Path(initial_markdown_path).expanduser() if initial_markdown_path else None
        )
        ai.reset_prompt_log()
        ai.reset_connection_log()

    @property
    def engine(self) -> Optional[MindmapEngine]:
        return self._engine

    @property
    def dispatcher(self) -> InputDispatcher:
        return self._dispatcher

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        tree = MindmapTree("Paste a YouTube URL (g) to generate a mind map", id="mindmap-tree")
        self._tree_widget = tree
        yield tree
        yield Footer()

    def on_mount(self) -> None:
        self._renderer = TreeRenderer(self.require_tree())
        self.require_tree().focus()
        if self._initial_load_path:
            self._load_file(self._initial_load_path)
        else:
            self.show_status("Press g to generate a mind map from a YouTube URL.")

    def require_tree(self) -> MindmapTree:
        if self._tree_widget is None:
            raise RuntimeError("Tree widget not initialised")
        return self._tree_widget

    def require_renderer(self) -> TreeRenderer:
        if self._renderer is None:
            raise RuntimeError("Renderer not initialised")
        return self._renderer

    def _should_handle_keys(self) -> bool:
        if self._engine is None:
            return False
        if isinstance(self.screen, ModalScreen):
            return False
        return not isinstance(self.focused, (Input, TextArea))

    async def on_event(self, event: events.Event) -> None:  # noqa: D401
        if isinstance(event, events.Key):
            if self._dispatcher.dispatch(event.key, should_handle=self._should_handle_keys()):
                event.stop()
                return
        await super().on_event(event)

    def _submit(self, operation: Awaitable[None], label: str) -> None:
        self._dispatcher.submit(operation, label=label)

    def _handle_operation_error(self, label: str, exc: BaseException) -> None:
        self.bell()
        self.show_status(f"{label.capitalize()} failed: {exc}")
        if label != "re-render" and self._engine is not None:
            self._submit(self._engine.rerender(), "re-render")

    def _show_markdown(self, markdown: str, *, source: str) -> bool:
        try:
            root = from_markdown(markdown)
        except ValueError as exc:
            self.bell()
            self.show_status(f"Could not build mind map: {exc}")
            return False
        renderer = self.require_renderer()
        renderer.attach(root)
        self._engine = MindmapEngine(root, renderer)
        self._markdown = markdown
        self._submit(self._engine.start(), "render")
        self.show_status(f"Loaded {source}")
        return True

    def _load_file(self, path: Path) -> bool:
        target = path.expanduser()
        try:
            markdown = target.read_text(encoding="utf-8")
        except OSError as exc:
            self.bell()
            self.show_status(f"Failed to load {target}: {exc}")
            return False
        self._active_entry = None
        return self._show_markdown(markdown, source=str(target))

    def _start_pipeline(self, url: str) -> None:
        if self._pipeline_task and not self._pipeline_task.done():
            self.bell()
            self.show_status("Generation already running.")
            return
        task: asyncio.Task[None] = asyncio.create_task(self._generate_from_url(url))
        self._pipeline_task = task

        def _on_done(completed: asyncio.Task[None]) -> None:
            if self._pipeline_task is completed:
                self._pipeline_task = None
            if completed.cancelled():
                return
            exc = completed.exception()
            if exc is not None:
                self.bell()
                self.show_status(f"Something went wrong: {exc}")

        task.add_done_callback(_on_done)

    async def _generate_from_url(self, url: str) -> None:
        target = url.strip()
        if not target:
            self.show_status("Generation cancelled.")
            return
        self._last_url = target
        video_id = youtube.extract_video_id(target)
        if not video_id:
            self.bell()
            self.show_status("Invalid YouTube URL. Please enter a valid YouTube video link.")
            return
        self.show_status(f"Fetching transcript for {video_id}…")
        try:
            transcript = await asyncio.to_thread(youtube.fetch_transcript, video_id)
        except youtube.TranscriptError as exc:
            self.bell()
            self.show_status(str(exc))
            return
        self.show_status("Generating mind map…")
        try:
            markdown = await asyncio.to_thread(ai.generate_mindmap_markdown, transcript)
        except ai.GenerationError as exc:
            self.bell()
            self.show_status(str(exc))
            return
        try:
            self._active_entry = history.save_to_history(
                url=target,
                video_id=video_id,
                title=extract_title(markdown),
                markdown=markdown,
            )
        except OSError as exc:
            self._active_entry = None
            self.show_status(f"History not saved: {exc}")
        self._show_markdown(markdown, source=video_id)

    def action_generate(self) -> None:
        def apply_url(result: str | None) -> None:
            if result is None:
                self.show_status("Generation cancelled.")
                return
            self._start_pipeline(result)

        self.push_screen(URLInputScreen(self._last_url), apply_url)

    def action_regenerate(self) -> None:
        url = self._active_entry.url if self._active_entry else self._last_url
        if not url:
            self.bell()
            self.show_status("Nothing to regenerate yet.")
            return
        self._start_pipeline(url)

    def action_reload(self) -> None:
        if self._markdown is None:
            self.bell()
            return
        self._show_markdown(self._markdown, source="fresh view")

    def action_history(self) -> None:
        def open_entry(entry_id: str | None) -> None:
            if entry_id is None:
                return
            entry = history.get_entry(entry_id)
            if entry is None:
                self.bell()
                self.show_status("History entry no longer exists.")
                return
            self._active_entry = entry
            self._last_url = entry.url
            self._show_markdown(entry.markdown, source=entry.title)

        self.push_screen(HistoryScreen(), open_entry)

    def action_collapse_all(self) -> None:
        if self._engine is None:
            self.bell()
            return
        self._submit(self._engine.collapse_all(), "collapse all")

    def action_expand_all(self) -> None:
        if self._engine is None:
            self.bell()
            return
        self._submit(self._engine.expand_all(), "expand all")

    def action_fit(self) -> None:
        if self._engine is not None:
            self._engine.fit()

    def action_choose_model(self) -> None:
        def apply_selection(selection: str | None) -> None:
            if not selection:
                return
            self.selected_model = selection
            ai.set_active_model(selection)
            self.show_status(f"Model set to {selection}")

        self.push_screen(ModelSelectorScreen(self.model_choices, self.selected_model), apply_selection)

    def action_preview_markmap(self) -> None:
        if self._engine is None:
            self.bell()
            return
        try:
            path = markmap.write_preview(self._engine.root)
        except OSError as exc:
            self.bell()
            self.show_status(f"Markmap preview failed: {exc}")
            return
        markmap.open_preview(path)
        self.show_status(f"Markmap preview written to {path}")

    def on_tree_node_selected(self, event: Tree.NodeSelected[MindmapNode]) -> None:
        engine = self._engine
        data = event.node.data
        if engine is None or not isinstance(data, MindmapNode) or not engine.contains(data):
            return
        if data is engine.focused:
            return
        self._submit(engine.select(data), "select")

    def _sync_fold_from_widget(self, tree_node: TreeNode[MindmapNode]) -> None:
        engine = self._engine
        data = tree_node.data
        if engine is None or not isinstance(data, MindmapNode):
            return
        if not engine.contains(data) or data.folded != tree_node.is_expanded:
            return
        # Queued behind any layout in flight; the engine re-checks under its lock.
        self._submit(engine.set_folded(data, not tree_node.is_expanded), "toggle")

    def on_tree_node_expanded(self, event: Tree.NodeExpanded[MindmapNode]) -> None:
        self._sync_fold_from_widget(event.node)

    def on_tree_node_collapsed(self, event: Tree.NodeCollapsed[MindmapNode]) -> None:
        self._sync_fold_from_widget(event.node)

    def show_status(self, message: str | None = None) -> None:
        title = self._engine.root.content if self._engine else "No mind map"
        composed = f"{title} · {message}" if message else title
        self.sub_title = f"{composed} | Model: {self.selected_model}"


def main() -> None:
    initial_path = sys.argv[1] if len(sys.argv) > 1 else None
    MindmapApp(initial_path).run()


if __name__ == "__main__":
    main()
