"""TUI for viewing a file with its smiles in the gutter, using textual."""

from pathlib import Path

from rich.text import Text
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.widgets import Static

from .errors import AmbiguousRangeDeclined, RangeDeclined, SmilebinError
from .models import ResolvedAnnotation
from .session import Session

EMOTICONS = {
    "smile": "☺",
    "heart": "♥",
    "frown": "☹",
    "star": "★",
    "check": "✔",
}


def gutter_marks(annotations: list[ResolvedAnnotation]) -> dict[int, str]:
    """
    Map line numbers to the emoticon shown beside them.

    Annotations without a current position are never drawn.
    """
    marks: dict[int, str] = {}
    for resolved in annotations:
        if not resolved.is_placed:
            continue
        symbol = EMOTICONS.get(resolved.annotation.emoticon, "*")
        for line in range(resolved.start_line, resolved.end_line + 1):
            marks.setdefault(line, symbol)
    return marks


def render_source(source: str, marks: dict[int, str], cursor: int | None = None) -> Text:
    """Render source with line numbers, gutter marks and the cursor line."""
    lines = source.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    text = Text()
    for i, line in enumerate(lines):
        line_num = i + 1
        mark = marks.get(line_num, " ")
        style = "reverse" if line_num == cursor else ""

        text.append(f"{mark} ", style="bold yellow")
        text.append(f"{line_num:5d} │ ", style="dim")
        text.append(line, style=style)

        if i < len(lines) - 1:
            text.append("\n")
    return text


class AnnotatedSourceView(Static):
    """Widget to display the file with smiles in the gutter."""

    def __init__(self, source: str = "", **kwargs):
        super().__init__(**kwargs)
        self._source = source
        self._marks: dict[int, str] = {}
        self._cursor = 1

    def update_view(self, source: str, marks: dict[int, str], cursor: int):
        self._source = source
        self._marks = marks
        self._cursor = cursor
        self.update(render_source(self._source, self._marks, self._cursor))

    def on_mount(self):
        self.update(render_source(self._source, self._marks, self._cursor))


class SmileViewerApp(App):
    """TUI app showing one file and the smiles anchored to it."""

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-bar {
        height: 1;
        background: $primary;
        color: $text;
        text-align: center;
        padding: 0 1;
    }

    #status-bar {
        height: 2;
        background: $surface;
        padding: 0 1;
    }

    #source-container {
        height: 1fr;
        overflow-y: auto;
        padding: 0 1;
    }

    #nav-help {
        height: 1;
        background: $surface;
        text-align: center;
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("up", "cursor_up", "Up", show=True),
        Binding("down", "cursor_down", "Down", show=True),
        Binding("k", "cursor_up", "Up", show=False),
        Binding("j", "cursor_down", "Down", show=False),
        Binding("s", "toggle_smile", "Smile", show=True),
        Binding("r", "refresh", "Refresh", show=True),
        Binding("q", "quit", "Quit", show=True),
    ]

    def __init__(self, session: Session, file_path: str):
        super().__init__()
        self.session = session
        self.file_path = file_path
        self.source = ""
        self.cursor = 1
        self.annotations: list[ResolvedAnnotation] = []

    def compose(self) -> ComposeResult:
        yield Static(f"File: {self.file_path}", id="header-bar")
        yield Static("Loading smiles...", id="status-bar")
        yield Container(AnnotatedSourceView(id="source-view"), id="source-container")
        yield Static("↑/k up  ↓/j down  s smile  r refresh  q quit", id="nav-help")

    def on_mount(self):
        self.source = Path(self.file_path).read_text(encoding="utf-8", errors="replace")
        self._update_view()
        self._load_annotations()

    @property
    def line_total(self) -> int:
        return max(1, len(self.source.rstrip("\n").split("\n")))

    def _set_status(self, message: str):
        self.query_one("#status-bar", Static).update(message)

    def _update_view(self):
        view = self.query_one("#source-view", AnnotatedSourceView)
        view.update_view(self.source, gutter_marks(self.annotations), self.cursor)

    def _describe_cursor(self) -> str:
        here = [a for a in self.annotations if a.covers(self.cursor)]
        if not here:
            return f"Line {self.cursor}: no smiles ({len(self.annotations)} in file)"
        texts = "; ".join(a.annotation.text or a.annotation.emoticon for a in here)
        return f"Line {self.cursor}: {texts}"

    @work(exclusive=True, group="load")
    async def _load_annotations(self):
        result = await self.session.fetch(self.file_path)
        self.source = Path(self.file_path).read_text(encoding="utf-8", errors="replace")
        self.annotations = result.annotations
        self._update_view()
        if result.error:
            self._set_status(f"Could not load smiles: {result.error}")
        else:
            self._set_status(self._describe_cursor())

    @work(exclusive=True, group="toggle")
    async def _toggle(self, line: int):
        try:
            outcome = await self.session.resolver.toggle_smile(self.file_path, line)
        except AmbiguousRangeDeclined:
            self._set_status(f"Line {line} is not committed yet; commit it to smile at it")
            return
        except RangeDeclined as exc:
            self._set_status(f"Line {line} cannot be anchored: {exc}")
            return
        except (SmilebinError, ValueError, OSError) as exc:
            self._set_status(f"Toggle failed: {exc}")
            return
        self._set_status(f"Line {line}: smile {outcome.action}")
        self._load_annotations()

    def action_cursor_up(self):
        if self.cursor > 1:
            self.cursor -= 1
            self._update_view()
            self._set_status(self._describe_cursor())

    def action_cursor_down(self):
        if self.cursor < self.line_total:
            self.cursor += 1
            self._update_view()
            self._set_status(self._describe_cursor())

    def action_toggle_smile(self):
        self._toggle(self.cursor)

    def action_refresh(self):
        self._load_annotations()


def run_tui(session: Session, file_path: str):
    """Run the TUI app."""
    app = SmileViewerApp(session, file_path)
    app.run()
