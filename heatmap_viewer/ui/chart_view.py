"""
Heatmap chart TUI using Textual.

Displays:
- Top: status bar (symbol, heatmap buckets, pending queue, candles)
- Middle: the latest DrawPlan rasterized onto a character grid
- Bottom: symbol input for switching instrument

Performance notes:
- Redraws are driven by the RedrawScheduler (every 2s + on resize), not by
  the data rate
- The plan is composed in virtual pixels (CELL_W x CELL_H per cell) and
  rasterized once per refresh
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from rich.console import RenderableType
from rich.style import Style
from rich.text import Text

from textual import events
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import Footer, Input, Static

from ..config import ChartStyle
from ..types import CandlePrimitive, Color, DrawPlan, Layer, LinePrimitive, Rect, TextPrimitive

if TYPE_CHECKING:
    from ..engine.scheduler import RedrawScheduler
    from ..engine.session import MarketDataSession

# Virtual pixels per terminal cell
CELL_W = 8
CELL_H = 16

WALL_CHAR = "━"
LINE_CHAR = "─"
VLINE_CHAR = "│"
BODY_CHAR = "█"


def to_hex(color: Color) -> str:
    return "#{:02x}{:02x}{:02x}".format(*color)


def blend(color: Color, background: Color, opacity: float) -> Color:
    """Alpha-blend onto the background; terminals have no per-cell alpha."""
    a = min(max(opacity, 0.0), 1.0)
    return tuple(round(c * a + b * (1 - a)) for c, b in zip(color, background))  # type: ignore[return-value]


class CharGrid:
    """Fixed-size grid of (char, color) cells with optional clipping."""

    __slots__ = ('cols', 'rows', 'background', '_chars', '_colors', '_clip')

    def __init__(self, cols: int, rows: int, background: Color) -> None:
        self.cols = cols
        self.rows = rows
        self.background = background
        self._chars = [[" "] * cols for _ in range(rows)]
        self._colors: list[list[Optional[Color]]] = [[None] * cols for _ in range(rows)]
        self._clip: Optional[tuple[int, int, int, int]] = None

    def clip_to(self, area: Optional[Rect]) -> None:
        if area is None:
            self._clip = None
            return
        self._clip = (
            int(area.left // CELL_W), int(area.top // CELL_H),
            int(area.right // CELL_W), int(area.bottom // CELL_H),
        )

    def put(self, col: int, row: int, char: str, color: Color) -> None:
        if not (0 <= col < self.cols and 0 <= row < self.rows):
            return
        if self._clip is not None:
            left, top, right, bottom = self._clip
            if not (left <= col <= right and top <= row <= bottom):
                return
        self._chars[row][col] = char
        self._colors[row][col] = color

    def render_rows(self) -> list[Text]:
        bg = to_hex(self.background)
        lines = []
        for chars, colors in zip(self._chars, self._colors):
            line = Text()
            for char, color in zip(chars, colors):
                line.append(char, style=Style(color=to_hex(color) if color else None, bgcolor=bg))
            lines.append(line)
        return lines


def _draw_line(grid: CharGrid, line: LinePrimitive, background: Color) -> None:
    color = blend(line.color, background, line.opacity)
    for (x0, y0), (x1, y1) in zip(line.points, line.points[1:]):
        c0, r0 = int(x0 // CELL_W), int(y0 // CELL_H)
        c1, r1 = int(x1 // CELL_W), int(y1 // CELL_H)
        steps = max(abs(c1 - c0), abs(r1 - r0), 1)
        if r0 == r1:
            char = WALL_CHAR if line.width >= 8 else LINE_CHAR
        elif c0 == c1:
            char = VLINE_CHAR
        else:
            char = "·"
        for i in range(steps + 1):
            grid.put(c0 + round((c1 - c0) * i / steps), r0 + round((r1 - r0) * i / steps), char, color)


def _draw_candle(grid: CharGrid, candle: CandlePrimitive) -> None:
    col = int(candle.x // CELL_W)
    top, bottom = sorted((int(candle.high_y // CELL_H), int(candle.low_y // CELL_H)))
    body_top, body_bottom = sorted((int(candle.open_y // CELL_H), int(candle.close_y // CELL_H)))
    for row in range(top, bottom + 1):
        char = BODY_CHAR if body_top <= row <= body_bottom else VLINE_CHAR
        grid.put(col, row, char, candle.color)


def _draw_text(grid: CharGrid, label: TextPrimitive, background: Color, plot: Optional[Rect]) -> None:
    color = blend(label.color, background, label.opacity)
    row = int(label.y // CELL_H)
    if label.rotation and plot is not None:
        # No rotated text in a terminal: right-align against the y axis instead
        end = int(plot.left // CELL_W) - 1
        start = max(end - len(label.text), 0)
        text = label.text[-(end - start):] if end > start else ""
    else:
        start = int(label.x // CELL_W) - len(label.text) // 2
        text = label.text
    for i, char in enumerate(text):
        grid.put(start + i, row, char, color)


def rasterize(plan: DrawPlan, cols: int, rows: int) -> list[Text]:
    """Paint a DrawPlan composed at (cols*CELL_W, rows*CELL_H) onto text rows."""
    style = ChartStyle.for_mode(plan.dark_mode)
    grid = CharGrid(cols, rows, style.background)
    for prim in plan.primitives:
        grid.clip_to(None if prim.layer == Layer.AXIS else plan.plot_area)
        if isinstance(prim, LinePrimitive):
            _draw_line(grid, prim, style.background)
        elif isinstance(prim, CandlePrimitive):
            _draw_candle(grid, prim)
        elif isinstance(prim, TextPrimitive):
            _draw_text(grid, prim, style.background, plan.plot_area)
    return grid.render_rows()


class ChartCanvas(Static):
    """Displays the most recent DrawPlan."""

    DEFAULT_CSS = """
    ChartCanvas {
        width: 100%;
        height: 100%;
    }
    """

    def __init__(self, scheduler: RedrawScheduler) -> None:
        super().__init__()
        self.scheduler = scheduler
        self._plan: DrawPlan | None = None

    def show_plan(self, plan: DrawPlan) -> None:
        """RedrawScheduler present callback."""
        self._plan = plan
        self.refresh()

    def on_resize(self, event: events.Resize) -> None:
        self.scheduler.on_resize(event.size.width * CELL_W, event.size.height * CELL_H)

    def render(self) -> RenderableType:
        if self._plan is None or self._plan.is_empty:
            return Text("Waiting for candles...", style="dim")
        cols, rows = self.size.width, self.size.height
        return Text("\n").join(rasterize(self._plan, cols, rows))


class StatusBar(Static):
    """Status bar showing symbol and store sizes."""

    DEFAULT_CSS = """
    StatusBar {
        dock: top;
        height: 1;
        padding: 0 2;
        background: #111827;
    }
    """

    def __init__(self, session: MarketDataSession) -> None:
        super().__init__()
        self.session = session

    def render(self) -> RenderableType:
        s = self.session
        parts = [
            Text(f" {s.symbol or '-'} ", style="bold white on #1e40af"),
            Text("  Buckets: ", style="dim"),
            Text(f"{len(s.heatmap)}", style="cyan"),
            Text("  Pending: ", style="dim"),
            Text(f"{s.pending}", style="yellow"),
            Text("  Candles: ", style="dim"),
            Text(f"{len(s.klines)}", style="cyan"),
            Text("  │  Dropped: ", style="dim"),
            Text(f"{s.binner.total_dropped}", style="red" if s.binner.total_dropped else "dim"),
        ]
        result = Text()
        for p in parts:
            result.append(p)
        return result


class HeatmapApp(App):
    """Main Heatmap Viewer application."""

    CSS = """
    Screen {
        background: #111827;
    }

    #main-container {
        width: 100%;
        height: 1fr;
    }

    Input {
        dock: bottom;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("t", "toggle_theme", "Toggle Theme"),
        ("r", "redraw", "Redraw"),
    ]

    def __init__(self, session: MarketDataSession, scheduler: RedrawScheduler, dark_mode: bool = True) -> None:
        super().__init__()
        self.session = session
        self.scheduler = scheduler
        self.dark_mode_chart = dark_mode
        self._status_bar: StatusBar | None = None
        self._canvas: ChartCanvas | None = None

    def compose(self) -> ComposeResult:
        self._status_bar = StatusBar(self.session)
        self._canvas = ChartCanvas(self.scheduler)
        self.scheduler.present = self._canvas.show_plan

        yield self._status_bar
        yield Container(self._canvas, id="main-container")
        yield Input(placeholder="Symbol (e.g. ETHUSDT), Enter to switch")
        yield Footer()

    async def on_mount(self) -> None:
        """Drive redraws and status refreshes from the app loop."""
        self.set_interval(self.scheduler.interval_sec, self.scheduler.on_tick)
        self.set_interval(0.5, self._refresh_status)

    def _refresh_status(self) -> None:
        if self._status_bar:
            self._status_bar.refresh()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        symbol = event.value.strip()
        if symbol:
            self.session.set_instrument(symbol)
            self.scheduler.on_tick()
        event.input.value = ""

    def action_toggle_theme(self) -> None:
        self.dark_mode_chart = not self.dark_mode_chart
        self.scheduler.set_dark_mode(self.dark_mode_chart)
        self.scheduler.drain()

    def action_redraw(self) -> None:
        self.scheduler.on_tick()


async def run_ui(session: MarketDataSession, scheduler: RedrawScheduler, dark_mode: bool = True) -> None:
    """Run the TUI application."""
    app = HeatmapApp(session, scheduler, dark_mode)
    await app.run_async()
