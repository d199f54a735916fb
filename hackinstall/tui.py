import os
import re
import shutil
import sys
import termios
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from types import TracebackType

from rich import box
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from hackinstall.context import StateSnapshot
from hackinstall.types import PipelineStatus, Step
from hackinstall.wizard import Event, EventKind, StepKind, step_view

console = Console()

QUIT_KEY = "\x11"  # Ctrl+Q

KEY_EVENTS: dict[str, Event] = {
  "\r": Event(EventKind.CONFIRM),
  "\n": Event(EventKind.CONFIRM),
  "\x7f": Event(EventKind.BACKSPACE),
  "\x08": Event(EventKind.BACKSPACE),
  "\x1b[A": Event(EventKind.UP),
  "\x1bOA": Event(EventKind.UP),
  "\x1b[B": Event(EventKind.DOWN),
  "\x1bOB": Event(EventKind.DOWN),
  "\x1b": Event(EventKind.CANCEL),
}
# CSI (ESC [ params final) or SS3 (ESC O key); a lone ESC is not a sequence.
ESCAPE_SEQUENCE = re.compile(r"\x1b(?:\[[0-?]*[ -/]*[@-~]|O.)", re.DOTALL)

COLORS = {"text": "bold cyan", "border": "cyan", "error": "bold red", "done": "bold green"}


def decode_keys(code: str) -> list[Event]:
  """
  Translate raw terminal input into wizard events.

  A single read may hold several keys (fast typing or paste), so the input
  is split left to right. Escape sequences are matched whole and
  dropped when unknown; every printable character becomes its own CHAR event.
  """
  events: list[Event] = []
  pos = 0
  while pos < len(code):
    match = ESCAPE_SEQUENCE.match(code, pos)
    if match:
      if match.group() in KEY_EVENTS:
        events.append(KEY_EVENTS[match.group()])
      pos = match.end()
      continue

    char = code[pos]
    if char in KEY_EVENTS:
      events.append(KEY_EVENTS[char])
    elif char.isprintable():
      events.append(Event(EventKind.CHAR, char))
    pos += 1

  return events


class KeyReader:
  """Reads raw key presses from the controlling terminal without echo."""

  def __init__(self, device: str = "/dev/tty") -> None:
    self.device: str = device
    self._fd: int | None = None
    self._old_term: list | None = None

  def __enter__(self) -> "KeyReader":
    self._fd = os.open(self.device, os.O_RDONLY)
    self._old_term = termios.tcgetattr(self._fd)
    new_term = termios.tcgetattr(self._fd)
    new_term[0] = new_term[0] & ~termios.ICRNL
    new_term[3] = new_term[3] & ~termios.ICANON & ~termios.ECHO
    termios.tcsetattr(self._fd, termios.TCSAFLUSH, new_term)
    return self

  def __exit__(
    self,
    exc_type: type[BaseException] | None,
    exc: BaseException | None,
    tb: TracebackType | None,
  ) -> None:
    if self._fd is None:
      return

    if self._old_term is not None:
      termios.tcsetattr(self._fd, termios.TCSAFLUSH, self._old_term)
    os.close(self._fd)
    self._fd = None

  def read(self) -> str:
    """Block until at least one key is available."""
    assert self._fd is not None
    return os.read(self._fd, 80).decode("utf-8", errors="ignore")


class TUI:
  def __init__(self, dry_mode: bool = False, distributor: str = "HackerOS", total_phases: int = 11) -> None:
    self.enabled: bool = sys.stdout.isatty()
    self.dry_mode: bool = dry_mode
    self.distributor: str = distributor
    self.total_phases: int = total_phases
    self.live: Live | None = None
    self.output_lines: list[str] = []
    self._last: StateSnapshot | None = None
    self._lock: threading.RLock = threading.RLock()

  # =============================================================================
  # Lifecycle
  # =============================================================================

  def start(self) -> None:
    with self._lock:
      if not self.enabled or self.live is not None:
        return

      layout = self.render(self._last) if self._last else Layout()
      self.live = Live(layout, console=console, refresh_per_second=10, screen=False)
      self.live.start()

  def stop(self) -> None:
    with self._lock:
      if self.live:
        self.live.stop()
        self.live = None

  @contextmanager
  def suspended(self) -> Iterator[None]:
    """Hand the terminal to an interactive program, then resume drawing."""
    with self._lock:
      was_live = self.live is not None
      self.stop()
      try:
        yield
      finally:
        if was_live:
          self.start()

  def update(self, snapshot: StateSnapshot) -> None:
    with self._lock:
      self._last = snapshot
      if self.live:
        self.live.update(self.render(snapshot))

  def print(self, message: str) -> None:
    """Print message to output area when Live is active, or console when not."""
    with self._lock:
      if self.live is None:
        console.print(message)
        return

      self.output_lines.append(message)
      if self._last:
        self.live.update(self.render(self._last))

  # =============================================================================
  # Rendering
  # =============================================================================

  def render(self, snapshot: StateSnapshot) -> Layout:
    layout = Layout()
    layout.split_column(
      Layout(self._header(snapshot), name="header", size=3),
      Layout(name="body", ratio=1),
      Layout(self._footer(snapshot), name="footer", size=3),
    )

    if snapshot.status is PipelineStatus.NOT_STARTED:
      layout["body"].update(self._wizard_panel(snapshot))
    else:
      layout["body"].update(self._progress_panel(snapshot))

    return layout

  def _header(self, snapshot: StateSnapshot) -> Panel:
    if snapshot.status is PipelineStatus.NOT_STARTED:
      view = step_view(snapshot)
      status = f"{view.title} · Step {view.number}/{view.total}"
    else:
      status = f"{snapshot.phase or snapshot.status.value.title()} · Phase {len(snapshot.progress)}/{self.total_phases}"

    if self.dry_mode:
      status += "  [DRY RUN]"

    return Panel(
      Text(status, style=COLORS["text"]),
      border_style=COLORS["border"],
      padding=(0, 1),
      box=box.SQUARE,
      title=f"{self.distributor} installer",
      title_align="left",
    )

  def _footer(self, snapshot: StateSnapshot) -> Panel:
    if snapshot.status is PipelineStatus.NOT_STARTED:
      text = Text("Enter confirm · Esc clear/back · ↑/↓ select · Ctrl+Q quit", style="dim")
    elif snapshot.status is PipelineStatus.FAILED:
      text = Text("Installation failed", style=COLORS["error"])
    elif snapshot.status is PipelineStatus.DONE:
      text = Text("Installation completed", style=COLORS["done"])
    else:
      text = Text("Installing, please wait...", style="dim")

    return Panel(text, box=box.SQUARE, border_style="dim", padding=(0, 1))

  def _wizard_panel(self, snapshot: StateSnapshot) -> Panel:
    view = step_view(snapshot)
    parts: list = []

    if view.kind is StepKind.INFO:
      env = snapshot.environment
      parts.append(Text(view.prompt))
      parts.append(Text(""))
      parts.append(Text(f"Firmware: {env.firmware.value.upper()}"))
      parts.append(Text(f"GPU: {env.gpu_vendor.name.title()}"))
      parts.append(Text(f"Disks: {', '.join(env.disks) or 'none detected'}"))
      parts.append(Text(""))
      parts.append(Text("Press Enter to begin.", style="bold"))

    elif view.kind is StepKind.TEXT:
      parts.append(Text(f"{view.prompt}: ", style="bold").append(snapshot.buffer).append("█", style="blink"))
      if snapshot.step is Step.DISK and snapshot.environment.disks:
        parts.append(Text(""))
        parts.append(Text("Detected disks:", style="dim"))
        parts.extend(Text(f"  {disk}", style="dim") for disk in snapshot.environment.disks)
      if snapshot.step is Step.HOSTNAME:
        parts.append(Text("Leave empty to use the default hostname.", style="dim"))

    elif view.kind is StepKind.CHOICE:
      parts.append(Text(view.prompt, style="bold"))
      parts.append(Text(""))
      for i, label in enumerate(view.options):
        if i == snapshot.cursor:
          parts.append(Text(f"> {label}", style=COLORS["text"]))
        else:
          parts.append(Text(f"  {label}"))

    else:
      parts.append(self._summary_table(snapshot))
      parts.append(Text(""))
      parts.append(Text(f"All data on {snapshot.fields['Disk']} will be erased.", style=COLORS["error"]))
      parts.append(Text(view.prompt, style="bold"))

    return Panel(Group(*parts), title=view.title, title_align="left", border_style=COLORS["border"], box=box.SQUARE)

  def _summary_table(self, snapshot: StateSnapshot) -> Table:
    table = Table(box=None, show_header=False, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()

    for key, value in snapshot.fields.items():
      table.add_row(key, value)

    table.add_row("Passwords", "set" if snapshot.password_set and snapshot.root_password_set else "missing")
    table.add_row("Firmware", snapshot.environment.firmware.value.upper())
    return table

  def _progress_panel(self, snapshot: StateSnapshot) -> Panel:
    parts: list = [Text(f"✓ {marker}", style=COLORS["done"]) for marker in snapshot.progress]

    if snapshot.status is PipelineStatus.RUNNING and snapshot.phase:
      parts.append(Text(f"… {snapshot.phase}", style=COLORS["text"]))

    if snapshot.error:
      parts.append(Text(""))
      parts.append(Text(snapshot.error, style=COLORS["error"]))

    if self.output_lines:
      # Leave room for the header, footer and the phase list
      visible_lines = max(1, shutil.get_terminal_size().lines - 10 - len(parts))
      parts.append(Text(""))
      parts.extend(Text.from_markup(line) for line in self.output_lines[-visible_lines:])

    return Panel(Group(*parts), title="Installation", title_align="left", border_style=COLORS["border"], box=box.SQUARE)
