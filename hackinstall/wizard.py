"""
Wizard step sequencer.

transition() applies one input event to the installer state. Every
(step kind, event kind) pair is listed in TRANSITIONS, and each handler
performs at most one effect: edit the buffer, move the cursor, or change the
step. The sequencer never runs an operation; confirming the summary only
reports START_INSTALL to the caller.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Protocol

from hackinstall.context import SECRET_STEPS, InstallerState, StateSnapshot
from hackinstall.editions import EDITIONS, forced_filesystem
from hackinstall.types import Branch, Edition, Filesystem, KernelPreference, PartitionMode, PipelineStatus, Step
from hackinstall.validations import validate_disk_path, validate_hostname, validate_password, validate_username


class EventKind(Enum):
  CHAR = auto()
  BACKSPACE = auto()
  UP = auto()
  DOWN = auto()
  CONFIRM = auto()
  CANCEL = auto()


@dataclass(frozen=True)
class Event:
  kind: EventKind
  char: str = ""


class StepKind(Enum):
  INFO = auto()
  TEXT = auto()
  CHOICE = auto()
  SUMMARY = auto()


class Outcome(Enum):
  IGNORED = auto()
  EDITED = auto()
  MOVED = auto()
  ADVANCED = auto()
  REGRESSED = auto()
  START_INSTALL = auto()


class ChoiceSource(Protocol):
  """Anything carrying the configurable choice lists (state or snapshot)."""

  @property
  def timezones(self) -> Any: ...

  @property
  def locales(self) -> Any: ...


Options = Callable[[ChoiceSource], list[tuple[str, Any]]]


@dataclass(frozen=True)
class StepSpec:
  kind: StepKind
  title: str
  prompt: str = ""
  field: str | None = None
  options: Options | None = None
  accept: Callable[[str], bool] | None = None


# fmt: off
FILESYSTEM_LABELS = {
  Filesystem.BTRFS: "Btrfs (snapshots, compression)",
  Filesystem.EXT4: "Ext4 (classic, robust)",
  Filesystem.ZFS: "ZFS (pooled storage)",
}

PARTITION_LABELS = {
  PartitionMode.AUTO: "Automatic (erase the whole disk)",
  PartitionMode.MANUAL: "Manual (partition with cfdisk)",
}

KERNEL_LABELS = {
  KernelPreference.AUTO: "Auto (follow the system kernel marker)",
  KernelPreference.DEFAULT: "Default Debian kernel",
  KernelPreference.LIQUORIX: "Liquorix",
  KernelPreference.XANMOD: "XanMod (matched to the CPU level)",
}
# fmt: on


def _enum_options(labels: dict[Any, str]) -> Options:
  return lambda _source: [(label, value) for value, label in labels.items()]


STEPS: dict[Step, StepSpec] = {
  Step.WELCOME: StepSpec(
    StepKind.INFO,
    "Welcome",
    "This wizard collects your settings, then erases and installs the selected disk.",
  ),
  Step.USERNAME: StepSpec(StepKind.TEXT, "User", "Username", "username", accept=validate_username),
  Step.PASSWORD: StepSpec(StepKind.TEXT, "User", "User password", "password", accept=validate_password),
  Step.ROOT_PASSWORD: StepSpec(StepKind.TEXT, "Root", "Root password", "root_password", accept=validate_password),
  Step.EDITION: StepSpec(
    StepKind.CHOICE,
    "Edition",
    "Select an edition",
    "edition",
    options=lambda _source: [(profile.label, edition) for edition, profile in EDITIONS.items()],
  ),
  Step.BRANCH: StepSpec(
    StepKind.CHOICE,
    "Branch",
    "Select a Debian branch",
    "branch",
    options=lambda _source: [(f"{branch.name.title()} ({branch.value})", branch) for branch in Branch],
  ),
  Step.FILESYSTEM: StepSpec(
    StepKind.CHOICE, "Filesystem", "Select a root filesystem", "filesystem", options=_enum_options(FILESYSTEM_LABELS)
  ),
  Step.PARTITION_MODE: StepSpec(
    StepKind.CHOICE,
    "Partitioning",
    "Select a partitioning mode",
    "partition_mode",
    options=_enum_options(PARTITION_LABELS),
  ),
  Step.DISK: StepSpec(StepKind.TEXT, "Disk", "Target disk (e.g. /dev/sda)", "disk", accept=validate_disk_path),
  Step.HOSTNAME: StepSpec(StepKind.TEXT, "Hostname", "Hostname", "hostname", accept=validate_hostname),
  Step.TIMEZONE: StepSpec(
    StepKind.CHOICE,
    "Timezone",
    "Select a timezone",
    "timezone",
    options=lambda source: [(tz, tz) for tz in source.timezones],
  ),
  Step.LOCALE: StepSpec(
    StepKind.CHOICE,
    "Locale",
    "Select a locale",
    "locale",
    options=lambda source: [(loc, loc) for loc in source.locales],
  ),
  Step.KERNEL: StepSpec(
    StepKind.CHOICE, "Kernel", "Select a kernel", "kernel", options=_enum_options(KERNEL_LABELS)
  ),
  Step.SUMMARY: StepSpec(StepKind.SUMMARY, "Summary", "Press Enter to install, Esc to go back"),
}


def get_options(step: Step, source: ChoiceSource) -> list[tuple[str, Any]]:
  spec = STEPS[step]
  return spec.options(source) if spec.options else []


def is_presented(state: InstallerState, step: Step) -> bool:
  """Whether the wizard shows step, given the answers committed so far."""
  if step is Step.FILESYSTEM and state.fields.edition is not None:
    return forced_filesystem(state.fields.edition) is None

  return True


def _enter(state: InstallerState, step: Step) -> None:
  """Move to step and prime its edit state from the committed answer."""
  spec = STEPS[step]
  state.step = step
  state.cursor = 0
  state.buffer = ""

  if spec.field is None:
    return

  current = getattr(state.fields, spec.field)
  if spec.kind is StepKind.CHOICE:
    values = [value for _, value in get_options(step, state)]
    state.cursor = values.index(current) if current in values else 0

  elif step not in SECRET_STEPS:
    state.buffer = current or ""


def _advance(state: InstallerState) -> Outcome:
  target = Step(state.step + 1)
  while not is_presented(state, target):
    target = Step(target + 1)

  _enter(state, target)
  return Outcome.ADVANCED


def _regress(state: InstallerState) -> Outcome:
  target = Step(state.step - 1)
  while not is_presented(state, target):
    target = Step(target - 1)

  _enter(state, target)
  return Outcome.REGRESSED


# =============================================================================
# Handlers
# =============================================================================


def _ignore(state: InstallerState, spec: StepSpec, event: Event) -> Outcome:
  return Outcome.IGNORED


def _advance_on_confirm(state: InstallerState, spec: StepSpec, event: Event) -> Outcome:
  return _advance(state)


def _text_append(state: InstallerState, spec: StepSpec, event: Event) -> Outcome:
  if len(event.char) != 1 or not event.char.isprintable():
    return Outcome.IGNORED

  state.buffer += event.char
  return Outcome.EDITED


def _text_backspace(state: InstallerState, spec: StepSpec, event: Event) -> Outcome:
  if not state.buffer:
    return Outcome.IGNORED

  state.buffer = state.buffer[:-1]
  return Outcome.EDITED


def _text_confirm(state: InstallerState, spec: StepSpec, event: Event) -> Outcome:
  assert spec.field is not None
  value = state.buffer

  if state.step is Step.HOSTNAME and not value:
    value = state.default_hostname

  if spec.accept is not None and not spec.accept(value):
    return Outcome.IGNORED

  setattr(state.fields, spec.field, value)
  return _advance(state)


def _text_cancel(state: InstallerState, spec: StepSpec, event: Event) -> Outcome:
  if not state.buffer:
    return Outcome.IGNORED

  state.buffer = ""
  return Outcome.EDITED


def _choice_up(state: InstallerState, spec: StepSpec, event: Event) -> Outcome:
  if state.cursor <= 0:
    state.cursor = 0
    return Outcome.IGNORED

  state.cursor -= 1
  return Outcome.MOVED


def _choice_down(state: InstallerState, spec: StepSpec, event: Event) -> Outcome:
  last = len(get_options(state.step, state)) - 1
  if state.cursor >= last:
    state.cursor = max(last, 0)
    return Outcome.IGNORED

  state.cursor += 1
  return Outcome.MOVED


def _choice_confirm(state: InstallerState, spec: StepSpec, event: Event) -> Outcome:
  assert spec.field is not None
  options = get_options(state.step, state)
  if not options:
    return Outcome.IGNORED

  _, value = options[min(state.cursor, len(options) - 1)]
  setattr(state.fields, spec.field, value)

  if isinstance(value, Edition):
    forced = forced_filesystem(value)
    if forced is not None:
      state.fields.filesystem = forced

  return _advance(state)


def _step_back(state: InstallerState, spec: StepSpec, event: Event) -> Outcome:
  return _regress(state)


def _start_install(state: InstallerState, spec: StepSpec, event: Event) -> Outcome:
  return Outcome.START_INSTALL


Handler = Callable[[InstallerState, StepSpec, Event], Outcome]

# fmt: off
TRANSITIONS: dict[tuple[StepKind, EventKind], Handler] = {
  (StepKind.INFO, EventKind.CHAR): _ignore,
  (StepKind.INFO, EventKind.BACKSPACE): _ignore,
  (StepKind.INFO, EventKind.UP): _ignore,
  (StepKind.INFO, EventKind.DOWN): _ignore,
  (StepKind.INFO, EventKind.CONFIRM): _advance_on_confirm,
  (StepKind.INFO, EventKind.CANCEL): _ignore,

  (StepKind.TEXT, EventKind.CHAR): _text_append,
  (StepKind.TEXT, EventKind.BACKSPACE): _text_backspace,
  (StepKind.TEXT, EventKind.UP): _ignore,
  (StepKind.TEXT, EventKind.DOWN): _ignore,
  (StepKind.TEXT, EventKind.CONFIRM): _text_confirm,
  (StepKind.TEXT, EventKind.CANCEL): _text_cancel,

  (StepKind.CHOICE, EventKind.CHAR): _ignore,
  (StepKind.CHOICE, EventKind.BACKSPACE): _ignore,
  (StepKind.CHOICE, EventKind.UP): _choice_up,
  (StepKind.CHOICE, EventKind.DOWN): _choice_down,
  (StepKind.CHOICE, EventKind.CONFIRM): _choice_confirm,
  (StepKind.CHOICE, EventKind.CANCEL): _step_back,

  (StepKind.SUMMARY, EventKind.CHAR): _ignore,
  (StepKind.SUMMARY, EventKind.BACKSPACE): _ignore,
  (StepKind.SUMMARY, EventKind.UP): _ignore,
  (StepKind.SUMMARY, EventKind.DOWN): _ignore,
  (StepKind.SUMMARY, EventKind.CONFIRM): _start_install,
  (StepKind.SUMMARY, EventKind.CANCEL): _step_back,
}
# fmt: on


def transition(state: InstallerState, event: Event) -> Outcome:
  """Apply one input event to the wizard. Input is ignored once installation has started."""
  if state.status is not PipelineStatus.NOT_STARTED:
    return Outcome.IGNORED

  spec = STEPS[state.step]
  return TRANSITIONS[(spec.kind, event.kind)](state, spec, event)


@dataclass(frozen=True)
class StepView:
  """What the render layer needs to draw the current wizard step."""

  kind: StepKind
  title: str
  prompt: str
  options: list[str]
  secret: bool
  number: int
  total: int


def step_view(snapshot: StateSnapshot) -> StepView:
  spec = STEPS[snapshot.step]
  return StepView(
    kind=spec.kind,
    title=spec.title,
    prompt=spec.prompt,
    options=[label for label, _ in get_options(snapshot.step, snapshot)],
    secret=snapshot.step in SECRET_STEPS,
    number=int(snapshot.step),
    total=int(Step.SUMMARY),
  )
