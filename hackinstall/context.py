from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from hackinstall.exceptions import FrozenStateError
from hackinstall.hardware import detect_firmware, host_gpu_vendor, list_disks
from hackinstall.types import (
  Branch,
  DefaultsConfig,
  Edition,
  Filesystem,
  FirmwareMode,
  GPUVendor,
  KernelPreference,
  PartitionMode,
  PipelineStatus,
  Step,
)

SECRET_STEPS = frozenset({Step.PASSWORD, Step.ROOT_PASSWORD})


@dataclass
class Fields:
  """Answers collected by the wizard. Frozen once installation starts."""

  username: str = ""
  password: str = field(default="", repr=False)
  root_password: str = field(default="", repr=False)
  hostname: str = "hackeros"
  locale: str = "en_US.UTF-8"
  timezone: str = "UTC"
  disk: str = ""
  filesystem: Filesystem | None = None
  partition_mode: PartitionMode = PartitionMode.AUTO
  edition: Edition | None = None
  branch: Branch | None = None
  kernel: KernelPreference = KernelPreference.AUTO

  def __setattr__(self, name: str, value: Any) -> None:
    if getattr(self, "_frozen", False):
      raise FrozenStateError(f"Cannot change '{name}' after installation has started")
    super().__setattr__(name, value)

  def freeze(self) -> None:
    object.__setattr__(self, "_frozen", True)

  @property
  def frozen(self) -> bool:
    return getattr(self, "_frozen", False)


@dataclass
class Environment:
  """Discovered facts about the machine running the installer."""

  firmware: FirmwareMode = FirmwareMode.BIOS
  gpu_vendor: GPUVendor = GPUVendor.UNKNOWN
  disks: list[str] = field(default_factory=list)

  @classmethod
  def detect(cls) -> Environment:
    return cls(firmware=detect_firmware(), gpu_vendor=host_gpu_vendor(), disks=list_disks())


@dataclass(frozen=True)
class StateSnapshot:
  """Read-only copy of the installer state handed to the render layer. Holds no secrets."""

  step: Step
  cursor: int
  buffer: str
  fields: dict[str, str]
  password_set: bool
  root_password_set: bool
  environment: Environment
  timezones: tuple[str, ...]
  locales: tuple[str, ...]
  progress: tuple[str, ...]
  error: str | None
  status: PipelineStatus
  phase: str | None


class InstallerState:
  """
  Holds the wizard answers, environment facts and installation progress.

  The wizard mutates step, cursor, buffer and fields until begin_install()
  hands the state over to the installation pipeline. From then on fields are
  frozen and only progress, error, status and phase change. Those mutations
  and snapshot() share a lock so readers never see a half-applied update.
  """

  def __init__(
    self,
    fields: Fields | None = None,
    environment: Environment | None = None,
    timezones: list[str] | None = None,
    locales: list[str] | None = None,
  ) -> None:
    self.fields: Fields = fields or Fields()
    self.environment: Environment = environment or Environment()

    # Used when the hostname is confirmed empty
    self.default_hostname: str = self.fields.hostname

    # Choice lists offered by the wizard
    self.timezones: list[str] = timezones or [self.fields.timezone]
    self.locales: list[str] = locales or [self.fields.locale]

    # Wizard position and edit state
    self.step: Step = Step.WELCOME
    self.cursor: int = 0
    self.buffer: str = ""

    # Installation progress
    self.progress: list[str] = []
    self.error: str | None = None
    self.status: PipelineStatus = PipelineStatus.NOT_STARTED
    self.phase: str | None = None

    self._lock: threading.Lock = threading.Lock()

  @classmethod
  def create(
    cls,
    defaults: DefaultsConfig,
    environment: Environment,
    timezones: list[str],
    locales: list[str],
  ) -> InstallerState:
    fields = Fields(hostname=defaults["hostname"], locale=defaults["locale"], timezone=defaults["timezone"])
    return cls(fields=fields, environment=environment, timezones=timezones, locales=locales)

  @property
  def finished(self) -> bool:
    return self.status in (PipelineStatus.DONE, PipelineStatus.FAILED)

  def begin_install(self) -> None:
    """Single handoff point from the wizard to the pipeline."""
    with self._lock:
      if self.status is not PipelineStatus.NOT_STARTED:
        raise FrozenStateError(f"Installation already {self.status.value}")
      self.fields.freeze()
      self.buffer = ""
      self.status = PipelineStatus.RUNNING

  def enter_phase(self, name: str) -> None:
    with self._lock:
      self.phase = name

  def append_progress(self, marker: str) -> None:
    with self._lock:
      self.progress.append(marker)

  def fail(self, message: str) -> None:
    with self._lock:
      self.error = message or "Installation failed"
      self.status = PipelineStatus.FAILED

  def complete(self) -> None:
    with self._lock:
      self.phase = None
      self.status = PipelineStatus.DONE

  def snapshot(self) -> StateSnapshot:
    with self._lock:
      f = self.fields
      return StateSnapshot(
        step=self.step,
        cursor=self.cursor,
        buffer="*" * len(self.buffer) if self.step in SECRET_STEPS else self.buffer,
        fields={
          "Username": f.username,
          "Hostname": f.hostname,
          "Edition": f.edition.name.title() if f.edition else "",
          "Branch": f"{f.branch.name.title()} ({f.branch.value})" if f.branch else "",
          "Filesystem": f.filesystem.name.title() if f.filesystem else "",
          "Partitioning": f.partition_mode.value,
          "Disk": f.disk,
          "Timezone": f.timezone,
          "Locale": f.locale,
          "Kernel": f.kernel.value,
        },
        password_set=bool(f.password),
        root_password_set=bool(f.root_password),
        environment=Environment(
          firmware=self.environment.firmware,
          gpu_vendor=self.environment.gpu_vendor,
          disks=list(self.environment.disks),
        ),
        timezones=tuple(self.timezones),
        locales=tuple(self.locales),
        progress=tuple(self.progress),
        error=self.error,
        status=self.status,
        phase=self.phase,
      )
