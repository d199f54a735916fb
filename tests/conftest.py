from collections.abc import Callable

import pytest

from hackinstall.context import Environment, Fields, InstallerState
from hackinstall.operations import Operation, OperationResult
from hackinstall.types import Branch, Edition, Filesystem, FirmwareMode, GPUVendor, InstallOptions


class FakeRunner:
  """Records every operation instead of running it."""

  def __init__(
    self,
    fail: Callable[[Operation], bool] | None = None,
    outputs: dict[str, str] | None = None,
  ) -> None:
    self.operations: list[Operation] = []
    self.fail = fail or (lambda _op: False)
    self.outputs = outputs or {}

  def run(self, operation: Operation) -> OperationResult:
    self.operations.append(operation)
    if self.fail(operation):
      return OperationResult(success=False, returncode=1, output="simulated failure")
    return OperationResult(success=True, returncode=0, output=self.outputs.get(operation.name, ""))

  @property
  def names(self) -> list[str]:
    return [op.name for op in self.operations]

  def find(self, name: str) -> list[Operation]:
    return [op for op in self.operations if op.name == name]


def fail_on(name: str) -> Callable[[Operation], bool]:
  return lambda op: op.name == name


@pytest.fixture
def runner() -> FakeRunner:
  return FakeRunner()


@pytest.fixture
def options() -> InstallOptions:
  return InstallOptions(
    dry=False,
    populate="bootstrap",
    mirror="http://deb.debian.org/debian",
    mount_point="/mnt",
    distributor="HackerOS",
    pool_name="hackeros",
    kernel_marker="/usr/share/HackerOS/Archived/kernel.hacker",
    overlay="/usr/share/hackinstall/overlay",
    gpu_packages={
      "nvidia": ["nvidia-driver", "nvidia-kernel-dkms"],
      "amd": ["firmware-amd-graphics"],
      "intel": ["intel-gpu-tools"],
    },
  )


@pytest.fixture
def make_state() -> Callable[..., InstallerState]:
  """Build a fully answered state; keyword arguments override single fields."""

  def _make(firmware: FirmwareMode = FirmwareMode.UEFI, **overrides) -> InstallerState:
    fields = Fields(
      username="alice",
      password="user-secret-pw",
      root_password="root-secret-pw",
      hostname="hackbox",
      disk="/dev/sda",
      filesystem=Filesystem.EXT4,
      edition=Edition.OFFICIAL,
      branch=Branch.STABLE,
    )
    for name, value in overrides.items():
      setattr(fields, name, value)

    environment = Environment(firmware=firmware, gpu_vendor=GPUVendor.UNKNOWN, disks=["/dev/sda (20.0 GiB)"])
    return InstallerState(
      fields=fields,
      environment=environment,
      timezones=["UTC", "Europe/Berlin", "Asia/Tokyo"],
      locales=["en_US.UTF-8", "de_DE.UTF-8"],
    )

  return _make


@pytest.fixture
def wizard_state() -> InstallerState:
  """Fresh state as created at startup, before any answer."""
  return InstallerState(
    environment=Environment(firmware=FirmwareMode.BIOS, disks=["/dev/vda (8.0 GiB)"]),
    timezones=["UTC", "Europe/Berlin", "Asia/Tokyo"],
    locales=["en_US.UTF-8", "de_DE.UTF-8"],
  )
