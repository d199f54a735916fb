from __future__ import annotations

import posixpath
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from hackinstall import debian
from hackinstall.context import Environment, Fields, InstallerState
from hackinstall.editions import get_edition
from hackinstall.exceptions import OperationError, PreconditionError
from hackinstall.hardware import detect_gpu_vendor
from hackinstall.kernel import (
  DEFAULT_KERNEL_PACKAGE,
  LIQUORIX_SCRIPT_URL,
  XANMOD_DESCRIPTOR_URL,
  XANMOD_KEY_URL,
  XANMOD_KEYRING,
  family_from_preference,
  parse_kernel_marker,
  select_microarch_variant,
  xanmod_package,
  xanmod_sources_line,
)
from hackinstall.operations import Operation, OperationResult, Runner
from hackinstall.types import Filesystem, FirmwareMode, GPUVendor, InstallOptions, KernelFamily, PartitionMode
from hackinstall.utils import partition_path

T = TypeVar("T")

# Bound in this order, released in exactly the reverse order
BIND_MOUNTS = ["/dev", "/dev/pts", "/proc", "/sys", "/run"]

EFI_MOUNT = "/boot/efi"
OVERLAY_CLONE = "/tmp/hackinstall-overlay"

FORMAT_COMMANDS: dict[Filesystem, list[str]] = {
  Filesystem.BTRFS: ["mkfs.btrfs", "-f"],
  Filesystem.EXT4: ["mkfs.ext4", "-F"],
}


@dataclass(frozen=True)
class DiskLayout:
  """Partition paths derived once from the chosen disk and reused by every phase."""

  disk: str
  esp: str | None
  root: str

  @classmethod
  def plan(cls, disk: str, firmware: FirmwareMode) -> DiskLayout:
    if firmware is FirmwareMode.UEFI:
      return cls(disk=disk, esp=partition_path(disk, 1), root=partition_path(disk, 2))
    return cls(disk=disk, esp=None, root=partition_path(disk, 1))


class InstallContext:
  """
  Everything a phase needs: the frozen answers, environment facts, options,
  the disk layout and the runner that performs external operations.
  """

  def __init__(self, state: InstallerState, runner: Runner, options: InstallOptions) -> None:
    self.state: InstallerState = state
    self.fields: Fields = state.fields
    self.environment: Environment = state.environment
    self.options: InstallOptions = options
    self.runner: Runner = runner
    self.target: str = options.mount_point.rstrip("/") or "/mnt"
    self.layout: DiskLayout = DiskLayout.plan(state.fields.disk, state.environment.firmware)

  @property
  def uefi(self) -> bool:
    return self.environment.firmware is FirmwareMode.UEFI

  def path(self, inside: str) -> str:
    """Host path of a location inside the target root."""
    return f"{self.target}/{inside.lstrip('/')}"

  def require(self, value: T | None, what: str) -> T:
    if value is None:
      raise PreconditionError(f"Required setting missing: {what}")
    return value

  def run(self, operation: Operation) -> OperationResult:
    result = self.runner.run(operation)
    if not result.success:
      message = f"Operation '{operation.name}' failed (exit {result.returncode}): {operation.describe()}"
      if result.output.strip():
        message += f"\n{result.output.strip()}"
      raise OperationError(message)
    return result

  def try_run(self, operation: Operation) -> OperationResult:
    """Run an operation whose failure is an expected answer, not an error."""
    return self.runner.run(operation)

  def host(self, name: str, argv: list[str], **kwargs) -> OperationResult:
    return self.run(Operation(name, argv, **kwargs))

  def chroot(self, name: str, argv: list[str], **kwargs) -> OperationResult:
    return self.run(Operation(name, argv, root=self.target, **kwargs))

  def write(self, path: str, content: str) -> OperationResult:
    return self.chroot(f"write {path}", ["tee", path], stdin=content)


def step_1_partition(ctx: InstallContext) -> str:
  disk = ctx.layout.disk

  if ctx.fields.partition_mode is PartitionMode.MANUAL:
    ctx.host("manual partitioning", ["cfdisk", disk], interactive=True)
    return "Partitioning done (manual)"

  ctx.host("wipe signatures", ["wipefs", "-af", disk])
  if ctx.uefi:
    ctx.host("create GPT label", ["parted", "-s", disk, "mklabel", "gpt"])
    ctx.host("create EFI partition", ["parted", "-s", disk, "mkpart", "ESP", "fat32", "1MiB", "513MiB"])
    ctx.host("flag EFI partition", ["parted", "-s", disk, "set", "1", "esp", "on"])
    ctx.host("create root partition", ["parted", "-s", disk, "mkpart", "root", "513MiB", "100%"])
  else:
    ctx.host("create msdos label", ["parted", "-s", disk, "mklabel", "msdos"])
    ctx.host("create root partition", ["parted", "-s", disk, "mkpart", "primary", "1MiB", "100%"])
    ctx.host("set boot flag", ["parted", "-s", disk, "set", "1", "boot", "on"])

  ctx.host("reload partition table", ["partprobe", disk])
  return "Partitioning done"


def step_2_format(ctx: InstallContext) -> str:
  filesystem = ctx.require(ctx.fields.filesystem, "filesystem")

  if ctx.layout.esp:
    ctx.host("format EFI partition", ["mkfs.fat", "-F32", ctx.layout.esp])

  if filesystem is Filesystem.ZFS:
    pool = ctx.options.pool_name
    ctx.host(
      "create ZFS pool",
      ["zpool", "create", "-f", "-R", ctx.target, "-O", "mountpoint=/", pool, ctx.layout.root],
    )
  else:
    ctx.host("format root partition", [*FORMAT_COMMANDS[filesystem], ctx.layout.root])

  return f"Filesystems created ({filesystem.value})"


def step_3_mount(ctx: InstallContext) -> str:
  ctx.host("create mount root", ["mkdir", "-p", ctx.target])

  # A ZFS pool created with an altroot is already mounted there
  if ctx.fields.filesystem is not Filesystem.ZFS:
    ctx.host("mount root partition", ["mount", ctx.layout.root, ctx.target])

  if ctx.layout.esp:
    ctx.host("create EFI mount point", ["mkdir", "-p", ctx.path(EFI_MOUNT)])
    ctx.host("mount EFI partition", ["mount", ctx.layout.esp, ctx.path(EFI_MOUNT)])

  return "Partitions mounted"


def step_4_base_system(ctx: InstallContext) -> str:
  branch = ctx.require(ctx.fields.branch, "Debian branch")

  if ctx.options.populate == "copy":
    ctx.host("copy live system", debian.copy_live_command(ctx.target))
    marker = "Base system copied"
  else:
    ctx.host("bootstrap base system", debian.bootstrap_command(branch, ctx.target, ctx.options.mirror, ctx.uefi))
    marker = f"Base system installed ({branch.value})"

  overlay = ctx.options.overlay
  if overlay and ctx.try_run(Operation("check system overlay", ["test", "-d", overlay])).success:
    ctx.host("apply system overlay", ["cp", "-a", f"{overlay.rstrip('/')}/.", f"{ctx.target}/"])

  return marker


def step_5_bind_filesystems(ctx: InstallContext) -> str:
  for source in BIND_MOUNTS:
    ctx.host(f"create {source} mount point", ["mkdir", "-p", ctx.path(source)])
    ctx.host(f"bind {source}", ["mount", "--bind", source, ctx.path(source)])

  return "Virtual filesystems bound"


def step_6_configure_system(ctx: InstallContext) -> str:
  fields = ctx.fields
  branch = ctx.require(fields.branch, "Debian branch")

  ctx.write("/etc/apt/sources.list", debian.sources_list(branch, ctx.options.mirror))
  ctx.chroot("update package lists", debian.update_packages())

  for path, content in debian.locale_settings(fields.locale):
    ctx.write(path, content)
  ctx.chroot("generate locales", ["locale-gen"])

  for argv in debian.timezone_commands(fields.timezone):
    ctx.chroot("set timezone", argv)
  ctx.write("/etc/timezone", f"{fields.timezone}\n")

  ctx.chroot("set root password", ["chpasswd"], stdin=f"root:{fields.root_password}\n", secret=True)
  ctx.chroot("create user", debian.create_user_command(fields.username))
  ctx.chroot("set user password", ["chpasswd"], stdin=f"{fields.username}:{fields.password}\n", secret=True)

  ctx.write("/etc/hostname", f"{fields.hostname}\n")
  ctx.write("/etc/hosts", debian.hosts_file(fields.hostname))

  return "System configured"


def step_7_install_edition(ctx: InstallContext) -> str:
  edition = ctx.require(ctx.fields.edition, "edition")
  profile = get_edition(edition)
  username = ctx.fields.username

  if profile.packages:
    ctx.chroot(f"install {edition.value} packages", debian.install_packages(profile.packages))

  if profile.git_overlay:
    ctx.host("clone overlay", ["git", "clone", "--depth", "1", profile.git_overlay, OVERLAY_CLONE])
    ctx.host("apply overlay", ["cp", "-a", f"{OVERLAY_CLONE}/files/.", f"{ctx.target}/"])
    ctx.host("remove overlay clone", ["rm", "-rf", OVERLAY_CLONE])

  home_assets = False
  for asset in profile.assets:
    inside = asset.path.format(user=username)
    home_assets = home_assets or inside.startswith(f"/home/{username}/")
    ctx.host(f"create {posixpath.dirname(inside)}", ["mkdir", "-p", ctx.path(posixpath.dirname(inside))])
    ctx.host(f"download {posixpath.basename(inside)}", ["curl", "-fsSL", "-o", ctx.path(inside), asset.url])
    if asset.executable:
      ctx.chroot(f"mark {posixpath.basename(inside)} executable", ["chmod", "+x", inside])

  if home_assets:
    ctx.chroot("fix home ownership", ["chown", "-R", f"{username}:{username}", f"/home/{username}"])

  for argv in profile.commands:
    ctx.chroot(f"run {argv[0]}", argv)

  return f"Edition installed ({profile.label})"


def step_8_install_gpu_drivers(ctx: InstallContext) -> str:
  # Enumerate the host: the target has no running hardware view of its own
  enumeration = ctx.host("enumerate PCI devices", ["lspci"]).output
  vendor = detect_gpu_vendor(enumeration)

  if vendor is GPUVendor.UNKNOWN:
    return "No supported GPU detected"

  packages = ctx.options.gpu_packages.get(vendor.value, [])
  if packages:
    ctx.chroot(f"install {vendor.value} drivers", debian.install_packages(packages))

  return f"GPU drivers installed ({vendor.name})"


def _kernel_family(ctx: InstallContext) -> KernelFamily:
  family = family_from_preference(ctx.fields.kernel)
  if family is not None:
    return family

  marker = ctx.try_run(Operation("read kernel marker", ["cat", ctx.path(ctx.options.kernel_marker)]))
  return parse_kernel_marker(marker.output if marker.success else None)


def step_9_install_kernel(ctx: InstallContext) -> str:
  family = _kernel_family(ctx)

  if family is KernelFamily.LIQUORIX:
    script = ctx.host("fetch Liquorix installer", ["curl", "-fsSL", LIQUORIX_SCRIPT_URL]).output
    ctx.chroot("install Liquorix kernel", ["bash", "-s"], stdin=script)
    ctx.chroot("remove default kernel", debian.remove_packages([DEFAULT_KERNEL_PACKAGE]))
    return "Kernel installed (Liquorix)"

  if family is KernelFamily.XANMOD:
    branch = ctx.require(ctx.fields.branch, "Debian branch")
    descriptor = ctx.host("fetch CPU descriptor", ["curl", "-fsSL", XANMOD_DESCRIPTOR_URL]).output
    variant = select_microarch_variant(descriptor)

    ctx.host("create keyring directory", ["mkdir", "-p", ctx.path(posixpath.dirname(XANMOD_KEYRING))])
    ctx.host("fetch XanMod key", ["curl", "-fsSL", "-o", ctx.path(XANMOD_KEYRING), XANMOD_KEY_URL])
    ctx.write("/etc/apt/sources.list.d/xanmod-release.list", xanmod_sources_line(branch.value) + "\n")
    ctx.chroot("update package lists", debian.update_packages())
    ctx.chroot("install XanMod kernel", debian.install_packages([xanmod_package(variant)]))
    ctx.chroot("remove default kernel", debian.remove_packages([DEFAULT_KERNEL_PACKAGE]))
    return f"Kernel installed (XanMod {variant})"

  return "Kernel installed (default)"


def step_10_install_bootloader(ctx: InstallContext) -> str:
  ctx.chroot(
    "install bootloader",
    debian.bootloader_install_command(ctx.layout.disk, ctx.uefi, ctx.options.distributor),
  )
  ctx.chroot("configure bootloader", debian.bootloader_config_command())
  return f"Bootloader installed ({'UEFI' if ctx.uefi else 'BIOS'})"


def step_11_cleanup(ctx: InstallContext) -> str:
  for source in reversed(BIND_MOUNTS):
    ctx.host(f"unbind {source}", ["umount", ctx.path(source)])

  if ctx.layout.esp:
    ctx.host("unmount EFI partition", ["umount", ctx.path(EFI_MOUNT)])

  if ctx.fields.filesystem is Filesystem.ZFS:
    ctx.host("export ZFS pool", ["zpool", "export", ctx.options.pool_name])
  else:
    ctx.host("unmount root partition", ["umount", ctx.target])

  return "Installation finalized"


def get_install_steps() -> list[Callable[[InstallContext], str]]:
  """Installation phases in execution order."""
  return [
    step_1_partition,
    step_2_format,
    step_3_mount,
    step_4_base_system,
    step_5_bind_filesystems,
    step_6_configure_system,
    step_7_install_edition,
    step_8_install_gpu_drivers,
    step_9_install_kernel,
    step_10_install_bootloader,
    step_11_cleanup,
  ]
