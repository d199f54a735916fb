import pytest

from conftest import FakeRunner, fail_on
from hackinstall.exceptions import FrozenStateError
from hackinstall.pipeline import Pipeline
from hackinstall.steps import BIND_MOUNTS, DiskLayout
from hackinstall.types import (
  Edition,
  Filesystem,
  FirmwareMode,
  KernelPreference,
  PartitionMode,
  PipelineStatus,
)


def _run(state, options, runner=None):
  runner = runner or FakeRunner()
  status = Pipeline(runner, options).run(state)
  return status, runner


def test_successful_run_records_every_phase(make_state, options):
  state = make_state()
  status, runner = _run(state, options)

  assert status is PipelineStatus.DONE
  assert state.status is PipelineStatus.DONE
  assert state.error is None
  assert len(state.progress) == 11
  assert state.progress[0] == "Partitioning done"
  assert state.progress[-1] == "Installation finalized"


def test_uefi_creates_esp_and_uses_efi_bootloader(make_state, options):
  state = make_state(firmware=FirmwareMode.UEFI)
  _, runner = _run(state, options)

  assert runner.find("create EFI partition")
  assert runner.find("format EFI partition")[0].argv == ["mkfs.fat", "-F32", "/dev/sda1"]
  assert runner.find("format root partition")[0].argv[-1] == "/dev/sda2"

  grub = runner.find("install bootloader")[0]
  assert "--target=x86_64-efi" in grub.argv
  assert "--efi-directory=/boot/efi" in grub.argv
  assert "--bootloader-id=HackerOS" in grub.argv
  assert not runner.find("set boot flag")


def test_bios_sets_boot_flag_instead_of_esp(make_state, options):
  state = make_state(firmware=FirmwareMode.BIOS)
  _, runner = _run(state, options)

  assert not runner.find("create EFI partition")
  assert not runner.find("format EFI partition")
  assert not runner.find("mount EFI partition")
  assert not any(op.argv[0] == "mkfs.fat" for op in runner.operations)

  grub = runner.find("install bootloader")[0]
  assert grub.argv == ["grub-install", "--target=i386-pc", "/dev/sda"]
  assert runner.find("set boot flag")[0].argv == ["parted", "-s", "/dev/sda", "set", "1", "boot", "on"]
  assert runner.find("format root partition")[0].argv[-1] == "/dev/sda1"


# Failing operation per phase, with the kernel forced to XanMod so phase 9 issues checked operations
FAILURE_POINTS = [
  (1, "wipe signatures"),
  (2, "format root partition"),
  (3, "mount root partition"),
  (4, "bootstrap base system"),
  (5, "bind /proc"),
  (6, "set root password"),
  (7, "install official packages"),
  (8, "enumerate PCI devices"),
  (9, "install XanMod kernel"),
  (10, "install bootloader"),
  (11, "unbind /sys"),
]


@pytest.mark.parametrize("phase, operation", FAILURE_POINTS)
def test_failure_stops_pipeline_at_phase(make_state, options, phase, operation):
  reference = make_state(kernel=KernelPreference.XANMOD)
  _run(reference, options)

  state = make_state(kernel=KernelPreference.XANMOD)
  status, runner = _run(state, options, FakeRunner(fail=fail_on(operation)))

  assert status is PipelineStatus.FAILED
  assert state.status is PipelineStatus.FAILED
  assert state.progress == reference.progress[: phase - 1]
  assert state.error
  assert f"Operation '{operation}' failed (exit 1)" in state.error
  assert "simulated failure" in state.error
  # Nothing is issued after the failing operation
  assert runner.operations[-1].name == operation
  assert runner.names.count(operation) == 1


def test_failure_does_not_unmount_or_roll_back(make_state, options):
  state = make_state()
  _, runner = _run(state, options, FakeRunner(fail=fail_on("install bootloader")))

  assert not any(op.argv[0] in ("umount", "zpool") for op in runner.operations)


def test_missing_filesystem_fails_before_any_operation(make_state, options):
  state = make_state(filesystem=None)
  status, runner = _run(state, options)

  assert status is PipelineStatus.FAILED
  assert "filesystem is not selected" in state.error
  assert runner.operations == []
  assert state.progress == []


def test_filesystem_mismatching_edition_fails_before_any_operation(make_state, options):
  state = make_state(edition=Edition.ATOMIC, filesystem=Filesystem.EXT4)
  status, runner = _run(state, options)

  assert status is PipelineStatus.FAILED
  assert "atomic edition requires btrfs" in state.error
  assert runner.operations == []
  assert state.progress == []


def test_pipeline_runs_only_once(make_state, options):
  state = make_state()
  pipeline = Pipeline(FakeRunner(), options)
  pipeline.run(state)

  with pytest.raises(FrozenStateError):
    pipeline.run(state)


def test_fields_are_frozen_once_running(make_state, options):
  state = make_state()
  _run(state, options)

  with pytest.raises(FrozenStateError):
    state.fields.disk = "/dev/sdb"


def test_unexpected_exception_is_recorded(make_state, options):
  def step_1_explode(ctx):
    raise RuntimeError("kaboom")

  state = make_state()
  status = Pipeline(FakeRunner(), options, steps=[step_1_explode]).run(state)

  assert status is PipelineStatus.FAILED
  assert "kaboom" in state.error


def test_unbind_is_exact_reverse_of_bind(make_state, options):
  state = make_state()
  _, runner = _run(state, options)

  binds = [op for op in runner.operations if op.name.startswith("bind ")]
  unbinds = [op for op in runner.operations if op.name.startswith("unbind ")]

  assert [op.argv[2] for op in binds] == BIND_MOUNTS
  assert [op.argv[1] for op in unbinds] == [op.argv[3] for op in reversed(binds)]

  names = runner.names
  assert names.index("unbind /dev") < names.index("unmount EFI partition") < names.index("unmount root partition")


def test_passwords_only_travel_through_stdin(make_state, options):
  state = make_state()
  _, runner = _run(state, options)

  for op in runner.operations:
    text = " ".join(op.command)
    assert "user-secret-pw" not in text
    assert "root-secret-pw" not in text

  root_pw = runner.find("set root password")[0]
  user_pw = runner.find("set user password")[0]
  assert root_pw.argv == ["chpasswd"] and root_pw.secret
  assert root_pw.stdin == "root:root-secret-pw\n"
  assert user_pw.stdin == "alice:user-secret-pw\n"
  assert "secret" in root_pw.describe()
  assert "root-secret-pw" not in root_pw.describe()


def test_configuration_order(make_state, options):
  state = make_state()
  _, runner = _run(state, options)

  names = runner.names
  order = [
    "write /etc/apt/sources.list",
    "generate locales",
    "set timezone",
    "set root password",
    "create user",
    "set user password",
    "write /etc/hostname",
    "write /etc/hosts",
  ]
  positions = [names.index(name) for name in order]
  assert positions == sorted(positions)

  assert runner.find("create user")[0].root == "/mnt"
  hostname = runner.find("write /etc/hostname")[0]
  assert hostname.argv == ["tee", "/etc/hostname"]
  assert hostname.stdin == "hackbox\n"


def test_disk_identifier_reused_verbatim(make_state, options):
  state = make_state(disk="/dev/nvme0n1")
  _, runner = _run(state, options)

  assert runner.find("format EFI partition")[0].argv[-1] == "/dev/nvme0n1p1"
  assert runner.find("mount root partition")[0].argv[1] == "/dev/nvme0n1p2"
  assert runner.find("install bootloader")[0].argv[-1] == "/dev/nvme0n1"

  for op in runner.operations:
    for arg in op.argv:
      if arg.startswith("/dev/nvme"):
        assert arg.startswith("/dev/nvme0n1")


def test_disk_layout_plan():
  assert DiskLayout.plan("/dev/sda", FirmwareMode.UEFI) == DiskLayout("/dev/sda", "/dev/sda1", "/dev/sda2")
  assert DiskLayout.plan("/dev/mmcblk0", FirmwareMode.BIOS) == DiskLayout("/dev/mmcblk0", None, "/dev/mmcblk0p1")


@pytest.mark.parametrize(
  "filesystem, command",
  [
    (Filesystem.BTRFS, ["mkfs.btrfs", "-f", "/dev/sda2"]),
    (Filesystem.EXT4, ["mkfs.ext4", "-F", "/dev/sda2"]),
  ],
)
def test_root_format_follows_filesystem(make_state, options, filesystem, command):
  state = make_state(filesystem=filesystem)
  _, runner = _run(state, options)

  assert runner.find("format root partition")[0].argv == command


def test_zfs_pool_lifecycle(make_state, options):
  state = make_state(filesystem=Filesystem.ZFS)
  _, runner = _run(state, options)

  pool = runner.find("create ZFS pool")[0]
  assert pool.argv == ["zpool", "create", "-f", "-R", "/mnt", "-O", "mountpoint=/", "hackeros", "/dev/sda2"]
  assert not runner.find("mount root partition")
  assert not runner.find("format root partition")
  assert runner.operations[-1].argv == ["zpool", "export", "hackeros"]


def test_manual_partitioning_is_interactive(make_state, options):
  state = make_state(partition_mode=PartitionMode.MANUAL)
  _, runner = _run(state, options)

  first = runner.operations[0]
  assert first.argv == ["cfdisk", "/dev/sda"]
  assert first.interactive
  assert not any(op.argv[0] in ("parted", "wipefs") for op in runner.operations)
  assert state.progress[0] == "Partitioning done (manual)"


def test_bootstrap_policy(make_state, options):
  state = make_state(firmware=FirmwareMode.UEFI)
  _, runner = _run(state, options)

  bootstrap = runner.find("bootstrap base system")[0].argv
  assert bootstrap[0] == "debootstrap"
  assert "grub-efi-amd64" in bootstrap[1]
  assert bootstrap[2:] == ["trixie", "/mnt", "http://deb.debian.org/debian"]
  assert not runner.find("copy live system")


def test_copy_policy_excludes_target(make_state, options):
  options.populate = "copy"
  state = make_state()
  _, runner = _run(state, options)

  rsync = runner.find("copy live system")[0].argv
  assert rsync[0] == "rsync"
  assert "--exclude=/proc/*" in rsync
  assert "--exclude=/mnt/*" in rsync
  assert rsync[-2:] == ["/", "/mnt"]
  assert state.progress[3] == "Base system copied"


def test_overlay_copied_only_when_present(make_state, options):
  state = make_state()
  _, runner = _run(state, options, FakeRunner(fail=fail_on("check system overlay")))
  assert runner.find("check system overlay")[0].argv == ["test", "-d", options.overlay]
  assert state.status is PipelineStatus.DONE
  assert not runner.find("apply system overlay")

  options.overlay = "/srv/overlay/"
  state = make_state()
  _, runner = _run(state, options)
  check = runner.find("check system overlay")[0]
  assert check.argv == ["test", "-d", "/srv/overlay/"]
  assert check.root is None
  assert runner.find("apply system overlay")[0].argv == ["cp", "-a", "/srv/overlay/.", "/mnt/"]


def test_gpu_priority_installs_single_vendor(make_state, options):
  lspci = "00:02.0 VGA compatible controller: Intel Corporation UHD\n01:00.0 3D controller: NVIDIA Corporation GA107M\n"
  state = make_state()
  _, runner = _run(state, options, FakeRunner(outputs={"enumerate PCI devices": lspci}))

  drivers = runner.find("install nvidia drivers")
  assert drivers[0].argv == ["apt-get", "install", "-y", "nvidia-driver", "nvidia-kernel-dkms"]
  assert not runner.find("install intel drivers")
  assert "GPU drivers installed (NVIDIA)" in state.progress


def test_no_gpu_match_installs_nothing(make_state, options):
  state = make_state()
  _, runner = _run(state, options, FakeRunner(outputs={"enumerate PCI devices": "00:01.0 VGA: Matrox\n"}))

  assert not any(op.name.endswith(" drivers") for op in runner.operations)
  assert "No supported GPU detected" in state.progress
  assert state.status is PipelineStatus.DONE


def test_xanmod_marker_selects_highest_variant(make_state, options):
  outputs = {
    "read kernel marker": "[xanmod]\n",
    "fetch CPU descriptor": "supported: x86-64-v2\nsupported: x86-64-v3\n",
  }
  state = make_state()
  _, runner = _run(state, options, FakeRunner(outputs=outputs))

  marker = runner.find("read kernel marker")[0]
  assert marker.argv == ["cat", "/mnt/usr/share/HackerOS/Archived/kernel.hacker"]
  assert runner.find("install XanMod kernel")[0].argv[-1] == "linux-xanmod-lts-x64v3"
  assert runner.find("remove default kernel")[0].argv == ["apt-get", "remove", "-y", "linux-image-amd64"]
  assert runner.names.index("install XanMod kernel") < runner.names.index("remove default kernel")
  assert "Kernel installed (XanMod x64v3)" in state.progress


def test_liquorix_script_runs_through_stdin(make_state, options):
  outputs = {"read kernel marker": "[liquorix]\n", "fetch Liquorix installer": "#!/bin/sh\necho liquorix\n"}
  state = make_state()
  _, runner = _run(state, options, FakeRunner(outputs=outputs))

  install = runner.find("install Liquorix kernel")[0]
  assert install.command == ["chroot", "/mnt", "bash", "-s"]
  assert install.stdin == "#!/bin/sh\necho liquorix\n"
  assert runner.find("remove default kernel")


def test_unreadable_marker_keeps_default_kernel(make_state, options):
  state = make_state()
  status, runner = _run(state, options, FakeRunner(fail=fail_on("read kernel marker")))

  assert status is PipelineStatus.DONE
  assert "Kernel installed (default)" in state.progress
  assert not runner.find("remove default kernel")


def test_explicit_kernel_preference_skips_marker(make_state, options):
  state = make_state(kernel=KernelPreference.DEFAULT)
  _, runner = _run(state, options, FakeRunner(outputs={"read kernel marker": "[xanmod]\n"}))

  assert not runner.find("read kernel marker")
  assert "Kernel installed (default)" in state.progress


def test_blue_edition_downloads_assets(make_state, options):
  state = make_state(edition=Edition.BLUE)
  _, runner = _run(state, options)

  downloads = [op for op in runner.operations if op.name.startswith("download ")]
  assert downloads
  assert all(op.argv[:3] == ["curl", "-fsSL", "-o"] for op in downloads)
  assert any(op.argv[3] == "/mnt/home/alice/.hackeros/Blue-Environment/wm" for op in downloads)

  chmod = [op for op in runner.operations if op.argv[0] == "chmod"]
  assert chmod and all(op.root == "/mnt" for op in chmod)
  assert ["chmod", "+x", "/usr/bin/Blue-Environment"] in [op.argv for op in chmod]
  assert runner.find("fix home ownership")[0].argv == ["chown", "-R", "alice:alice", "/home/alice"]


def test_atomic_edition_runs_hammer_setup(make_state, options):
  state = make_state(edition=Edition.ATOMIC, filesystem=Filesystem.BTRFS)
  _, runner = _run(state, options)

  assert runner.find("run hammer")[0].command == ["chroot", "/mnt", "hammer", "setup"]
  assert not runner.find("fix home ownership")


def test_hydra_edition_applies_git_overlay(make_state, options):
  state = make_state(edition=Edition.HYDRA)
  _, runner = _run(state, options)

  names = runner.names
  assert names.index("clone overlay") < names.index("apply overlay") < names.index("remove overlay clone")
