"""
Edition registry.

Each edition is an independent, ordered recipe executed inside the target
root after the base system is configured. Recipes are stored as data so that
one edition's downloads or permissions never leak into another's steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final

from hackinstall.types import Edition, Filesystem

BLUE_RELEASE = "https://github.com/HackerOS-Linux-System/Blue-Environment/releases/download/v0.1"
HAMMER_RELEASE = "https://github.com/HackerOS-Linux-System/hammer/releases/download/v0.5"


@dataclass(frozen=True)
class Asset:
  """A file downloaded on the host into the target tree."""

  url: str
  path: str  # inside the target root; "{user}" expands to the primary username
  executable: bool = True


@dataclass(frozen=True)
class EditionProfile:
  """Installation recipe for one edition."""

  label: str
  packages: list[str] = field(default_factory=list)
  assets: list[Asset] = field(default_factory=list)
  git_overlay: str | None = None  # repository whose files/ tree is copied over the target
  commands: list[list[str]] = field(default_factory=list)
  filesystem: Filesystem | None = None  # forced filesystem, skips the wizard choice


EDITIONS: Final[dict[Edition, EditionProfile]] = {
  Edition.OFFICIAL: EditionProfile(
    label="Official (KDE Plasma + SDDM)",
    packages=["task-kde-desktop", "sddm"],
  ),
  Edition.GNOME: EditionProfile(
    label="GNOME (GNOME + GDM3)",
    packages=["task-gnome-desktop", "gdm3"],
  ),
  Edition.XFCE: EditionProfile(
    label="XFCE (XFCE + LightDM)",
    packages=["task-xfce-desktop", "lightdm"],
  ),
  Edition.BLUE: EditionProfile(
    label="Blue (Custom Environment)",
    assets=[
      *(
        Asset(f"{BLUE_RELEASE}/{name}", f"/home/{{user}}/.hackeros/Blue-Environment/{name}")
        for name in ("wm", "shell", "launcher", "Desktop", "decorations", "core")
      ),
      Asset(f"{BLUE_RELEASE}/Blue-Environment", "/usr/bin/Blue-Environment"),
      Asset(
        "https://raw.githubusercontent.com/HackerOS-Linux-System/Blue-Environment/main/Blue-Environment.desktop",
        "/usr/share/wayland-sessions/Blue-Environment.desktop",
        executable=False,
      ),
    ],
    packages=["sddm", "wayland-protocols"],
  ),
  Edition.HYDRA: EditionProfile(
    label="Hydra (Custom Look)",
    packages=["task-kde-desktop", "sddm"],
    git_overlay="https://github.com/HackerOS-Linux-System/hydra-look-and-feel.git",
  ),
  Edition.CYBERSECURITY: EditionProfile(
    label="Cybersecurity (With Tools)",
    packages=["nmap", "wireshark", "metasploit-framework", "burpsuite"],
  ),
  Edition.WAYFIRE: EditionProfile(
    label="Wayfire (Wayfire + SDDM)",
    packages=["wayfire", "sddm"],
  ),
  Edition.ATOMIC: EditionProfile(
    label="Atomic (With Hammer, requires Btrfs)",
    assets=[
      Asset(f"{HAMMER_RELEASE}/hammer", "/usr/bin/hammer"),
      *(
        Asset(f"{HAMMER_RELEASE}/{name}", f"/usr/lib/HackerOS/hammer/{name}")
        for name in ("hammer-updater", "hammer-tui", "hammer-core", "hammer-builder")
      ),
    ],
    packages=["task-kde-desktop", "sddm"],
    commands=[["hammer", "setup"]],
    filesystem=Filesystem.BTRFS,
  ),
}


def get_edition(edition: Edition) -> EditionProfile:
  return EDITIONS[edition]


def forced_filesystem(edition: Edition) -> Filesystem | None:
  """Filesystem an edition mandates, if any."""
  return EDITIONS[edition].filesystem
