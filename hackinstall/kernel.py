"""
Kernel family selection.

The populated target may carry a small marker file whose bracketed lines name
an alternate kernel family. The XanMod family ships one build per x86-64
microarchitecture level, chosen from a descriptor fetched at install time.
"""

import re

from hackinstall.types import KernelFamily, KernelPreference

# Checked in this order when several markers are present.
KERNEL_MARKERS: list[tuple[str, KernelFamily]] = [
  ("[liquorix]", KernelFamily.LIQUORIX),
  ("[xanmod]", KernelFamily.XANMOD),
]

# Highest level first; a descriptor naming several levels selects the first match.
# There is no v4 build, so v4 machines get the v3 one. Bare "x86-64" only counts
# when it is not the prefix of a versioned level.
MICROARCH_VARIANTS: list[tuple[re.Pattern[str], str]] = [
  (re.compile(r"x86-64-v4"), "x64v3"),
  (re.compile(r"x86-64-v3"), "x64v3"),
  (re.compile(r"x86-64-v2"), "x64v2"),
  (re.compile(r"x86-64(?!-v)"), "x64v1"),
]

DEFAULT_MICROARCH_VARIANT = "x64v3"

DEFAULT_KERNEL_PACKAGE = "linux-image-amd64"

LIQUORIX_SCRIPT_URL = "https://liquorix.net/install-liquorix.sh"

XANMOD_DESCRIPTOR_URL = (
  "https://github.com/HackerOS-Linux-System/Hacker-Lang/blob/main/hacker-packages/xanmod-cpu.hacker?raw=true"
)
XANMOD_KEY_URL = "https://dl.xanmod.org/archive.key"
XANMOD_KEYRING = "/etc/apt/keyrings/xanmod-archive-keyring.asc"
XANMOD_REPOSITORY = "http://deb.xanmod.org"


def parse_kernel_marker(text: str | None) -> KernelFamily:
  """Kernel family named by marker file contents; DEFAULT when none is recognised."""
  if not text:
    return KernelFamily.DEFAULT

  lines = {line.strip() for line in text.splitlines()}
  for marker, family in KERNEL_MARKERS:
    if marker in lines:
      return family

  return KernelFamily.DEFAULT


def select_microarch_variant(descriptor: str | None) -> str:
  """XanMod build suffix for the highest level the descriptor advertises."""
  if descriptor:
    for level, variant in MICROARCH_VARIANTS:
      if level.search(descriptor):
        return variant

  return DEFAULT_MICROARCH_VARIANT


def family_from_preference(preference: KernelPreference) -> KernelFamily | None:
  """Explicit wizard choice, or None when the marker file decides."""
  if preference is KernelPreference.AUTO:
    return None

  return KernelFamily(preference.value)


def xanmod_package(variant: str) -> str:
  return f"linux-xanmod-lts-{variant}"


def xanmod_sources_line(codename: str) -> str:
  return f"deb [signed-by={XANMOD_KEYRING}] {XANMOD_REPOSITORY} {codename} main"
