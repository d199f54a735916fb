"""Debian specific commands and configurations"""

from hackinstall.types import Branch

COMPONENTS = "main contrib non-free non-free-firmware"

LIVE_EXCLUDES = ["/dev/*", "/proc/*", "/sys/*", "/tmp/*", "/run/*", "/mnt/*", "/media/*", "/lost+found"]


def base_packages(uefi: bool) -> list[str]:
  return [
    "linux-image-amd64",
    "grub-efi-amd64" if uefi else "grub-pc",
    "sudo",
    "locales",
    "tzdata",
    "curl",
    "ca-certificates",
    "gnupg",
  ]


def bootstrap_command(branch: Branch, target: str, mirror: str, uefi: bool) -> list[str]:
  include = ",".join(base_packages(uefi))
  return ["debootstrap", f"--include={include}", branch.value, target, mirror]


def copy_live_command(target: str) -> list[str]:
  excludes = [f"--exclude={path}" for path in LIVE_EXCLUDES]
  # The target sits below the live root, so never copy it into itself
  excludes.append(f"--exclude={target.rstrip('/')}/*")
  return ["rsync", "-aAX", *excludes, "/", target]


def sources_list(branch: Branch, mirror: str) -> str:
  return f"deb {mirror} {branch.value} {COMPONENTS}\n"


def update_packages() -> list[str]:
  return ["apt-get", "update"]


def install_packages(packages: list[str]) -> list[str]:
  return ["apt-get", "install", "-y", *packages]


def remove_packages(packages: list[str]) -> list[str]:
  return ["apt-get", "remove", "-y", *packages]


def locale_settings(locale: str) -> list[tuple[str, str]]:
  charset = locale.split(".", 1)[1] if "." in locale else "UTF-8"
  return [
    ("/etc/locale.gen", f"{locale} {charset}\n"),
    ("/etc/default/locale", f"LANG={locale}\n"),
  ]


def timezone_commands(timezone: str) -> list[list[str]]:
  return [["ln", "-sf", f"/usr/share/zoneinfo/{timezone}", "/etc/localtime"]]


def hosts_file(hostname: str) -> str:
  return f"127.0.0.1 localhost\n127.0.1.1 {hostname}\n::1 localhost ip6-localhost ip6-loopback\n"


def create_user_command(username: str) -> list[str]:
  return ["useradd", "-m", "-G", "sudo,audio,video", "-s", "/bin/bash", username]


def bootloader_install_command(disk: str, uefi: bool, distributor: str) -> list[str]:
  if uefi:
    return [
      "grub-install",
      "--target=x86_64-efi",
      "--efi-directory=/boot/efi",
      f"--bootloader-id={distributor}",
      disk,
    ]
  return ["grub-install", "--target=i386-pc", disk]


def bootloader_config_command() -> list[str]:
  return ["update-grub"]
