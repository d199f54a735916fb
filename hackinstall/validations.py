"""
Validation functions for hackinstall.

This module contains the validation functions used by the wizard, the command
line parser and the installation pipeline: usernames, hostnames, locales,
timezones, disk paths, config.json data and install preconditions.
"""

from __future__ import annotations

import re
import urllib.parse
from typing import TYPE_CHECKING, Any

from hackinstall.editions import forced_filesystem

if TYPE_CHECKING:
  from hackinstall.context import Fields


# =============================================================================
# Validation Functions
# =============================================================================
# Functions that validate data and return boolean or list of issues


def validate_username(username: str) -> bool:
  max_len = 32

  if not username:
    return False
  if username[0] == "-":
    return False
  if len(username) > max_len:
    return False
  if username.isdigit():
    return False

  def _make_username_pattern() -> re.Pattern[str]:
    start_chars = "a-z_"
    body_chars = start_chars + "0-9-"
    pattern = rf"^[{start_chars}][{body_chars}]{{0,{max_len - 1}}}$"
    return re.compile(pattern)

  pattern = _make_username_pattern()
  return bool(pattern.fullmatch(username))


def validate_password(password: str) -> bool:
  return len(password) > 0


def validate_url(url: str) -> bool:
  """Validate that a URL is properly formatted."""
  if not url:
    return False

  result = urllib.parse.urlparse(url)
  return bool(result.scheme and result.netloc)


def validate_timezone(timezone: str) -> bool:
  """Validate timezone against common timezone patterns."""
  if timezone == "UTC":
    return True

  if "/" not in timezone:
    return False

  parts = timezone.split("/")
  if len(parts) != 2:
    return False

  region, city = parts
  if not region.replace("_", "").isalpha() or not city.replace("_", "").isalpha():
    return False

  return True


def validate_locale(locale: str) -> bool:
  """Validate locale format - supports various glibc locale formats."""
  if not locale:
    return False

  # Allow C/POSIX locales
  if locale in ("C", "POSIX"):
    return True

  # Basic pattern: language[_territory][.encoding][@modifier]
  # Examples: en, en_US, en_US.UTF-8, en_US@euro, de_DE.ISO-8859-1@euro
  pattern = r"^[a-z]{2,3}(_[A-Z]{2})?(\.[A-Za-z0-9_-]+)?(@[A-Za-z0-9_-]+)?$"
  return bool(re.match(pattern, locale))


def validate_hostname(hostname: str) -> bool:
  """Validate hostname format according to RFC 1123."""
  if not hostname or len(hostname) > 253:
    return False

  labels = hostname.split(".")

  def is_valid_label(label: str) -> bool:
    return (
      bool(label)
      and len(label) <= 63
      and label[0].isalnum()
      and label[-1].isalnum()
      and all(c.isalnum() or c == "-" for c in label)
    )

  return all(is_valid_label(label) for label in labels)


def validate_disk_path(disk: str) -> bool:
  """A whole-disk device path such as /dev/sda or /dev/nvme0n1."""
  return bool(re.fullmatch(r"/dev/[A-Za-z0-9/_-]+", disk))


def validate_mount_point(path: str) -> bool:
  return path.startswith("/") and path.rstrip("/") != ""


def validate_populate(policy: str) -> bool:
  return policy in ("bootstrap", "copy")


def validate_defaults_json(data: Any) -> dict[str, Any]:
  """Validate and return defaults JSON data with proper typing."""
  if not isinstance(data, dict):
    raise ValueError("Defaults JSON must be an object")

  required_keys = {
    "hostname",
    "locale",
    "timezone",
    "mirror",
    "populate",
    "mount_point",
    "distributor",
    "pool_name",
    "kernel_marker",
    "overlay",
  }
  missing_keys = required_keys - data.keys()
  if missing_keys:
    raise KeyError(f"Missing required keys: {sorted(missing_keys)}")

  return data


def validate_choices_json(data: Any) -> dict[str, Any]:
  """Validate and return the wizard choice lists."""
  if not isinstance(data, dict):
    raise ValueError("Choices JSON must be an object")

  for key in ("timezones", "locales"):
    if key not in data:
      raise KeyError(f"Missing required key: {key}")

    if not isinstance(data[key], list) or not data[key]:
      raise ValueError(f"{key} field must be a non-empty list")

  return data


def validate_cli_arguments(
  populate: str,
  mirror: str,
  mount_point: str,
) -> list[str]:
  """
  Validate all command line arguments and return list of error messages.

  Returns empty list if all arguments are valid, list of error messages otherwise.
  """
  # Define validators as (condition, error_message) tuples
  validators = [
    (validate_populate(populate), f"Invalid populate policy: {populate} (must be 'bootstrap' or 'copy')"),
    (validate_url(mirror), f"Invalid mirror URL: {mirror}"),
    (validate_mount_point(mount_point), f"Invalid mount point: {mount_point} (must be an absolute path other than /)"),
  ]

  return [msg for valid, msg in validators if not valid]


def validate_install_fields(fields: Fields) -> list[str]:
  """
  Check that every answer the pipeline depends on is present and consistent.

  Returns empty list if the installation can start, list of reasons otherwise.
  """
  validators = [
    (validate_username(fields.username), "username is missing or invalid"),
    (validate_password(fields.password), "user password is missing"),
    (validate_password(fields.root_password), "root password is missing"),
    (validate_hostname(fields.hostname), f"invalid hostname: {fields.hostname!r}"),
    (validate_locale(fields.locale), f"invalid locale: {fields.locale!r}"),
    (validate_timezone(fields.timezone), f"invalid timezone: {fields.timezone!r}"),
    (validate_disk_path(fields.disk), f"target disk is missing or invalid: {fields.disk!r}"),
    (fields.edition is not None, "edition is not selected"),
    (fields.branch is not None, "Debian branch is not selected"),
    (fields.filesystem is not None, "filesystem is not selected"),
  ]

  if fields.edition is not None and fields.filesystem is not None:
    required = forced_filesystem(fields.edition)
    if required not in (None, fields.filesystem):
      message = f"{fields.edition.value} edition requires {required.value}, not {fields.filesystem.value}"
      validators.append((False, message))

  return [msg for valid, msg in validators if not valid]
