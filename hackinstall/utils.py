import json
import os
import sys
from functools import cache
from typing import Any

from rich.console import Console

from hackinstall.types import DefaultsConfig
from hackinstall.validations import validate_choices_json, validate_defaults_json

console = Console()


def get_resource_path(relative_path: str) -> str:
  """
  Get absolute path to a resource shipped inside the package.
  For frozen single-file builds, resources live next to the executable.
  """
  if getattr(sys, "frozen", False):
    base_path = getattr(sys, "_MEIPASS", os.path.dirname(sys.executable))
  else:
    base_path = os.path.dirname(os.path.abspath(__file__))

  return os.path.join(base_path, relative_path)


@cache
def _load_config() -> dict[str, Any]:
  config_file = get_resource_path("config.json")
  try:
    with open(config_file, "r") as f:
      data = json.load(f)

  except (FileNotFoundError, json.JSONDecodeError) as e:
    console.print(f"\n[bold red]Error loading config.json: {e}[/]")
    sys.exit(1)

  if not isinstance(data, dict):
    console.print("\n[bold red]Invalid config.json format: top level must be an object[/]")
    sys.exit(1)

  return data


def load_defaults() -> DefaultsConfig:
  """Load default values from the packaged config.json file."""
  try:
    data = validate_defaults_json(_load_config().get("defaults"))

  except (KeyError, ValueError) as e:
    console.print(f"\n[bold red]Invalid config.json format: {e}[/]")
    sys.exit(1)

  return DefaultsConfig(**{k: str(v) for k, v in data.items()})


def load_choices() -> tuple[list[str], list[str]]:
  """Return the (timezones, locales) offered by the wizard."""
  try:
    data = validate_choices_json(_load_config().get("choices"))

  except (KeyError, ValueError) as e:
    console.print(f"\n[bold red]Invalid config.json format: {e}[/]")
    sys.exit(1)

  return [str(tz) for tz in data["timezones"]], [str(loc) for loc in data["locales"]]


def load_gpu_packages() -> dict[str, list[str]]:
  """Driver package sets keyed by GPU vendor value."""
  gpu_config = _load_config().get("gpu_packages", {})
  if not isinstance(gpu_config, dict):
    return {}

  # fmt: off
  return {
    vendor: [str(pkg) for pkg in pkgs]
    for vendor, pkgs in gpu_config.items()
    if isinstance(pkgs, list)
  }
  # fmt: on


def partition_path(disk: str, number: int) -> str:
  """
  Build the device path of a partition on disk.

  Devices whose name ends in a digit (nvme0n1, mmcblk0, loop0) use a "p"
  separator before the partition number.
  """
  separator = "p" if disk[-1:].isdigit() else ""
  return f"{disk}{separator}{number}"


def format_step_name(name: str) -> str:
  """
  Format step name from function name string.

  Args:
      name: Step function name

  Returns:
      Formatted step name (e.g., "Partition")
  """
  return name.replace("step_", "").replace("_", " ").title().lstrip("0123456789 ")
