#!/usr/bin/env python3

import argparse
import logging
import os
import subprocess
import sys
import threading
from argparse import Namespace
from textwrap import dedent
from typing import override

from rich.console import Console
from rich.prompt import Confirm

from hackinstall import __version__
from hackinstall.context import Environment, InstallerState
from hackinstall.logging_utils import DEFAULT_LOG_PATH, configure_logging
from hackinstall.operations import CommandRunner
from hackinstall.pipeline import Pipeline
from hackinstall.steps import get_install_steps
from hackinstall.tui import QUIT_KEY, TUI, KeyReader, decode_keys
from hackinstall.types import DefaultsConfig, InstallOptions, PipelineStatus
from hackinstall.utils import load_choices, load_defaults, load_gpu_packages
from hackinstall.validations import validate_cli_arguments
from hackinstall.wizard import Outcome, transition

console = Console()
logger = logging.getLogger("hackinstall")


class IndentedHelpFormatter(argparse.RawDescriptionHelpFormatter):
  def __init__(self, prog: str, **kwargs) -> None:
    super().__init__(prog, max_help_position=30, width=80, **kwargs)

  @override
  def _format_action_invocation(self, action: argparse.Action) -> str:
    options = action.option_strings
    if not options:
      return super()._format_action_invocation(action)

    parts: list[str] = []
    if len(options) == 1:
      parts.append(f"{'':4}{options[0]}")

    else:
      parts.append(f"{', '.join(options)}")

    if action.nargs != 0:
      default_metavar = self._get_default_metavar_for_optional(action)
      parts[-1] += f" {self._format_args(action, default_metavar)}"

    return parts[-1]


def _check_system_requirements(mount_point: str) -> None:
  """Check if the system meets installation requirements."""
  if os.geteuid() != 0:
    console.print("\n[prompt.invalid]Root privileges are required. Please re-run the installer as root.[/]")
    sys.exit(2)

  target = mount_point.rstrip("/")
  try:
    with open("/proc/mounts", "r") as f:
      # fmt: off
      mounted = any(
        len(fields) > 1 and (fields[1] == target or fields[1].startswith(f"{target}/"))
        for fields in (line.split() for line in f)
      )
      # fmt: on
  except OSError:
    return

  if mounted:
    console.print(f"\n[prompt.invalid]{target} is currently mounted or has mounted subdirectories.[/]")
    console.print("Please unmount before running the installer.")
    sys.exit(2)


def _create_argument_parser(defaults: DefaultsConfig) -> argparse.ArgumentParser:
  """Create and configure the argument parser."""
  parser = argparse.ArgumentParser(
    prog="hackinstall",
    formatter_class=IndentedHelpFormatter,
    description=dedent(f"""
      Interactive terminal installer for {defaults["distributor"]}.

      A keyboard-driven wizard collects the user account, edition,
      Debian branch, filesystem, target disk and kernel, then the
      installer erases the disk and provisions a bootable system.
    """),
    epilog=dedent("""
      Examples:
        %(prog)s --dry                         # Preview every operation
        %(prog)s --populate copy               # Copy the running live system
        %(prog)s --mirror http://ftp.de.debian.org/debian
    """),
  )

  _ = parser.add_argument(
    "-d",
    "--dry",
    action="store_true",
    help="preview installation steps without executing commands or writing files",
    dest="dry",
  )

  _ = parser.add_argument(
    "-p",
    "--populate",
    metavar="POLICY",
    type=str,
    default=defaults["populate"],
    help="how the base system is created: bootstrap or copy [default: %(default)s]",
    dest="populate",
  )

  _ = parser.add_argument(
    "-m",
    "--mirror",
    metavar="URL",
    type=str,
    default=defaults["mirror"],
    help="Debian mirror used for bootstrap and apt sources [default: %(default)s]",
    dest="mirror",
  )

  _ = parser.add_argument(
    "--mount-point",
    metavar="PATH",
    type=str,
    default=defaults["mount_point"],
    help="directory the target root is mounted on [default: %(default)s]",
    dest="mount_point",
  )

  _ = parser.add_argument(
    "--log",
    metavar="PATH",
    type=str,
    default=DEFAULT_LOG_PATH,
    help="log file location [default: %(default)s]",
    dest="log",
  )

  _ = parser.add_argument("--version", action="version", version=f"hackinstall {__version__}")

  return parser


def _create_install_options(args: Namespace, defaults: DefaultsConfig) -> InstallOptions:
  """Create typed InstallOptions from an argparse Namespace and config.json defaults."""
  return InstallOptions(
    dry=bool(getattr(args, "dry", False)),
    populate=str(args.populate),
    mirror=str(args.mirror),
    mount_point=str(args.mount_point),
    distributor=defaults["distributor"],
    pool_name=defaults["pool_name"],
    kernel_marker=defaults["kernel_marker"],
    overlay=defaults["overlay"],
    gpu_packages=load_gpu_packages(),
  )


def _run_wizard(state: InstallerState, ui: TUI) -> bool:
  """Feed key presses to the wizard. Returns False when the operator quits."""
  with KeyReader() as keys:
    while True:
      ui.update(state.snapshot())
      code = keys.read()
      if QUIT_KEY in code:
        return False

      for event in decode_keys(code):
        if transition(state, event) is Outcome.START_INSTALL:
          return True


def _run_installation(state: InstallerState, pipeline: Pipeline, ui: TUI) -> PipelineStatus:
  """Run the pipeline on a worker thread while this thread repaints the progress view."""
  worker = threading.Thread(target=pipeline.run, args=(state,), name="pipeline", daemon=True)
  worker.start()

  while worker.is_alive():
    ui.update(state.snapshot())
    worker.join(0.1)

  snapshot = state.snapshot()
  ui.update(snapshot)
  return snapshot.status


def main() -> None:
  """Main entry point for the installer."""
  defaults = load_defaults()
  parser = _create_argument_parser(defaults)
  args = parser.parse_args()
  options = _create_install_options(args, defaults)

  errors = validate_cli_arguments(
    populate=options.populate,
    mirror=options.mirror,
    mount_point=options.mount_point,
  )

  if errors:
    console.print("\n[prompt.invalid]Invalid arguments provided:[/]")
    console.print("\n".join(f" • {err}" for err in errors))
    console.print("\n[yellow]Use --help for valid options[/]")
    sys.exit(1)

  if not options.dry:
    _check_system_requirements(options.mount_point)

  log_path = configure_logging(args.log)
  logger.info("hackinstall %s starting (dry=%s, populate=%s)", __version__, options.dry, options.populate)

  timezones, locales = load_choices()
  environment = Environment.detect()
  logger.info("Environment: %s", environment)

  state = InstallerState.create(defaults, environment, timezones, locales)
  ui = TUI(dry_mode=options.dry, distributor=options.distributor, total_phases=len(get_install_steps()))
  runner = CommandRunner(dry_run=options.dry, on_interactive=ui.suspended, on_dry_run=ui.print)
  pipeline = Pipeline(runner, options)

  ui.start()
  try:
    if not _run_wizard(state, ui):
      ui.stop()
      console.print("\n[yellow]Installation cancelled. No changes were made.[/]")
      return

    status = _run_installation(state, pipeline, ui)

  finally:
    ui.stop()

  if status is PipelineStatus.FAILED:
    console.print(f"\n{state.error}", markup=False, style="prompt.invalid")
    console.print("\n[prompt.invalid]Installation cannot continue.[/]")
    console.print(f"See {log_path} for the full command log.")
    if options.dry:
      console.print("\n[prompt.invalid]This error occurred during dry run - actual installation might fail.[/]")
    sys.exit(1)

  if options.dry:
    console.print("\n[bold green]Dry run completed successfully![/]")
    console.print("[bold green]Run without --dry flag to perform actual installation.[/]")
    return

  console.print("\n[bold green]Installation completed successfully![/]")
  if Confirm.ask("Reboot now?", default=False):
    subprocess.run(["reboot"], check=False)


def run() -> None:
  try:
    main()

  except KeyboardInterrupt:
    console.print("\n[prompt.invalid]Installation interrupted. Exiting...[/]")
    sys.exit(130)

  except Exception as e:
    console.print(f"\n[prompt.invalid]Fatal error: {e}[/]")
    sys.exit(1)


if __name__ == "__main__":
  run()
