"""
External operations.

Every effect the installer has on the host goes through a Runner: the pipeline
describes what to run as an Operation and only reacts to the success flag and
the captured output of the result.
"""

import logging
import os
import shlex
import subprocess
from collections.abc import Callable
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass, field
from typing import Final, Protocol

from rich.console import Console
from rich.markup import escape

console = Console()
logger = logging.getLogger(__name__)

BASE_ENV: Final = {"DEBIAN_FRONTEND": "noninteractive", "LC_ALL": "C"}


@dataclass(frozen=True)
class Operation:
  """
  A single external action.

  root: run the command inside this directory with chroot.
  stdin: data written to the command's standard input.
  secret: stdin carries credentials and must never be logged or displayed.
  interactive: the command needs the operator's terminal (e.g. cfdisk).
  """

  name: str
  argv: list[str]
  stdin: str | None = None
  root: str | None = None
  env: dict[str, str] = field(default_factory=dict)
  interactive: bool = False
  secret: bool = False

  @property
  def command(self) -> list[str]:
    if self.root is None:
      return list(self.argv)
    return ["chroot", self.root, *self.argv]

  def describe(self) -> str:
    text = " ".join(shlex.quote(arg) for arg in self.command)
    if self.stdin is not None:
      text += " (with secret stdin)" if self.secret else " (with stdin data)"
    return text


@dataclass(frozen=True)
class OperationResult:
  success: bool
  returncode: int
  output: str = ""


class Runner(Protocol):
  def run(self, operation: Operation) -> OperationResult: ...


class CommandRunner:
  """Executes operations as host processes, capturing their output."""

  def __init__(
    self,
    dry_run: bool = False,
    on_interactive: Callable[[], AbstractContextManager[object]] | None = None,
    on_dry_run: Callable[[str], None] | None = None,
  ) -> None:
    self.dry_run: bool = dry_run
    self.base_env: dict[str, str] = dict(BASE_ENV)
    self.on_interactive: Callable[[], AbstractContextManager[object]] = on_interactive or nullcontext
    self.on_dry_run: Callable[[str], None] = on_dry_run or console.print

  def run(self, operation: Operation) -> OperationResult:
    logger.info("CMD %s", operation.describe())

    if self.dry_run:
      self.on_dry_run(f"[bold green][dim][DRY RUN] {escape(operation.describe())}[/][/]")
      return OperationResult(success=True, returncode=0)

    env = {**os.environ, **self.base_env, **operation.env}
    try:
      if operation.interactive:
        with self.on_interactive():
          process = subprocess.run(operation.command, env=env, check=False)
        return OperationResult(success=process.returncode == 0, returncode=process.returncode)

      process = subprocess.run(
        operation.command,
        input=operation.stdin,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        env=env,
        check=False,
      )

    except FileNotFoundError as e:
      logger.error("Command not found: %s", e.filename)
      return OperationResult(success=False, returncode=127, output=f"command not found: {e.filename}")

    if process.stdout:
      logger.debug("OUTPUT %s", process.stdout.strip())

    if process.returncode != 0:
      logger.error("Command '%s' failed with exit code %d", operation.name, process.returncode)

    return OperationResult(
      success=process.returncode == 0,
      returncode=process.returncode,
      output=process.stdout or "",
    )
