"""
Installation pipeline driver.

Runs the phases from steps.py strictly in order against a frozen installer
state. The first failing operation ends the run: the failure text is stored
on the state, no later phase runs and nothing already applied is undone.
"""

import logging
from collections.abc import Callable

from hackinstall.context import InstallerState
from hackinstall.exceptions import InstallError, PreconditionError
from hackinstall.operations import Runner
from hackinstall.steps import InstallContext, get_install_steps
from hackinstall.types import InstallOptions, PipelineStatus
from hackinstall.utils import format_step_name
from hackinstall.validations import validate_install_fields

logger = logging.getLogger(__name__)

Phase = Callable[[InstallContext], str]


class Pipeline:
  def __init__(self, runner: Runner, options: InstallOptions, steps: list[Phase] | None = None) -> None:
    self.runner: Runner = runner
    self.options: InstallOptions = options
    self.steps: list[Phase] = steps if steps is not None else get_install_steps()

  def run(self, state: InstallerState) -> PipelineStatus:
    """Install once. Raises FrozenStateError when the state was already handed to a pipeline."""
    state.begin_install()
    logger.info("Installation started")

    try:
      problems = validate_install_fields(state.fields)
      if problems:
        raise PreconditionError("Cannot start installation: " + "; ".join(problems))

      ctx = InstallContext(state, self.runner, self.options)
      logger.info("Disk layout: %s", ctx.layout)

      for step in self.steps:
        name = format_step_name(step.__name__)
        state.enter_phase(name)
        logger.info("Phase started: %s", name)

        try:
          marker = step(ctx)

        except InstallError as e:
          e.phase = e.phase or name
          raise

        state.append_progress(marker)
        logger.info("Phase finished: %s (%s)", name, marker)

    except InstallError as e:
      logger.error("Installation failed in phase '%s': %s", e.phase or "preflight", e)
      state.fail(str(e))
      return state.status

    except Exception as e:
      logger.exception("Unexpected error during installation")
      state.fail(f"Unexpected error: {e}")
      return state.status

    state.complete()
    logger.info("Installation finished")
    return state.status
