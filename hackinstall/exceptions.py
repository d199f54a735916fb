class InstallError(Exception):
  """Base exception for failures that end an installation run."""

  def __init__(self, message: str, phase: str = "") -> None:
    super().__init__(message)
    self.phase = phase


class OperationError(InstallError):
  """An external operation returned a non-success outcome."""


class PreconditionError(InstallError):
  """Required settings are missing or inconsistent before a phase can run."""


class FrozenStateError(Exception):
  """Raised when wizard answers are changed after installation has started."""
