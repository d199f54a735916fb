import logging
from pathlib import Path

DEFAULT_LOG_PATH = "/var/log/hackinstall.log"


def configure_logging(log_path: str = DEFAULT_LOG_PATH, level: int = logging.DEBUG) -> str:
  """
  Send installer logs to a file and return the path actually used.

  The terminal is owned by the rich display, so no console handler is added.
  When log_path cannot be written (read-only live media), the log goes to the
  working directory instead.
  """
  root = logging.getLogger()
  root.setLevel(level)

  fmt = logging.Formatter(
    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S%z",
  )

  try:
    Path(log_path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path)
    chosen_path = log_path

  except OSError:
    chosen_path = str(Path.cwd() / "hackinstall.log")
    handler = logging.FileHandler(chosen_path)

  handler.setFormatter(fmt)
  root.addHandler(handler)

  logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
  return chosen_path
