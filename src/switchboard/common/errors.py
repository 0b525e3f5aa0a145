"""Exception hierarchy shared by Switchboard components."""


class SwitchboardError(Exception):
  """Base class for all Switchboard errors."""


class ConfigurationError(SwitchboardError, ValueError):
  """Raised when the configuration file cannot be loaded or is invalid."""


class SessionClosedError(SwitchboardError):
  """Raised when a call session is written to after it has ended."""

  def __init__(self, call_id: str):
    super().__init__(f"Call session {call_id} has already ended")
    self.call_id = call_id
