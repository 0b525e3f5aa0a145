"""
Switchboard common package.
"""

from switchboard.common.errors import ConfigurationError, SessionClosedError, SwitchboardError
from switchboard.common.logs import get_logger, setup_logging

__all__ = [
  "ConfigurationError",
  "SessionClosedError",
  "SwitchboardError",
  "get_logger",
  "setup_logging",
]
