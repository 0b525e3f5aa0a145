"""Static credential table."""

import hmac

from switchboard.server.config import UserEntry
from switchboard.wire import Role


class CredentialTable:
  def __init__(self, users: dict[str, UserEntry]) -> None:
    self._users = dict(users)

  def __len__(self) -> int:
    return len(self._users)

  def authenticate(self, username: str, password: str) -> Role | None:
    """Return the user's role if the credentials match, otherwise None."""
    entry = self._users.get(username)
    if entry is None:
      return None
    if not hmac.compare_digest(entry.password.encode(), password.encode()):
      return None
    return entry.role
