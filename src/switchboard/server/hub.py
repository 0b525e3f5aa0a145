"""
Process-wide registry of connected client sockets and fan-out of broadcast events.
"""

import asyncio
from enum import StrEnum
from typing import Protocol

from switchboard.common import get_logger
from switchboard.wire import OutboundMessage, Role, serialize_message


class ClientSocket(Protocol):
  async def send(self, message: str) -> None: ...


class Audience(StrEnum):
  """Who a broadcast event is meant for."""

  EVERYONE = "everyone"
  MANAGERS = "managers"


class BroadcastHub:
  """
  Tracks every open client connection together with its role, and publishes events to them.

  Membership changes and fan-out both happen on the event loop thread; publish() snapshots the
  membership before sending, so clients joining or leaving mid-broadcast are safe.
  """

  def __init__(self, role_filtering: bool = False) -> None:
    """
    :param role_filtering: When true, manager-only events reach only clients whose role is
        manager. When false every event reaches every connected client.
    """
    self.role_filtering = role_filtering
    self.members: dict[ClientSocket, Role | None] = {}
    self.logger = get_logger("hub")

  def add(self, websocket: ClientSocket, role: Role | None = None) -> None:
    self.members[websocket] = role
    self.logger.debug("Client added", client=id(websocket), total=len(self.members))

  def remove(self, websocket: ClientSocket) -> None:
    if websocket in self.members:
      del self.members[websocket]
      self.logger.debug("Client removed", client=id(websocket), total=len(self.members))

  def set_role(self, websocket: ClientSocket, role: Role) -> None:
    if websocket in self.members:
      self.members[websocket] = role

  def __len__(self) -> int:
    return len(self.members)

  def recipients(self, audience: Audience = Audience.EVERYONE) -> list[ClientSocket]:
    """Connections that should receive an event for ``audience``."""
    if audience is Audience.EVERYONE or not self.role_filtering:
      return list(self.members)
    return [ws for ws, role in self.members.items() if role is Role.MANAGER]

  async def publish(
    self, message: OutboundMessage, audience: Audience = Audience.EVERYONE
  ) -> int:
    """
    Serialize ``message`` once and send it to every matching connection.

    :returns: Number of connections the message was delivered to.
    """
    recipients = self.recipients(audience)
    if not recipients:
      return 0

    payload = serialize_message(message)
    results = await asyncio.gather(*(self._deliver(ws, payload) for ws in recipients))
    delivered = sum(results)

    self.logger.debug(
      "Broadcast sent",
      message_type=message.type,
      audience=audience,
      delivered=delivered,
      failed=len(recipients) - delivered,
    )
    return delivered

  async def send_to(self, websocket: ClientSocket, message: OutboundMessage) -> bool:
    """Send a message to one connection, reporting rather than raising on failure."""
    return await self._deliver(websocket, serialize_message(message))

  async def _deliver(self, websocket: ClientSocket, payload: str) -> bool:
    try:
      await websocket.send(payload)
      return True
    except Exception as e:
      self.logger.warning("Failed to send message to websocket", client=id(websocket), error=str(e))
      return False
