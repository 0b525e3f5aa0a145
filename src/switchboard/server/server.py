import asyncio
from collections.abc import AsyncIterator
from typing import Protocol

from websockets.exceptions import ConnectionClosed

from switchboard.common import get_logger
from switchboard.server.auth import CredentialTable
from switchboard.server.config import SwitchboardConfig
from switchboard.server.hub import BroadcastHub, ClientSocket
from switchboard.server.relay import SessionRelay
from switchboard.server.session import CallSession
from switchboard.server.summarizer import Summarizer
from switchboard.server.transcription import (
  Connector,
  TranscriptionChannel,
  UpdateHandler,
  provider_connector,
)
from switchboard.server.websocket import WebSocketServer

MAX_MESSAGE_SIZE = 1 << 20
"""Largest client frame accepted, in bytes. Audio frames are a few kilobytes."""


class ClientStream(ClientSocket, Protocol):
  def __aiter__(self) -> AsyncIterator[str | bytes]: ...


class RelayServer:
  """
  Accepts client connections and runs one SessionRelay per connection.

  The hub, credential table, summarizer and provider connector are shared by every connection.
  """

  def __init__(
    self,
    config: SwitchboardConfig,
    connector: Connector | None = None,
    summarizer: Summarizer | None = None,
  ):
    self.config = config
    self.hub = BroadcastHub(role_filtering=config.relay.role_filtering)
    self.credentials = CredentialTable(config.users) if config.relay.auth_required else None
    self.summarizer = summarizer or Summarizer(config.summary)
    self.connector = connector or provider_connector(config.transcription)
    self.logger = get_logger("server")

  def open_channel(
    self, source: str, session: CallSession, on_update: UpdateHandler
  ) -> TranscriptionChannel:
    return TranscriptionChannel(
      source,
      session.call_id,
      self.config.transcription,
      on_update,
      connector=self.connector,
    )

  def create_relay(self, websocket: ClientSocket) -> SessionRelay:
    return SessionRelay(
      websocket,
      self.hub,
      self.summarizer,
      self.config.relay,
      channel_factory=self.open_channel,
      credentials=self.credentials,
    )

  async def handle_connection(self, websocket: ClientStream) -> None:
    """
    Serve one client until it disconnects.

    Text frames are control messages; binary frames are audio. Whatever way the connection
    ends, the relay is closed so a running call is concluded and summarized.
    """
    self.hub.add(websocket)
    relay = self.create_relay(websocket)
    self.logger.info("Client connected", client=id(websocket), clients=len(self.hub))

    try:
      async for message in websocket:
        if isinstance(message, str):
          await relay.handle_text(message)
        else:
          await relay.handle_binary(bytes(message))
    except ConnectionClosed as e:
      self.logger.info("Client connection dropped", client=id(websocket), error=str(e))
    finally:
      self.hub.remove(websocket)
      await relay.close()
      self.logger.info("Client disconnected", client=id(websocket), clients=len(self.hub))

  async def run(self, host: str, port: int, stop: asyncio.Future | None = None) -> None:
    """
    Run the relay server.
    """
    self.config.pretty_print()
    websocket_server = WebSocketServer(
      self.handle_connection, host, port, max_size=MAX_MESSAGE_SIZE
    )
    try:
      await websocket_server.start(stop)
    finally:
      await self.summarizer.aclose()
