"""In-memory stand-ins for client sockets, the transcription provider and the summary provider."""

import asyncio
import json

import httpx
import pytest
from websockets.exceptions import ConnectionClosedOK

from switchboard.server.config import RelayConfig, SummaryConfig, TranscriptionConfig
from switchboard.server.hub import BroadcastHub
from switchboard.server.relay import SessionRelay
from switchboard.server.summarizer import Summarizer
from switchboard.server.transcription import TranscriptionChannel


async def settle(rounds: int = 10) -> None:
  """Let pending tasks run."""
  for _ in range(rounds):
    await asyncio.sleep(0)


def provider_result(text: str, is_final: bool = True) -> dict:
  """A provider result event shaped like the streaming API's ``Results`` message."""
  return {
    "type": "Results",
    "is_final": is_final,
    "speech_final": is_final,
    "channel": {"alternatives": [{"transcript": text, "confidence": 0.97}]},
  }


class FakeClientSocket:
  """A browser connection: records what the server sends, replays what the client sent."""

  def __init__(self, incoming: list[str | bytes] | None = None, fail: bool = False):
    self.sent: list[str] = []
    self.fail = fail
    self._incoming = list(incoming or [])

  async def send(self, message: str) -> None:
    if self.fail:
      raise ConnectionError("socket is closing")
    self.sent.append(message)

  def __aiter__(self):
    return self._replay()

  async def _replay(self):
    for message in self._incoming:
      yield message

  def events(self, event_type: str | None = None) -> list[dict]:
    decoded = [json.loads(message) for message in self.sent]
    if event_type is None:
      return decoded
    return [event for event in decoded if event["type"] == event_type]


class FakeProviderConnection:
  """A provider socket. Results pushed with push() are delivered to the channel in order."""

  def __init__(self):
    self.sent: list[str | bytes] = []
    self.closed = False
    self._inbox: asyncio.Queue[str | None] = asyncio.Queue()

  @property
  def audio(self) -> list[bytes]:
    return [message for message in self.sent if isinstance(message, bytes)]

  @property
  def control(self) -> list[dict]:
    return [json.loads(message) for message in self.sent if isinstance(message, str)]

  def push(self, payload: dict | str) -> None:
    self._inbox.put_nowait(json.dumps(payload) if isinstance(payload, dict) else payload)

  def drop(self) -> None:
    """Simulate the provider closing the stream."""
    self._inbox.put_nowait(None)

  async def send(self, message: str | bytes) -> None:
    if self.closed:
      raise ConnectionClosedOK(None, None)
    self.sent.append(message)
    if isinstance(message, str) and json.loads(message).get("type") == "CloseStream":
      self.drop()

  async def close(self) -> None:
    self.closed = True
    self.drop()

  def __aiter__(self):
    return self

  async def __anext__(self) -> str:
    item = await self._inbox.get()
    if item is None:
      raise StopAsyncIteration
    return item


class FakeConnector:
  """Opens FakeProviderConnections, optionally held back until release() or failing."""

  def __init__(self, hold: bool = False, error: Exception | None = None):
    self.connections: list[FakeProviderConnection] = []
    self.error = error
    self._gate = asyncio.Event()
    if not hold:
      self._gate.set()

  def release(self) -> None:
    self._gate.set()

  async def __call__(self) -> FakeProviderConnection:
    await self._gate.wait()
    if self.error is not None:
      raise self.error
    connection = FakeProviderConnection()
    self.connections.append(connection)
    return connection


class GeminiStub:
  """httpx transport answering generateContent requests and recording their prompts."""

  def __init__(self, reply: dict | None = None, status_code: int = 200):
    self.reply = reply or {"candidates": [{"content": {"parts": [{"text": "Great call."}]}}]}
    self.status_code = status_code
    self.prompts: list[str] = []

  def __call__(self, request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    self.prompts.append(body["contents"][0]["parts"][0]["text"])
    return httpx.Response(self.status_code, json=self.reply)

  def summarizer(self) -> Summarizer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(self))
    return Summarizer(SummaryConfig(api_key="test-key"), client=client)


class RelayHarness:
  """A SessionRelay wired to fakes, with handles on every provider connection it opens."""

  def __init__(
    self,
    relay_config: RelayConfig | None = None,
    transcription_config: TranscriptionConfig | None = None,
    gemini: GeminiStub | None = None,
    credentials=None,
    hold_connections: bool = False,
  ):
    self.client = FakeClientSocket()
    self.manager = FakeClientSocket()
    self.hub = BroadcastHub(role_filtering=bool(relay_config and relay_config.role_filtering))
    self.hub.add(self.client)
    self.hub.add(self.manager)
    self.gemini = gemini or GeminiStub()
    self.connector = FakeConnector(hold=hold_connections)
    self.transcription_config = transcription_config or TranscriptionConfig(api_key="test-key")
    self.channels: dict[str, TranscriptionChannel] = {}
    self.relay = SessionRelay(
      self.client,
      self.hub,
      self.gemini.summarizer(),
      relay_config or RelayConfig(),
      channel_factory=self._open_channel,
      credentials=credentials,
    )

  def _open_channel(self, source, session, on_update) -> TranscriptionChannel:
    channel = TranscriptionChannel(
      source, session.call_id, self.transcription_config, on_update, connector=self.connector
    )
    self.channels[source] = channel
    return channel

  def provider(self, source: str) -> FakeProviderConnection:
    """The provider connection opened for ``source``."""
    channel = self.channels[source]
    return channel._connection  # type: ignore[return-value]

  async def send_json(self, payload: dict) -> None:
    await self.relay.handle_text(json.dumps(payload))


@pytest.fixture
def harness():
  return RelayHarness()
