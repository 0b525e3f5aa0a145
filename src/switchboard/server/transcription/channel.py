"""
Streaming connection from one audio source of a call to the speech-to-text provider.

Audio Flow:
  Agent browser → SessionRelay → TranscriptionChannel → provider socket
  provider socket → TranscriptionChannel → TranscriptUpdate → SessionRelay

Frames that arrive before the provider handshake completes are held in a bounded pending queue
and flushed, in order, as soon as the connection opens. Once the queue has been flushed it is
never used again: every later frame goes straight to the socket.

Error Handling:
  - Connection failures, provider errors and unexpected payloads are logged, never raised
  - A failed or closed channel ignores further frames
  - close() is idempotent and safe on a channel that never connected
"""

import asyncio
import contextlib
import json
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from switchboard.common import get_logger
from switchboard.server.config import FinalizationPolicy, TranscriptionConfig
from switchboard.server.transcription.models import parse_provider_event

_CLOSE_STREAM = json.dumps({"type": "CloseStream"})
_KEEP_ALIVE = json.dumps({"type": "KeepAlive"})

_PROVIDER_ERRORS = (WebSocketException, OSError, TimeoutError)


class ProviderConnection(Protocol):
  """The subset of a websockets client connection the channel relies on."""

  async def send(self, message: str | bytes) -> None: ...

  async def close(self) -> None: ...

  def __aiter__(self) -> AsyncIterator[str | bytes]: ...


type Connector = Callable[[], Awaitable[ProviderConnection]]


@dataclass(frozen=True)
class TranscriptUpdate:
  """Transcript text accepted from the provider for one source."""

  source: str
  text: str
  final: bool


type UpdateHandler = Callable[[TranscriptUpdate], Awaitable[None]]


def provider_connector(config: TranscriptionConfig) -> Connector:
  """Build a connector that opens an authenticated provider socket using ``config``."""

  async def _connect() -> ProviderConnection:
    headers = {"Authorization": f"Token {config.api_key}"} if config.api_key else None
    return await connect(
      config.listen_url(),
      additional_headers=headers,
      open_timeout=config.open_timeout,
    )

  return _connect


class TranscriptionChannel:
  """Bridge between one audio source's byte stream and its provider connection."""

  def __init__(
    self,
    source: str,
    call_id: str,
    config: TranscriptionConfig,
    on_update: UpdateHandler,
    connector: Connector | None = None,
  ) -> None:
    """
    :param source: Audio source tag this channel carries (e.g. "mic").
    :param call_id: Call the channel belongs to, for log correlation.
    :param config: Provider connection settings.
    :param on_update: Coroutine called with every accepted transcript update.
    :param connector: Opens the provider connection. Defaults to a websockets connection.
    """
    self.source = source
    self.call_id = call_id
    self.config = config
    self._on_update = on_update
    self._connect = connector or provider_connector(config)
    self.logger = get_logger(f"dg/{source}", call_id=call_id)

    self._connection: ProviderConnection | None = None
    self._pending: deque[bytes] = deque()
    self._dropped_frames = 0
    self._task: asyncio.Task | None = None
    self._keepalive_task: asyncio.Task | None = None
    self._close_requested = False

    self.ready = False
    self.closed = False

  @property
  def pending_frames(self) -> int:
    return len(self._pending)

  def open(self) -> None:
    """Start connecting in the background. Frames sent meanwhile are queued."""
    if self._task is not None or self.closed:
      return
    self._task = asyncio.create_task(self._run())
    self._task.set_name(f"transcription_{self.source}_{self.call_id}")

  async def send(self, frame: bytes) -> None:
    """Forward one audio frame, or queue it if the provider is not ready yet."""
    if self.closed:
      return

    if not self.ready:
      if len(self._pending) >= self.config.max_pending_frames:
        self._dropped_frames += 1
        if self._dropped_frames == 1:
          self.logger.warning(
            "Pending frame limit reached, dropping audio",
            limit=self.config.max_pending_frames,
          )
        return
      self._pending.append(frame)
      return

    if self._connection is None:
      return
    try:
      await self._connection.send(frame)
    except _PROVIDER_ERRORS as e:
      self.logger.warning("Failed to forward audio", error=str(e))
      self.closed = True

  async def close(self) -> None:
    """
    Close the provider connection.

    Asks the provider to finish the stream, waits up to ``drain_timeout`` for trailing final
    results, then closes the socket. Safe to call any number of times.
    """
    if self._close_requested:
      return
    self._close_requested = True
    self.closed = True
    self._pending.clear()
    await self._stop_keepalive()

    task = self._task
    if task is None:
      return

    if not self.ready or self._connection is None:
      # Still connecting or flushing; nothing worth draining
      await self._cancel(task)
      return

    try:
      await self._connection.send(_CLOSE_STREAM)
      await asyncio.wait({task}, timeout=self.config.drain_timeout)
    except _PROVIDER_ERRORS as e:
      self.logger.debug("Provider did not accept close request", error=str(e))
    finally:
      await self._close_connection()
      await self._cancel(task)

  async def _run(self) -> None:
    try:
      await self._open_and_read()
    finally:
      self.closed = True
      await self._stop_keepalive()
      await self._close_connection()
      self.logger.info("Provider connection closed", dropped_frames=self._dropped_frames)

  async def _open_and_read(self) -> None:
    try:
      self._connection = await self._connect()
      flushed = await self._flush()
    except _PROVIDER_ERRORS as e:
      self.logger.error("Provider connection failed", error=str(e))
      return

    self.logger.info("Provider connection open", flushed_frames=flushed)

    if self.config.keepalive_interval:
      self._keepalive_task = asyncio.create_task(
        self._keepalive_loop(self.config.keepalive_interval)
      )

    try:
      async for message in self._connection:
        await self._handle_message(message)
    except ConnectionClosed as e:
      self.logger.warning("Provider connection dropped", error=str(e))
    except (WebSocketException, OSError) as e:
      self.logger.error("Provider connection error", error=str(e))

  async def _flush(self) -> int:
    """Send every queued frame in receipt order, then switch to direct forwarding."""
    if self._connection is None:
      return 0
    flushed = 0
    while self._pending:
      await self._connection.send(self._pending.popleft())
      flushed += 1
    # No await between the empty check and this assignment, so no frame can slip in between
    self.ready = True
    return flushed

  async def _handle_message(self, message: str | bytes) -> None:
    result = parse_provider_event(message)
    if result is None:
      self.logger.debug("Ignoring unparseable provider message")
      return

    text = result.text
    if not text:
      return

    if not result.is_final and self.config.finalization is FinalizationPolicy.FINAL_ONLY:
      return

    update = TranscriptUpdate(source=self.source, text=text, final=result.is_final)
    try:
      await self._on_update(update)
    except Exception:
      self.logger.exception("Transcript update handler failed")

  async def _keepalive_loop(self, interval: float) -> None:
    while not self.closed and self._connection is not None:
      await asyncio.sleep(interval)
      if self.closed:
        break
      try:
        await self._connection.send(_KEEP_ALIVE)
      except _PROVIDER_ERRORS:
        break

  async def _stop_keepalive(self) -> None:
    task, self._keepalive_task = self._keepalive_task, None
    if task is not None and task is not asyncio.current_task():
      await self._cancel(task)

  async def _close_connection(self) -> None:
    if self._connection is None:
      return
    try:
      await self._connection.close()
    except _PROVIDER_ERRORS as e:
      self.logger.debug("Error closing provider connection", error=str(e))

  @staticmethod
  async def _cancel(task: asyncio.Task) -> None:
    if task.done():
      return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
      await task
