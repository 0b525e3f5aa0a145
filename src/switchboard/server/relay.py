"""
Per-connection call lifecycle.

A SessionRelay owns everything one client connection does: login, the call it is running, the
transcription channels of that call, and the routing of binary audio frames to those channels.

States:
  UNAUTHENTICATED → IDLE ⇄ IN_CALL → CLOSED
  (UNAUTHENTICATED is skipped when the deployment has no login gate)

Ending a call, by ``agent_stop`` or by disconnecting, detaches the call from the relay at once
and hands it to a conclusion task that closes the channels, summarizes the transcript and
broadcasts the summary. close() waits for every pending conclusion, so each started call produces
exactly one summary event before the connection handler returns.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from functools import partial
from typing import assert_never

from pydantic import ValidationError

from switchboard.common import SessionClosedError, get_logger
from switchboard.server.auth import CredentialTable
from switchboard.server.config import RelayConfig
from switchboard.server.constants import SUMMARY_FAILED
from switchboard.server.hub import Audience, BroadcastHub, ClientSocket
from switchboard.server.session import CallSession
from switchboard.server.summarizer import Summarizer
from switchboard.server.transcription import (
  TranscriptionChannel,
  TranscriptUpdate,
  UpdateHandler,
)
from switchboard.wire import (
  AgentJoinedMessage,
  AgentJoinRequest,
  AgentOfflineMessage,
  AgentOnlineMessage,
  AgentStartRequest,
  AgentStopRequest,
  AudioSourceTag,
  AuthFailedMessage,
  AuthRequest,
  AuthSuccessMessage,
  Role,
  SummaryMessage,
  TranscriptMessage,
  deserialize_message,
)

type ChannelFactory = Callable[[str, CallSession, UpdateHandler], TranscriptionChannel]


class RelayState(StrEnum):
  UNAUTHENTICATED = "unauthenticated"
  IDLE = "idle"
  IN_CALL = "in_call"
  CLOSED = "closed"


@dataclass
class ActiveCall:
  """A running call and the channels carrying its audio, keyed by source tag."""

  session: CallSession
  channels: dict[str, TranscriptionChannel]


class SessionRelay:
  def __init__(
    self,
    websocket: ClientSocket,
    hub: BroadcastHub,
    summarizer: Summarizer,
    config: RelayConfig,
    channel_factory: ChannelFactory,
    credentials: CredentialTable | None = None,
  ) -> None:
    """
    :param websocket: The client connection this relay serves.
    :param hub: Broadcast hub shared by all connections.
    :param summarizer: Produces the end-of-call summary.
    :param config: Relay settings (auth, sources, default source tag).
    :param channel_factory: Creates the transcription channel for one source of a call.
    :param credentials: Credential table; required when ``config.auth_required`` is set.
    """
    if config.auth_required and credentials is None:
      raise ValueError("auth_required needs a credential table")

    self.websocket = websocket
    self.hub = hub
    self.summarizer = summarizer
    self.config = config
    self.channel_factory = channel_factory
    self.credentials = credentials
    self.logger = get_logger("relay", client=id(websocket))

    self.state = RelayState.UNAUTHENTICATED if config.auth_required else RelayState.IDLE
    self.username: str | None = None
    self.role: Role | None = None
    self.current_source: str | None = config.default_source
    self.call: ActiveCall | None = None
    self._conclusions: set[asyncio.Task] = set()

  @property
  def pending_conclusions(self) -> int:
    return len(self._conclusions)

  async def handle_text(self, raw: str) -> None:
    """Dispatch one JSON control message. Malformed or unknown messages are ignored."""
    if self.state is RelayState.CLOSED:
      return

    try:
      message = deserialize_message(raw)
    except ValidationError:
      self.logger.debug("Ignoring malformed control message", length=len(raw))
      return

    match message:
      case AuthRequest():
        await self.authenticate(message.username, message.password)
      case AgentStartRequest():
        await self.start_call(self.username)
      case AgentJoinRequest():
        await self.start_call(self.username if self.config.auth_required else message.agent)
      case AudioSourceTag():
        self.tag_source(message.resolved_source)
      case AgentStopRequest():
        self.stop_call()
      case _:
        assert_never(message)

  async def handle_binary(self, frame: bytes) -> None:
    """Route an audio frame to the channel of the currently tagged source."""
    if self.state is not RelayState.IN_CALL or self.call is None:
      return
    if self.current_source is None:
      return
    channel = self.call.channels.get(self.current_source)
    if channel is None:
      return
    await channel.send(frame)

  async def authenticate(self, username: str, password: str) -> None:
    if self.credentials is None:
      self.logger.debug("Ignoring auth request, login is disabled")
      return
    if self.state is not RelayState.UNAUTHENTICATED:
      self.logger.debug("Ignoring auth request, already authenticated", username=self.username)
      return

    role = self.credentials.authenticate(username, password)
    if role is None:
      self.logger.info("Authentication failed", username=username)
      await self.hub.send_to(self.websocket, AuthFailedMessage())
      return

    self.username = username
    self.role = role
    self.state = RelayState.IDLE
    self.hub.set_role(self.websocket, role)
    self.logger = self.logger.bind(username=username)
    self.logger.info("Authenticated", role=role)

    await self.hub.send_to(self.websocket, AuthSuccessMessage(username=username, role=role))
    if role is Role.AGENT:
      await self.hub.publish(AgentOnlineMessage(agent=username), Audience.MANAGERS)

  async def start_call(self, agent: str | None) -> CallSession | None:
    if self.state is not RelayState.IDLE:
      self.logger.debug("Ignoring call start", state=self.state)
      return None
    if self.config.auth_required and self.role is not Role.AGENT:
      self.logger.warning("Only agents may start calls", role=self.role)
      return None

    session = CallSession(agent=agent)
    session.activate()
    channels = {
      source: self.channel_factory(source, session, partial(self._on_transcript, session))
      for source in self.config.sources
    }
    self.call = ActiveCall(session=session, channels=channels)
    self.state = RelayState.IN_CALL

    for channel in channels.values():
      channel.open()

    self.logger.info("Call started", agent=agent, call_id=session.call_id)
    await self.hub.publish(
      AgentJoinedMessage(agent=agent, call_id=session.call_id, start_time=session.start_time),
      Audience.MANAGERS,
    )
    return session

  def tag_source(self, source: str | None) -> None:
    if source:
      self.current_source = source

  def stop_call(self) -> asyncio.Task | None:
    """
    End the current call, if any.

    :returns: The task concluding the call (channel teardown, summary, broadcast), or None when
        there was no call to end.
    """
    if self.state is not RelayState.IN_CALL or self.call is None:
      self.logger.debug("Ignoring call stop", state=self.state)
      return None

    call, self.call = self.call, None
    self.state = RelayState.IDLE

    task = asyncio.create_task(self._conclude(call))
    task.set_name(f"conclude_{call.session.call_id}")
    self._conclusions.add(task)
    task.add_done_callback(self._conclusions.discard)
    return task

  async def close(self) -> None:
    """Handle disconnect: end any running call and wait until every summary has been sent."""
    if self.state is RelayState.CLOSED:
      return

    self.stop_call()
    self.state = RelayState.CLOSED

    pending = list(self._conclusions)
    results = await asyncio.gather(*pending, return_exceptions=True)
    for task, result in zip(pending, results, strict=True):
      if isinstance(result, BaseException):
        self.logger.error(
          "Call conclusion failed", task=task.get_name(), error=repr(result), exc_info=result
        )

    if self.role is Role.AGENT and self.username:
      await self.hub.publish(AgentOfflineMessage(agent=self.username), Audience.MANAGERS)

  async def _on_transcript(self, session: CallSession, update: TranscriptUpdate) -> None:
    if update.final:
      try:
        session.append(update.source, update.text)
      except SessionClosedError:
        self.logger.warning("Dropping transcript for ended call", call_id=session.call_id)
        return

    await self.hub.publish(
      TranscriptMessage(
        agent=session.agent,
        call_id=session.call_id,
        source=update.source,
        text=update.text,
        final=update.final,
      ),
      Audience.MANAGERS,
    )

  async def _conclude(self, call: ActiveCall) -> None:
    session = call.session
    self.logger.info("Call ending", call_id=session.call_id)

    sources = list(call.channels)
    results = await asyncio.gather(
      *(channel.close() for channel in call.channels.values()), return_exceptions=True
    )
    for source, result in zip(sources, results, strict=True):
      if isinstance(result, BaseException):
        self.logger.warning(
          "Error closing transcription channel", source=source, error=repr(result)
        )

    session.end()
    transcript = session.render_transcript(self.config.sources)
    self.logger.info(
      "Generating summary", call_id=session.call_id, utterances=len(session.utterances)
    )
    try:
      summary = await self.summarizer.summarize(transcript)
    except Exception:
      self.logger.exception("Summarizer failed", call_id=session.call_id)
      summary = SUMMARY_FAILED

    await self.hub.publish(
      SummaryMessage(agent=session.agent, call_id=session.call_id, summary=summary),
      Audience.MANAGERS,
    )
    self.logger.info("Summary sent", call_id=session.call_id)
