"""Tests for the transcription channel: buffering, result filtering and shutdown."""

import asyncio

from conftest import FakeConnector, provider_result, settle

from switchboard.server.config import FinalizationPolicy, TranscriptionConfig
from switchboard.server.transcription import TranscriptionChannel, TranscriptUpdate


def make_channel(connector, updates, **config_overrides) -> TranscriptionChannel:
  async def on_update(update: TranscriptUpdate) -> None:
    updates.append(update)

  config = TranscriptionConfig(api_key="test-key", **config_overrides)
  return TranscriptionChannel("mic", "call-1", config, on_update, connector=connector)


class TestBuffering:
  """Frames sent before the provider is ready."""

  def test_frames_are_held_until_ready_then_flushed_in_order(self):
    async def scenario():
      connector = FakeConnector(hold=True)
      channel = make_channel(connector, [])
      channel.open()

      for frame in (b"one", b"two", b"three"):
        await channel.send(frame)
      await settle()

      assert channel.ready is False
      assert channel.pending_frames == 3
      assert connector.connections == []

      connector.release()
      await settle()

      provider = connector.connections[0]
      assert channel.ready is True
      assert channel.pending_frames == 0
      assert provider.audio == [b"one", b"two", b"three"]

      await channel.send(b"four")
      assert provider.audio == [b"one", b"two", b"three", b"four"]
      assert channel.pending_frames == 0

      await channel.close()

    asyncio.run(scenario())

  def test_pending_frames_are_bounded(self):
    async def scenario():
      connector = FakeConnector(hold=True)
      channel = make_channel(connector, [], max_pending_frames=2)
      channel.open()

      for frame in (b"a", b"b", b"c"):
        await channel.send(frame)
      assert channel.pending_frames == 2

      connector.release()
      await settle()
      assert connector.connections[0].audio == [b"a", b"b"]

      await channel.close()

    asyncio.run(scenario())


class TestResults:
  """Provider results turned into transcript updates."""

  def test_final_only_policy_discards_interim_results(self):
    async def scenario():
      connector = FakeConnector()
      updates: list[TranscriptUpdate] = []
      channel = make_channel(connector, updates)
      channel.open()
      await settle()

      provider = connector.connections[0]
      provider.push(provider_result("hel", is_final=False))
      provider.push(provider_result("  hello there  ", is_final=True))
      await settle()

      assert updates == [TranscriptUpdate(source="mic", text="hello there", final=True)]
      await channel.close()

    asyncio.run(scenario())

  def test_all_policy_tags_each_result_with_finality(self):
    async def scenario():
      connector = FakeConnector()
      updates: list[TranscriptUpdate] = []
      channel = make_channel(connector, updates, finalization=FinalizationPolicy.ALL)
      channel.open()
      await settle()

      provider = connector.connections[0]
      provider.push(provider_result("hel", is_final=False))
      provider.push(provider_result("hello", is_final=True))
      await settle()

      assert [(u.text, u.final) for u in updates] == [("hel", False), ("hello", True)]
      await channel.close()

    asyncio.run(scenario())

  def test_unusable_messages_are_ignored(self):
    async def scenario():
      connector = FakeConnector()
      updates: list[TranscriptUpdate] = []
      channel = make_channel(connector, updates)
      channel.open()
      await settle()

      provider = connector.connections[0]
      provider.push("not json at all")
      provider.push({"type": "Metadata", "request_id": "abc"})
      provider.push({"type": "Results", "is_final": True, "channel": {"alternatives": []}})
      provider.push(provider_result("   ", is_final=True))
      provider.push(provider_result("still listening"))
      await settle()

      assert [u.text for u in updates] == ["still listening"]
      assert channel.closed is False
      await channel.close()

    asyncio.run(scenario())

  def test_handler_errors_do_not_stop_the_channel(self):
    async def scenario():
      connector = FakeConnector()
      seen: list[str] = []

      async def on_update(update: TranscriptUpdate) -> None:
        seen.append(update.text)
        if len(seen) == 1:
          raise RuntimeError("observer blew up")

      config = TranscriptionConfig(api_key="test-key")
      channel = TranscriptionChannel("tab", "call-1", config, on_update, connector=connector)
      channel.open()
      await settle()

      provider = connector.connections[0]
      provider.push(provider_result("first"))
      provider.push(provider_result("second"))
      await settle()

      assert seen == ["first", "second"]
      await channel.close()

    asyncio.run(scenario())


class TestFailuresAndClose:
  """Provider failures and channel shutdown."""

  def test_connection_failure_closes_channel_quietly(self):
    async def scenario():
      connector = FakeConnector(error=OSError("connection refused"))
      channel = make_channel(connector, [])
      channel.open()
      await channel.send(b"early")
      await settle()

      assert channel.closed is True
      await channel.send(b"late")
      await channel.close()
      await channel.close()

    asyncio.run(scenario())

  def test_provider_dropping_the_stream_closes_channel(self):
    async def scenario():
      connector = FakeConnector()
      channel = make_channel(connector, [])
      channel.open()
      await settle()

      provider = connector.connections[0]
      provider.drop()
      await settle()

      assert channel.closed is True
      await channel.send(b"ignored")
      assert provider.audio == []

    asyncio.run(scenario())

  def test_close_requests_end_of_stream_and_drains_trailing_finals(self):
    async def scenario():
      connector = FakeConnector()
      updates: list[TranscriptUpdate] = []
      channel = make_channel(connector, updates)
      channel.open()
      await settle()

      provider = connector.connections[0]
      provider.push(provider_result("last words"))
      await channel.close()

      assert provider.control == [{"type": "CloseStream"}]
      assert provider.closed is True
      assert [u.text for u in updates] == ["last words"]

    asyncio.run(scenario())

  def test_close_is_idempotent(self):
    async def scenario():
      connector = FakeConnector()
      channel = make_channel(connector, [])
      channel.open()
      await settle()

      await channel.close()
      await channel.close()

      assert connector.connections[0].control == [{"type": "CloseStream"}]

    asyncio.run(scenario())

  def test_close_before_connect_completes_abandons_the_attempt(self):
    async def scenario():
      connector = FakeConnector(hold=True)
      channel = make_channel(connector, [])
      channel.open()
      await channel.send(b"queued")
      await settle()

      await channel.close()
      connector.release()
      await settle()

      assert channel.closed is True
      assert connector.connections == []

    asyncio.run(scenario())

  def test_close_without_open(self):
    async def scenario():
      channel = make_channel(FakeConnector(), [])
      await channel.close()
      assert channel.closed is True

    asyncio.run(scenario())

  def test_ready_flag_without_connection_is_harmless(self):
    async def scenario():
      connector = FakeConnector(hold=True)
      channel = make_channel(connector, [])
      channel.open()
      channel.ready = True

      await channel.send(b"frame")
      assert await channel._flush() == 0
      await channel.close()

      assert channel.closed is True
      assert connector.connections == []

    asyncio.run(scenario())


class TestKeepAlive:
  def test_keepalive_is_sent_while_open_and_stops_on_close(self):
    async def scenario():
      connector = FakeConnector()
      channel = make_channel(connector, [], keepalive_interval=0.01)
      channel.open()
      await asyncio.sleep(0.05)

      provider = connector.connections[0]
      assert {"type": "KeepAlive"} in provider.control

      await channel.close()
      sent = len(provider.sent)
      await asyncio.sleep(0.03)

      assert len(provider.sent) == sent
      assert provider.control[-1] == {"type": "CloseStream"}

    asyncio.run(scenario())

  def test_no_keepalive_by_default(self):
    async def scenario():
      connector = FakeConnector()
      channel = make_channel(connector, [])
      channel.open()
      await asyncio.sleep(0.03)

      assert connector.connections[0].control == []
      await channel.close()

    asyncio.run(scenario())
