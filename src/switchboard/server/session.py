"""
Call session state.

A CallSession is the unit of state for one call: its identifier, the owning agent, when it
started, and the ordered transcript of finalized utterances from every audio source.
"""

import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from switchboard.common import SessionClosedError


class CallState(StrEnum):
  CREATED = "created"
  ACTIVE = "active"
  ENDED = "ended"


@dataclass(frozen=True)
class Utterance:
  """One finalized transcript fragment."""

  source: str
  text: str


def generate_call_id() -> str:
  """Return a fresh call identifier: epoch milliseconds plus a random suffix."""
  return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


@dataclass
class CallSession:
  agent: str | None = None
  call_id: str = field(default_factory=generate_call_id)
  start_time: int = field(default_factory=lambda: int(time.time() * 1000))
  """Epoch milliseconds."""

  state: CallState = CallState.CREATED
  _utterances: list[Utterance] = field(default_factory=list, repr=False)

  def activate(self) -> None:
    if self.state is not CallState.CREATED:
      raise SessionClosedError(self.call_id)
    self.state = CallState.ACTIVE

  def end(self) -> None:
    """Mark the session ended. No further utterances are accepted afterwards."""
    if self.state is CallState.ENDED:
      raise SessionClosedError(self.call_id)
    self.state = CallState.ENDED

  @property
  def ended(self) -> bool:
    return self.state is CallState.ENDED

  def append(self, source: str, text: str) -> Utterance:
    """Append a finalized utterance in receipt order."""
    if self.state is CallState.ENDED:
      raise SessionClosedError(self.call_id)
    utterance = Utterance(source=source, text=text)
    self._utterances.append(utterance)
    return utterance

  @property
  def utterances(self) -> tuple[Utterance, ...]:
    return tuple(self._utterances)

  def utterances_for(self, source: str) -> list[str]:
    return [u.text for u in self._utterances if u.source == source]

  def render_transcript(self, labels: dict[str, str] | None = None) -> str:
    """
    Render the transcript as one text block with a section per audio source.

    :param labels: Optional display label per source tag. Sections follow the order of this
        mapping; sources missing from it follow in order of first appearance.
    :returns: The rendered text, or an empty string when nothing was said.
    """
    labels = labels or {}
    order: list[str] = list(labels)
    for utterance in self._utterances:
      if utterance.source not in order:
        order.append(utterance.source)

    sections = []
    for source in order:
      lines = self.utterances_for(source)
      if lines:
        sections.append(_section(labels.get(source, source), lines))
    return "\n\n".join(sections)


def _section(label: str, lines: Iterable[str]) -> str:
  return f"[{label}]\n" + "\n".join(lines)
