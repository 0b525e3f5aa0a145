"""
Post-call summarization through the Gemini ``generateContent`` REST endpoint.
"""

import httpx

from switchboard.common import get_logger
from switchboard.server.config import SummaryConfig
from switchboard.server.constants import (
  NO_CONVERSATION_SUMMARY,
  SUMMARY_ERROR_PREFIX,
  SUMMARY_FAILED,
  SUMMARY_MISSING,
)

PROMPT_TEMPLATE = """You are an AI call analysis assistant.

1. Describe the tone of the speakers.
2. Suggest how the call could be improved.
3. List {min_points}-{max_points} key points.

Conversation:
{transcript}
"""


class Summarizer:
  """
  Turns a call transcript into prose. summarize() never raises: every failure becomes a
  displayable fallback string.
  """

  def __init__(self, config: SummaryConfig, client: httpx.AsyncClient | None = None) -> None:
    self.config = config
    self._client = client
    self._owns_client = client is None
    self.logger = get_logger("summary")

  def build_prompt(self, transcript: str) -> str:
    return PROMPT_TEMPLATE.format(
      min_points=self.config.min_key_points,
      max_points=self.config.max_key_points,
      transcript=transcript,
    )

  async def summarize(self, transcript: str) -> str:
    if not transcript.strip():
      return NO_CONVERSATION_SUMMARY

    request = {"contents": [{"role": "user", "parts": [{"text": self.build_prompt(transcript)}]}]}

    try:
      response = await self._get_client().post(
        f"{self.config.base_url}/models/{self.config.model}:generateContent",
        json=request,
        headers={"x-goog-api-key": self.config.api_key or ""},
      )
      data = response.json()
    except (httpx.HTTPError, ValueError) as e:
      self.logger.error("Summarization request failed", error=str(e))
      return SUMMARY_FAILED

    if not isinstance(data, dict):
      self.logger.error("Unexpected summarization response", status=response.status_code)
      return SUMMARY_FAILED

    if error := data.get("error"):
      message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
      self.logger.warning(
        "Summarization provider error", status=response.status_code, error=message
      )
      return f"{SUMMARY_ERROR_PREFIX}{message}"

    return _first_text(data) or SUMMARY_MISSING

  def _get_client(self) -> httpx.AsyncClient:
    if self._client is None:
      self._client = httpx.AsyncClient(timeout=self.config.timeout)
    return self._client

  async def aclose(self) -> None:
    if self._client is not None and self._owns_client:
      await self._client.aclose()
      self._client = None


def _first_text(data: dict) -> str | None:
  """Text of the first text part of the first candidate, if the response has that shape."""
  candidates = data.get("candidates")
  if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
    return None
  content = candidates[0].get("content")
  if not isinstance(content, dict):
    return None
  parts = content.get("parts")
  if not isinstance(parts, list):
    return None
  for part in parts:
    if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"]:
      return part["text"]
  return None
