"""
Constants for the Switchboard server.

These values are hardcoded and not configurable through the config file or CLI arguments.
"""

SAMPLE_RATE = 16000
"""Sample rate of the PCM audio sent by the agent page, in Hz."""

CHANNELS = 1
"""Channel count of the agent audio."""

ENCODING = "linear16"
"""Provider encoding name for 16-bit signed little-endian PCM."""

NO_CONVERSATION_SUMMARY = "No conversation detected."
"""Summary reported when a call ends without any finalized speech."""

SUMMARY_FAILED = "Summary generation failed."
"""Summary reported when the summarization provider cannot be reached or answers garbage."""

SUMMARY_MISSING = "Summary text missing."
"""Summary reported when the provider answers without any generated text."""

SUMMARY_ERROR_PREFIX = "Gemini error: "
"""Prefix for summaries that carry the provider's own error description."""
