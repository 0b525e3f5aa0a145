"""
Switchboard: live call transcription relay.

Streams agent audio to a speech-to-text provider, fans live transcripts out to managers, and
summarizes each call when it ends.
"""

__version__ = "0.1.0"
