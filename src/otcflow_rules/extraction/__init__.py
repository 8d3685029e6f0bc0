"""Transcript extraction: heuristic cues → confidence-scored intake suggestions."""

from otcflow_rules.extraction.parser import (
    TranscriptParser,
    parse_transcript,
    score_pack_confidence,
    score_strength,
)
from otcflow_rules.extraction.samples import SAMPLE_TRANSCRIPTS, get_sample

__all__ = [
    "SAMPLE_TRANSCRIPTS",
    "TranscriptParser",
    "get_sample",
    "parse_transcript",
    "score_pack_confidence",
    "score_strength",
]
