"""Transcript endpoint - extract intake suggestions from free text."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from otcflow_rules.extraction import TranscriptParser
from otcflow_rules.models import TranscriptExtraction

from otcflow_server.dependencies import get_parser

router = APIRouter(prefix="/transcripts", tags=["transcripts"])


class TranscriptRequest(BaseModel):
    """Request body for ``POST /transcripts/parse``."""

    text: str = ""


@router.post("/parse")
def parse_transcript(
    body: TranscriptRequest,
    parser: TranscriptParser = Depends(get_parser),
) -> TranscriptExtraction:
    """Return confidence-scored suggestions; nothing is written to any intake."""
    return parser.parse(body.text)
