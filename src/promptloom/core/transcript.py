"""
Extracts a role-tagged conversation from rendered prompt text.

Rendered templates mark conversation turns like:
    <system~>You are a helpful bot</system~>
    <user~>Hi!</user~>
Each matched pair becomes one :class:`Message`, in the order it appears.  Text outside the markers
is ignored.
"""

import logging
import re
from typing import List

from promptloom.core.errors import TranscriptParseError
from promptloom.core.schema import Transcript

logger = logging.getLogger(__name__)

# Non-greedy and multi-line; the closing marker must repeat the opening role.
_SEGMENT_RE = re.compile(r"<(user|system|assistant)~>(.*?)</\1~>", re.DOTALL)
# Anything that looks like a marker, recognised role or not.
_MARKER_RE = re.compile(r"</?[^<>/\s]+~>")


def _stray_markers(text: str, spans: List[tuple[int, int]]) -> List[str]:
    """Return markers found outside the matched segment *spans*."""
    stray: List[str] = []
    pos = 0
    for start, end in spans:
        stray.extend(_MARKER_RE.findall(text, pos, start))
        pos = end
    stray.extend(_MARKER_RE.findall(text, pos))
    return stray


def parse_transcript(text: str, strict: bool = False) -> Transcript:
    """
    Parse *text* into a :class:`Transcript`.

    Parameters
    ----------
    text:
        Rendered prompt text containing ``<role~>...</role~>`` segments.
    strict:
        When *False* (the default) unmatched markers and unknown roles are skipped with a
        warning.  When *True* they raise :class:`TranscriptParseError`.

    Returns
    -------
    Transcript
        One message per well-formed segment, in left-to-right order.
    """
    transcript = Transcript()
    spans: List[tuple[int, int]] = []
    for match in _SEGMENT_RE.finditer(text):
        transcript.add(match.group(1), match.group(2))  # type: ignore[arg-type]
        spans.append(match.span())

    stray = _stray_markers(text, spans)
    if stray:
        if strict:
            raise TranscriptParseError(
                f"Unmatched or unrecognised role markers in prompt: {', '.join(stray)}"
            )
        logger.warning("Skipping %d malformed role marker(s): %s", len(stray), stray)

    logger.debug("Parsed transcript with %d message(s)", len(transcript))
    return transcript
