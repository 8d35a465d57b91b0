"""
Segmenter — splits a raw name into head, parenthetical clauses and tail.

    "JAROŠ Štefan (ž.Marta Virdzeková zomrel 24.04.1997)"
     └── head ──┘  └──────────── parenthetical ────────┘

Only boundaries are computed here; nothing is interpreted. Every part keeps
its offsets into the raw string so extracted values can cite their evidence.
"""

from __future__ import annotations

import re

from .models import Segment, SegmentPart

# First "(" up to the first following ")"; groups do not nest.
_PAREN_GROUP = re.compile(r"\(([^)]*)\)")


def segment(raw: str) -> Segment:
    """Split a raw name into its parts.

    Args:
        raw: The unmodified name string.

    Returns:
        Segment whose head and tail are whitespace-trimmed, and whose
        parentheticals are the untrimmed interiors of each group, in order.
    """
    groups = list(_PAREN_GROUP.finditer(raw))

    parentheticals = [
        SegmentPart(text=m.group(1), start=m.start(1), end=m.end(1)) for m in groups
    ]

    if groups:
        head = _trimmed(raw, 0, groups[0].start())
        tail = _trimmed(raw, groups[-1].end(), len(raw))
    else:
        head = _trimmed(raw, 0, len(raw))
        tail = SegmentPart(text="", start=len(raw), end=len(raw))

    return Segment(raw=raw, head=head, parentheticals=parentheticals, tail=tail)


def _trimmed(raw: str, start: int, end: int) -> SegmentPart:
    """raw[start:end] without surrounding whitespace, offsets adjusted."""
    chunk = raw[start:end]
    lead = len(chunk) - len(chunk.lstrip())
    text = chunk.strip()
    if not text:
        return SegmentPart(text="", start=end, end=end)
    return SegmentPart(text=text, start=start + lead, end=start + lead + len(text))
