"""
Human-readable, sortable identifiers for a nomination's generated files.

``<seq:05d>-<yy>_<slug>``, e.g. ``00042-23_innovation_better_roads_pr_transportation``.
The identifier doubles as the folder name inside export archives, so it only
depends on the nomination's data and the program year.
"""

from __future__ import annotations

import re
from typing import Optional

from .models import NominationRecord
from .schema import SchemaLookup

TRUNCATE_AT = 15

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^a-z0-9_]")
_UNDERSCORES = re.compile(r"_+")


def submission_id(seq: int) -> str:
    """Sequence number zero-padded to five digits."""
    return f"{int(seq):05d}"


def _truncate(text: str) -> str:
    return text.strip()[:TRUNCATE_AT]


def slugify(*parts: str) -> str:
    joined = "_".join(part for part in parts if part)
    slug = _WHITESPACE.sub("_", joined.lower())
    slug = _NON_WORD.sub("_", slug)
    return _UNDERSCORES.sub("_", slug).strip("_")


def package_id(nomination: NominationRecord, schema: SchemaLookup, program_year: Optional[int] = None) -> str:
    """
    Derive the package identifier for ``nomination``.

    Args:
        nomination: Source record (seq, category, title or nominee, organizations)
        schema: Lookup used for category and organization display text
        program_year: Configured program year; the nomination's own year when omitted

    Returns:
        Identifier containing only ``[0-9a-z_-]``
    """
    year = program_year if program_year is not None else nomination.year
    yy = f"{int(year or 0) % 100:02d}"

    category_text = schema.lookup("categories", nomination.category) or nomination.category
    subject = nomination.title or nomination.nominee.full_name
    organization_text = " ".join(
        schema.lookup("organizations", key) or key for key in nomination.organizations
    )

    slug = slugify(category_text, _truncate(subject), _truncate(organization_text))
    return f"{submission_id(nomination.seq)}-{yy}_{slug}"
