"""Repository slug parsing.

GitHub webhooks identify repositories by ``full_name`` (``owner/name``).
Tasks store that slug verbatim; the platform client splits it again when it
builds REST paths.
"""

from __future__ import annotations


def parse_repo_slug(slug: str) -> tuple[str, str]:
    """Split an ``owner/name`` slug into its two segments.

    Raises
    ------
    ValueError
        If the slug is not in ``owner/name`` format.

    Examples
    --------
    >>> parse_repo_slug("open-telemetry/otto")
    ('open-telemetry', 'otto')

    """
    owner, sep, name = slug.partition("/")
    if not sep or not owner or not name or "/" in name:
        msg = f"Invalid repository slug: expected 'owner/name', got {slug!r}"
        raise ValueError(msg)
    return owner, name
