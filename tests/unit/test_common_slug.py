"""Unit tests for repository slug parsing."""

from __future__ import annotations

import pytest

from otto.common.slug import parse_repo_slug


def test_parse_repo_slug_splits_owner_and_name() -> None:
    """parse_repo_slug returns (owner, name) for valid slugs."""
    assert parse_repo_slug("acme/widgets") == ("acme", "widgets")
    assert parse_repo_slug("Owner-Org/Repo_Name") == ("Owner-Org", "Repo_Name")


@pytest.mark.parametrize(
    "slug",
    ["", "/", "widgets", "acme/", "/widgets", "acme/widgets/extra"],
)
def test_parse_repo_slug_rejects_invalid_slugs(slug: str) -> None:
    """Slugs that are not exactly owner/name raise ValueError."""
    with pytest.raises(ValueError, match="owner/name"):
        parse_repo_slug(slug)
