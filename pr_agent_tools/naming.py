"""Tool naming policy."""

from __future__ import annotations

import re

CASE_BOUNDARY_PATTERN = re.compile(r"([a-z])([A-Z])")


def canonical_name(identifier: str) -> str:
    """Convert a declaration identifier such as ``getPullRequest`` to ``get_pull_request``."""
    return CASE_BOUNDARY_PATTERN.sub(r"\1_\2", identifier).lower()
