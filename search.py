from __future__ import annotations


def find_matches(body: str, query: str) -> list[int]:
    """
    Return the 0-indexed numbers of the lines in ``body`` containing ``query``.

    Matching is a case-insensitive substring test. An empty query matches
    every line.
    """
    needle = query.lower()
    return [i for i, line in enumerate(body.split("\n")) if needle in line.lower()]
