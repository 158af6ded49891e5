"""Vanity suffix matching for account addresses."""
import re
from typing import Iterable, Optional

# Suffixes the original deployment watched for.
DEFAULT_SUFFIXES = (
    "draft",
    "drafted",
    "soldraft",
    "soldrafted",
    "cs2draft",
    "cs2drafted",
    "draftcs2",
    "draftedcs2",
    "draftsol",
    "draftfun",
)


class SuffixMatcher:
    """End-of-string matcher over a fixed suffix set, compared in lower case."""

    def __init__(self, suffixes: Iterable[str] = DEFAULT_SUFFIXES):
        self._suffixes = tuple(suffixes)
        for suffix in self._suffixes:
            if not isinstance(suffix, str) or not suffix:
                raise ValueError(f"Invalid suffix: {suffix!r}")

        self._pattern: Optional[re.Pattern] = None
        if self._suffixes:
            # Candidates are lowered before the search; re.IGNORECASE would
            # fold more characters than str.lower() does (e.g. "ſ" vs "s").
            alternation = "|".join(re.escape(s.lower()) for s in self._suffixes)
            # \Z rather than $: "$" also matches before a trailing newline
            self._pattern = re.compile(rf"(?:{alternation})\Z")

    @property
    def suffixes(self) -> tuple[str, ...]:
        return self._suffixes

    @property
    def pattern(self) -> Optional[str]:
        return self._pattern.pattern if self._pattern else None

    def matches(self, candidate: Optional[str]) -> bool:
        """Return True if the candidate ends with one of the suffixes."""
        return self.matched_suffix(candidate) is not None

    def matched_suffix(self, candidate: Optional[str]) -> Optional[str]:
        """Return the (lower-cased) suffix the candidate ends with, if any.

        The regex scans start positions left to right, so when suffixes
        overlap ("draft" / "soldraft") the longest one is reported.
        """
        if not candidate or self._pattern is None:
            return None
        found = self._pattern.search(candidate.lower())
        return found.group(0) if found else None
