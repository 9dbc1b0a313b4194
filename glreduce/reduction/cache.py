"""
Judging cache for reduction steps.

Fingerprints of judged shader jobs are kept in two disjoint sets. A
fingerprint that is already known to fail is not judged again. A
fingerprint that was already accepted must never come back: the search
only ever shrinks, so seeing it again means the reduction is looping.
"""

from typing import Optional, Set


class ReductionLoopError(RuntimeError):
    """Raised when an accepted shader job is produced again."""


class ResultCache:
    """Fingerprints of failing and passing shader jobs."""

    def __init__(self):
        self.failing: Set[str] = set()
        self.passing: Set[str] = set()
        self.hits = 0

    def lookup(self, fingerprint: str) -> Optional[bool]:
        """
        Cached verdict for a fingerprint.

        Returns:
            False if known to fail, None if unknown

        Raises:
            ReductionLoopError: if the fingerprint was already accepted
        """
        if fingerprint in self.failing:
            self.hits += 1
            return False
        if fingerprint in self.passing:
            raise ReductionLoopError("Reduction loop detected!")
        return None

    def record(self, fingerprint: str, interesting: bool) -> None:
        """Record a judged fingerprint."""
        if interesting:
            if fingerprint in self.failing:
                raise ReductionLoopError(
                    f"Reduction loop detected! {fingerprint[:12]} already failed")
            self.passing.add(fingerprint)
        else:
            if fingerprint in self.passing:
                raise ReductionLoopError(
                    f"Reduction loop detected! {fingerprint[:12]} already passed")
            self.failing.add(fingerprint)

    def __len__(self) -> int:
        return len(self.failing) + len(self.passing)
