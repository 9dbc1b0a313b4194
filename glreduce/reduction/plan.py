"""
Reduction plans.

A plan proposes the next smaller shader job to try and is told whether
its last proposal was accepted, so it can steer later proposals.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from ..job.shader_job import ShaderJob, ShaderSource


class ReductionPlanError(Exception):
    """Base class for plan outcomes that yield no candidate."""


class NoMoreToReduceError(ReductionPlanError):
    """The plan has no further reduction opportunities."""


class FailedReductionError(ReductionPlanError):
    """A chosen transformation could not be applied to the shader job."""


class ReductionPlan(ABC):
    """Source of reduction candidates."""

    @abstractmethod
    def apply_reduction(self, state: ShaderJob) -> ShaderJob:
        """
        Produce the next candidate from the current shader job.

        Raises:
            NoMoreToReduceError: nothing left to try
            FailedReductionError: the transformation could not be applied
        """

    @abstractmethod
    def update(self, success: bool) -> None:
        """Report whether the last candidate was accepted."""


class LineChunkPlan(ReductionPlan):
    """
    Removes chunks of consecutive shader lines.

    Algorithm:
    1. Start with the largest power of two not above the line count
    2. Walk a cursor over all shader lines, proposing to drop
       chunk_size lines at the cursor
    3. On success keep the cursor (new lines moved under it),
       on failure move past the chunk
    4. At the end of a pass halve the chunk size; at size 1 repeat
       passes until one makes no progress
    """

    def __init__(self, chunk_size: Optional[int] = None):
        """Initialize line chunk plan."""
        self._initial_chunk_size = chunk_size
        self.chunk_size: Optional[int] = None
        self.cursor = 0
        self._pending: Optional[Tuple[int, int]] = None
        self._progress = False

    def apply_reduction(self, state: ShaderJob) -> ShaderJob:
        lines = self._flatten(state)
        if self.chunk_size is None:
            self.chunk_size = self._initial_chunk_size or _largest_power_of_two(len(lines))

        while True:
            if self.cursor >= len(lines):
                if not self._next_pass():
                    raise NoMoreToReduceError()
                continue

            end = min(self.cursor + self.chunk_size, len(lines))
            chunk = [text for _, text in lines[self.cursor:end]]
            if _removable(chunk):
                self._pending = (self.cursor, end)
                return self._remove(state, lines, self.cursor, end)
            self.cursor = end

    def update(self, success: bool) -> None:
        if self._pending is None:
            raise ValueError("No pending candidate to update")
        _, end = self._pending
        self._pending = None
        if success:
            self._progress = True
        else:
            self.cursor = end

    def _next_pass(self) -> bool:
        """Start a new pass; False when the plan is exhausted."""
        self.cursor = 0
        if self.chunk_size > 1:
            self.chunk_size //= 2
        elif not self._progress:
            return False
        self._progress = False
        return True

    @staticmethod
    def _flatten(state: ShaderJob) -> List[Tuple[int, str]]:
        """All shader lines tagged with their shader index."""
        return [(index, line)
                for index, shader in enumerate(state.shaders)
                for line in shader.lines]

    @staticmethod
    def _remove(state: ShaderJob, lines: List[Tuple[int, str]],
                start: int, end: int) -> ShaderJob:
        """New shader job without flattened lines start..end-1."""
        kept: List[List[str]] = [[] for _ in state.shaders]
        for position, (index, text) in enumerate(lines):
            if not start <= position < end:
                kept[index].append(text)

        shaders = []
        for shader, shader_lines in zip(state.shaders, kept):
            text = "\n".join(shader_lines)
            if shader_lines and shader.text.endswith("\n"):
                text += "\n"
            shaders.append(ShaderSource(shader.kind, text))
        return state.with_shaders(shaders)


def _largest_power_of_two(n: int) -> int:
    if n <= 1:
        return 1
    return 1 << (n.bit_length() - 1)


def _removable(chunk: List[str]) -> bool:
    """A chunk may go if it keeps #version and has balanced braces."""
    depth = 0
    for line in chunk:
        if line.lstrip().startswith("#version"):
            return False
        for char in line:
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth < 0:
                    return False
    return depth == 0
