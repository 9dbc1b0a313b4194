"""
Reduction driver.

Runs one reduction session: confirms the input is interesting, then
repeatedly asks the plan for a smaller shader job, judges it and keeps
it if it is still interesting, and finally writes a cleaned-up result.
Every attempt leaves a tagged shader job in the work directory.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from ..execution.judge import FileJudge
from ..job.file_ops import ShaderJobFileOperations, result_path
from ..job.shader_job import ShaderJob
from .cache import ResultCache
from .plan import FailedReductionError, NoMoreToReduceError, ReductionPlan
from .simplify import simplify
from .steps import (
    FAIL, NOT_INTERESTING, REDUCTION_INCOMPLETE, SUCCESS,
    final_output_name, reduction_step_name,
)


logger = logging.getLogger('glreduce.reduction')

# Judge attempts on the unreduced input before giving up
NUM_INITIAL_TRIES = 5

# Attempts to get a candidate out of the plan within one step
MAX_APPLY_ATTEMPTS = 3


@dataclass
class ReductionStats:
    """Statistics from a reduction session."""
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    cache_hits: int = 0
    judge_invocations: int = 0
    stopped_early: bool = False
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        if self.start_time is None:
            return 0
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    def summary(self) -> str:
        return (f"Attempts: {self.attempts} | Successful: {self.successes} | "
                f"Failed: {self.failures} | Cache hits: {self.cache_hits} | "
                f"Judge calls: {self.judge_invocations} | "
                f"Duration: {self.duration:.1f}s")


class ReductionDriver:
    """
    Drives a single reduction session.

    State machine per step:
    1. Ask the plan for a candidate (retrying transient failures)
    2. Write it as <base>_reduced_<NNNN>.json and fingerprint it
    3. Reject known failures from the cache, otherwise ask the judge
    4. Rename the step with _success or _fail and tell the plan

    A driver instance holds mutable session state and must not be
    shared between reductions.
    """

    def __init__(self, plan: ReductionPlan,
                 file_ops: Optional[ShaderJobFileOperations] = None):
        """Initialize reduction driver."""
        self.plan = plan
        self.file_ops = file_ops or ShaderJobFileOperations()
        self.cache = ResultCache()
        self.stats = ReductionStats()
        self.num_successful_reductions = 0
        self.current_state: Optional[ShaderJob] = None
        self._requires_uniform_bindings = False
        self._uniform_bindings: Dict[str, int] = {}

    def do_reduction(self, initial_state: ShaderJob,
                     shader_job_short_name: str,
                     file_count_offset: int,
                     judge: FileJudge,
                     work_dir: Path,
                     step_limit: int = -1) -> Optional[str]:
        """
        Reduce a shader job.

        Args:
            initial_state: The interesting shader job
            shader_job_short_name: Base name for all files of the session
            file_count_offset: Attempts made by an earlier, interrupted
                session; nonzero skips the initial check
            judge: Interestingness judge
            work_dir: Directory receiving the step trail
            step_limit: Maximum number of attempts (-1 = unbounded)

        Returns:
            Short name of the final shader job, or None if the initial
            state was never interesting
        """
        work_dir = Path(work_dir)
        self.stats.start_time = datetime.now()

        # Bindings are only re-inserted when a job is written
        self._requires_uniform_bindings = initial_state.has_uniform_bindings()
        if self._requires_uniform_bindings:
            self._uniform_bindings = initial_state.uniforms.bindings()
            initial_state = initial_state.without_uniform_bindings()

        try:
            if file_count_offset > 0:
                logger.info(f"Continuing reduction for {shader_job_short_name}")
            else:
                logger.info(f"Starting reduction for {shader_job_short_name}")
                if not self._check_initial_state(judge, initial_state,
                                                 shader_job_short_name, work_dir):
                    return None
                logger.info("Result from initial state is interesting - proceeding with reduction.")

            self.current_state = initial_state
            self._reduce(judge, shader_job_short_name, file_count_offset,
                         work_dir, step_limit)
            return self._finalise(judge, shader_job_short_name, work_dir)
        finally:
            self.stats.end_time = datetime.now()

    def _check_initial_state(self, judge: FileJudge, state: ShaderJob,
                             shader_job_short_name: str, work_dir: Path) -> bool:
        """Judge the unreduced input, tolerating a flaky judge."""
        for attempt in range(1, NUM_INITIAL_TRIES + 1):
            if self._is_interesting(judge, state, shader_job_short_name,
                                    work_dir, use_cache=False):
                return True
            logger.info(f"Result from initial state is not interesting (attempt {attempt})")

        logger.info(f"Tried {NUM_INITIAL_TRIES} times; stopping.")
        self.file_ops.create_file(work_dir / NOT_INTERESTING)
        return False

    def _reduce(self, judge: FileJudge, shader_job_short_name: str,
                file_count_offset: int, work_dir: Path, step_limit: int) -> None:
        """Main shrink loop."""
        step_count = 0
        while True:
            if step_limit > -1 and step_count >= step_limit:
                logger.info(f"Stopping reduction due to hitting step limit {step_limit}.")
                self.stats.stopped_early = True
                return

            logger.info(f"Trying reduction attempt {step_count} "
                        f"({self.num_successful_reductions} successful so far).")
            try:
                new_state = self._apply_reduction(self.current_state)
            except NoMoreToReduceError:
                logger.info("No more to reduce; stopping.")
                return
            step_count += 1
            self.stats.attempts += 1

            attempt = step_count + file_count_offset
            step_name = reduction_step_name(shader_job_short_name, attempt)
            interesting = self._is_interesting(judge, new_state, step_name,
                                               work_dir, use_cache=True)
            outcome = SUCCESS if interesting else FAIL
            self.file_ops.move_shader_job(
                work_dir / f"{step_name}.json",
                work_dir / f"{reduction_step_name(shader_job_short_name, attempt, outcome)}.json",
                overwrite=True
            )

            if interesting:
                logger.info("Successful reduction.")
                self.num_successful_reductions += 1
                self.stats.successes += 1
                self.current_state = new_state
                self.plan.update(True)
            else:
                logger.info("Failed reduction.")
                self.stats.failures += 1
                self.plan.update(False)

    def _apply_reduction(self, state: ShaderJob) -> ShaderJob:
        """Get a candidate from the plan, retrying failed applications."""
        attempts = 0
        while True:
            try:
                return self.plan.apply_reduction(state)
            except FailedReductionError as e:
                attempts += 1
                logger.debug(f"Reduction could not be applied ({attempts}/{MAX_APPLY_ATTEMPTS}): {e}")
                if attempts >= MAX_APPLY_ATTEMPTS:
                    raise

    def _finalise(self, judge: FileJudge, shader_job_short_name: str,
                  work_dir: Path) -> str:
        """Write the final shader job, simplified if that stays interesting."""
        final_state = self.finalise_reduction(self.current_state)
        final_name = final_output_name(shader_job_short_name)

        if not self._is_interesting(judge, final_state, final_name,
                                    work_dir, use_cache=False):
            logger.info("Failed to simplify final reduction state! "
                        "Reverting to the non-simplified state.")
            self._write_state(self.current_state, work_dir / f"{final_name}.json")
            # The recorded verdict belongs to the rejected simplified job
            stale_result = result_path(work_dir / f"{final_name}.json")
            if stale_result.exists():
                stale_result.unlink()

        if self.stats.stopped_early:
            self.file_ops.create_file(work_dir / REDUCTION_INCOMPLETE)

        logger.info(f"Reduction finished: {self.stats.summary()}")
        return final_name

    def finalise_reduction(self, state: ShaderJob) -> ShaderJob:
        """Final cleanup pass removing transformation macros."""
        return simplify(state)

    def _is_interesting(self, judge: FileJudge, state: ShaderJob,
                        shader_job_short_name: str, work_dir: Path,
                        use_cache: bool) -> bool:
        """Write a shader job and judge it, optionally through the cache."""
        shader_job_file = work_dir / f"{shader_job_short_name}.json"
        self._write_state(state, shader_job_file)

        fingerprint = None
        if use_cache:
            fingerprint = self.file_ops.shader_job_file_hash(shader_job_file)
            if self.cache.lookup(fingerprint) is False:
                logger.debug(f"Cache hit for {shader_job_short_name}")
                self.stats.cache_hits += 1
                return False

        self.stats.judge_invocations += 1
        interesting = judge.is_interesting(shader_job_file, result_path(shader_job_file))
        if use_cache:
            self.cache.record(fingerprint, interesting)
        return interesting

    def _write_state(self, state: ShaderJob, shader_job_file: Path) -> None:
        """Write a shader job, in binding-bound form when required."""
        if self._requires_uniform_bindings:
            state = state.with_uniform_bindings(self._uniform_bindings)
        self.file_ops.write_shader_job(state, shader_job_file)
