"""
Main glreduce entry point.

Sets up a work directory, works out whether an earlier reduction can
be continued, runs the reduction driver and records a summary.
"""

import argparse
import logging
import shlex
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .config import ReducerConfig, load_config
from .execution.judge import FileJudge, ScriptJudge
from .job.file_ops import ShaderJobFileOperations
from .reduction.driver import ReductionDriver, ReductionStats
from .reduction.plan import LineChunkPlan, ReductionPlan
from .reduction.steps import latest_resume_point

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('glreduce')


@dataclass
class ReductionOutcome:
    """Result of reducing one shader job."""
    shader_job_short_name: str
    work_dir: Path
    stats: ReductionStats

    # Short name of the final shader job (None = input not interesting)
    final_name: Optional[str] = None

    # Attempt number the session continued from
    file_count_offset: int = 0

    @property
    def not_interesting(self) -> bool:
        return self.final_name is None

    @property
    def incomplete(self) -> bool:
        return self.stats.stopped_early

    @property
    def final_path(self) -> Optional[Path]:
        if self.final_name is None:
            return None
        return self.work_dir / f"{self.final_name}.json"


class Reducer:
    """
    Reduces shader jobs into a work directory.

    Each call to reduce() runs its own ReductionDriver; sessions share
    no state, so separate shader jobs need separate work directories.
    """

    def __init__(self, config: ReducerConfig):
        """Initialize reducer."""
        self.config = config
        self.file_ops = ShaderJobFileOperations(config.emit_graphicsfuzz_defines)

    def reduce(self, shader_job_path: Path,
               judge: Optional[FileJudge] = None,
               plan: Optional[ReductionPlan] = None) -> ReductionOutcome:
        """
        Reduce a shader job.

        Args:
            shader_job_path: The interesting shader job's .json file
            judge: Interestingness judge (default: ScriptJudge from config)
            plan: Reduction plan (default: LineChunkPlan)

        Returns:
            ReductionOutcome describing the final shader job
        """
        shader_job_path = Path(shader_job_path)
        short_name = shader_job_path.stem
        work_dir = Path(self.config.output_dir)
        work_dir.mkdir(parents=True, exist_ok=True)

        if judge is None:
            judge = ScriptJudge(self.config)
        if plan is None:
            plan = LineChunkPlan()

        offset = 0
        start_path = shader_job_path
        if self.config.continue_previous:
            offset, latest = latest_resume_point(work_dir, short_name)
            if latest is not None:
                start_path = latest
            if offset > 0:
                logger.info(f"Continuing {short_name} after attempt {offset} from {start_path.name}")

        initial_state = self.file_ops.read_shader_job(start_path)
        logger.info(f"Reducing {short_name}: {initial_state.line_count()} lines "
                    f"in {len(initial_state.shaders)} shader(s)")

        driver = ReductionDriver(plan, self.file_ops)
        final_name = driver.do_reduction(
            initial_state,
            short_name,
            offset,
            judge,
            work_dir,
            self.config.step_limit,
        )

        outcome = ReductionOutcome(
            shader_job_short_name=short_name,
            work_dir=work_dir,
            stats=driver.stats,
            final_name=final_name,
            file_count_offset=offset,
        )
        self._write_summary(outcome, initial_state.line_count())
        return outcome

    def _write_summary(self, outcome: ReductionOutcome, original_lines: int) -> None:
        """Save reduction metadata next to the step trail."""
        summary_path = outcome.work_dir / "summary.txt"
        with open(summary_path, 'w') as f:
            f.write(f"Shader job: {outcome.shader_job_short_name}\n")
            f.write(f"Continued from attempt: {outcome.file_count_offset}\n")
            f.write(f"Original size: {original_lines} lines\n")
            if outcome.not_interesting:
                f.write("Result: initial shader job not interesting\n")
            else:
                final_job = self.file_ops.read_shader_job(outcome.final_path)
                f.write(f"Reduced size: {final_job.line_count()} lines\n")
                f.write(f"Final shader job: {outcome.final_path.name}\n")
                f.write(f"Complete: {'no' if outcome.incomplete else 'yes'}\n")
            f.write(f"{outcome.stats.summary()}\n")
        logger.info(f"Saved reduction summary to {summary_path}")


def main(argv: Optional[List[str]] = None):
    """Command-line entry point."""
    parser = argparse.ArgumentParser(
        description="glreduce: shader job test-case reducer"
    )

    parser.add_argument(
        "shader_job",
        type=Path,
        help="Interesting shader job (.json) to reduce"
    )

    parser.add_argument(
        "--judge",
        help="Interestingness test command; the shader job path is appended"
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        help="Work directory for the reduction"
    )

    parser.add_argument(
        "--step-limit",
        type=int,
        help="Stop after this many reduction attempts"
    )

    parser.add_argument(
        "--continue-previous-reduction",
        action="store_true",
        help="Continue from the step trail in the work directory"
    )

    parser.add_argument(
        "--emit-graphicsfuzz-defines",
        action="store_true",
        help="Emit GraphicsFuzz macro definitions in written shaders"
    )

    parser.add_argument(
        "--judge-timeout",
        type=int,
        help="Judge timeout in milliseconds"
    )

    parser.add_argument(
        "--timeout-is-interesting",
        action="store_true",
        help="Treat judge timeouts as interesting"
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="JSON configuration file"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args(argv)

    # Set up logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Command-line options override the config file
    config = load_config(args.config)
    if args.judge:
        config.judge_command = shlex.split(args.judge)
    if args.output is not None:
        config.output_dir = args.output
    if args.step_limit is not None:
        config.step_limit = args.step_limit
    if args.continue_previous_reduction:
        config.continue_previous = True
    if args.emit_graphicsfuzz_defines:
        config.emit_graphicsfuzz_defines = True
    if args.judge_timeout is not None:
        config.judge_timeout = args.judge_timeout
    if args.timeout_is_interesting:
        config.timeout_is_interesting = True

    if not config.judge_command:
        parser.error("a judge command is required (--judge or judge_command in --config)")

    reducer = Reducer(config)
    outcome = reducer.reduce(args.shader_job)

    if outcome.not_interesting:
        logger.error(f"{args.shader_job} is not interesting; nothing reduced")
        sys.exit(1)

    logger.info(f"Final shader job: {outcome.final_path}")
    if outcome.incomplete:
        logger.info("Step limit reached; the result may reduce further")
    sys.exit(0)


if __name__ == "__main__":
    main()
