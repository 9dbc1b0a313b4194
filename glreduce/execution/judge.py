"""
Interestingness judges.

A judge decides whether a shader job written to disk still exhibits
the behaviour being reduced. Operational failures (the judge itself
could not run) are reported separately from "not interesting".
"""

import json
import logging
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from ..config import ReducerConfig


logger = logging.getLogger('glreduce.execution')

# Output kept in the result file
MAX_RECORDED_OUTPUT = 4000


class JudgeError(RuntimeError):
    """Raised when a judge fails to produce a verdict."""


class Verdict(Enum):
    """Outcome of judging one shader job."""
    INTERESTING = "interesting"
    NOT_INTERESTING = "not_interesting"
    ERROR = "error"


@dataclass
class JudgeResult:
    """Result from a single judge invocation."""
    verdict: Verdict = Verdict.ERROR
    error_message: str = ""

    # Exit code of the interestingness test (if it ran)
    exit_code: Optional[int] = None

    # Test timed out
    timeout: bool = False

    # Raw output
    raw_output: str = ""

    # Wall-clock runtime in seconds
    runtime_seconds: float = 0.0

    @property
    def interesting(self) -> bool:
        return self.verdict is Verdict.INTERESTING


class FileJudge(ABC):
    """Judge operating on shader jobs written to disk."""

    @abstractmethod
    def judge(self, shader_job_file: Path, result_file: Path) -> JudgeResult:
        """
        Judge a shader job.

        Args:
            shader_job_file: The job's .json file
            result_file: Where diagnostics may be written

        Returns:
            JudgeResult with the verdict
        """

    def is_interesting(self, shader_job_file: Path, result_file: Path) -> bool:
        """Judge a shader job, raising JudgeError on operational failure."""
        result = self.judge(shader_job_file, result_file)
        if result.verdict is Verdict.ERROR:
            raise JudgeError(f"Judge failed on {shader_job_file}: {result.error_message}")
        return result.interesting


class ScriptJudge(FileJudge):
    """
    Runs an external interestingness test.

    The command runs in the caller's working directory and receives the
    absolute path of the shader job .json file as its last argument.
    Exit code 0 means interesting, any other exit code means not
    interesting.
    """

    def __init__(self, config: ReducerConfig,
                 command: Optional[List[str]] = None):
        """Initialize script judge."""
        self.config = config
        self.command = list(command if command is not None else config.judge_command)
        if not self.command:
            raise ValueError("No judge command configured")

    def judge(self, shader_job_file: Path, result_file: Path) -> JudgeResult:
        result = JudgeResult()
        cmd = self.command + [str(Path(shader_job_file).resolve())]
        logger.debug(f"Running judge: {' '.join(cmd)}")

        start_time = time.perf_counter()
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.judge_timeout / 1000.0
            )
            result.raw_output = proc.stdout + proc.stderr
            result.exit_code = proc.returncode
            if proc.returncode == 0:
                result.verdict = Verdict.INTERESTING
            else:
                result.verdict = Verdict.NOT_INTERESTING

        except subprocess.TimeoutExpired as e:
            result.timeout = True
            stdout = e.stdout or ""
            stderr = e.stderr or ""
            if isinstance(stdout, bytes):
                stdout = stdout.decode(errors="replace")
            if isinstance(stderr, bytes):
                stderr = stderr.decode(errors="replace")
            result.raw_output = stdout + stderr
            if self.config.timeout_is_interesting:
                result.verdict = Verdict.INTERESTING
            else:
                result.verdict = Verdict.NOT_INTERESTING
            result.error_message = "Interestingness test timed out"

        except FileNotFoundError:
            result.error_message = f"Judge command not found: {self.command[0]}"

        except OSError as e:
            result.error_message = str(e)

        finally:
            result.runtime_seconds = time.perf_counter() - start_time

        self._write_result(result, Path(result_file))
        return result

    def _write_result(self, result: JudgeResult, result_file: Path) -> None:
        """Record the judge outcome next to the shader job."""
        info = {
            "status": result.verdict.value,
            "exit_code": result.exit_code,
            "timeout": result.timeout,
            "runtime_seconds": round(result.runtime_seconds, 3),
            "error_message": result.error_message,
            "output": result.raw_output[-MAX_RECORDED_OUTPUT:],
        }
        with open(result_file, 'w') as f:
            json.dump(info, f, indent=2)
            f.write("\n")
