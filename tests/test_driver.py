"""
Tests for the reduction driver control loop.
"""

from pathlib import Path

import pytest

from glreduce.execution.judge import FileJudge, JudgeError, JudgeResult, Verdict
from glreduce.job import ShaderJob, ShaderJobFileOperations, ShaderKind, ShaderSource, UniformsInfo
from glreduce.reduction.cache import ReductionLoopError
from glreduce.reduction.driver import NUM_INITIAL_TRIES, ReductionDriver
from glreduce.reduction.plan import FailedReductionError, NoMoreToReduceError, ReductionPlan


class ScriptedPlan(ReductionPlan):
    """Fake plan handing out a fixed list of candidates (or errors)."""

    def __init__(self, candidates):
        self._candidates = list(candidates)
        self.updates = []
        self.seen_states = []

    def apply_reduction(self, state):
        self.seen_states.append(state)
        if not self._candidates:
            raise NoMoreToReduceError()
        item = self._candidates.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def update(self, success):
        self.updates.append(success)


class FakeJudge(FileJudge):
    """Fake judge applying a predicate to the shader job read from disk."""

    def __init__(self, predicate):
        self.predicate = predicate
        self.calls = []
        self.jobs = []
        self._file_ops = ShaderJobFileOperations()

    def judge(self, shader_job_file, result_file):
        job = self._file_ops.read_shader_job(shader_job_file)
        self.calls.append(Path(shader_job_file).name)
        self.jobs.append(job)
        if self.predicate(job):
            return JudgeResult(verdict=Verdict.INTERESTING)
        return JudgeResult(verdict=Verdict.NOT_INTERESTING)


class FlakyJudge(FileJudge):
    """Fake judge returning scripted verdicts, then always interesting."""

    def __init__(self, verdicts):
        self._verdicts = list(verdicts)
        self.calls = 0

    def judge(self, shader_job_file, result_file):
        self.calls += 1
        interesting = self._verdicts.pop(0) if self._verdicts else True
        return JudgeResult(verdict=Verdict.INTERESTING if interesting else Verdict.NOT_INTERESTING)


class BrokenJudge(FileJudge):
    """Fake judge that cannot run."""

    def judge(self, shader_job_file, result_file):
        return JudgeResult(verdict=Verdict.ERROR, error_message="compiler missing")


def _job(*lines, uniforms=None) -> ShaderJob:
    text = "\n".join(lines) + "\n"
    return ShaderJob(uniforms=UniformsInfo(uniforms),
                     shaders=[ShaderSource(ShaderKind.FRAGMENT, text)])


def _has_bug(job: ShaderJob) -> bool:
    return "BUG" in job.get_shader(ShaderKind.FRAGMENT).text


def test_successful_reductions_are_counted(tmp_path):
    initial = _job("BUG", "a", "b", "c")
    first = _job("BUG", "b", "c")
    rejected = _job("b", "c")
    second = _job("BUG", "c")
    plan = ScriptedPlan([first, rejected, second])
    judge = FakeJudge(_has_bug)
    driver = ReductionDriver(plan)

    final_name = driver.do_reduction(initial, "shader", 0, judge, tmp_path)

    assert final_name == "shader_reduced_final"
    assert driver.num_successful_reductions == 2
    assert driver.current_state == second
    assert plan.updates == [True, False, True]
    assert plan.seen_states[:3] == [initial, first, first]
    assert (tmp_path / "shader_reduced_0001_success.json").exists()
    assert (tmp_path / "shader_reduced_0002_fail.json").exists()
    assert (tmp_path / "shader_reduced_0003_success.json").exists()
    assert not (tmp_path / "shader_reduced_0001.json").exists()
    assert (tmp_path / "shader_reduced_final.json").exists()
    assert not (tmp_path / "NOT_INTERESTING").exists()
    assert not (tmp_path / "REDUCTION_INCOMPLETE").exists()


def test_step_outcome_rename_moves_shader_and_result_files(tmp_path):
    plan = ScriptedPlan([_job("BUG", "b")])

    class ResultWritingJudge(FakeJudge):
        def judge(self, shader_job_file, result_file):
            Path(result_file).write_text("{}\n")
            return super().judge(shader_job_file, result_file)

    judge = ResultWritingJudge(_has_bug)
    ReductionDriver(plan).do_reduction(_job("BUG", "a", "b"), "shader", 0, judge, tmp_path)

    assert (tmp_path / "shader_reduced_0001_success.frag").exists()
    assert (tmp_path / "shader_reduced_0001_success.info.json").exists()
    assert not (tmp_path / "shader_reduced_0001.frag").exists()
    assert not (tmp_path / "shader_reduced_0001.info.json").exists()


def test_failing_fingerprint_is_not_judged_twice(tmp_path):
    duplicate = _job("a", "b")
    plan = ScriptedPlan([duplicate, _job("a", "b")])
    judge = FakeJudge(_has_bug)
    driver = ReductionDriver(plan)

    driver.do_reduction(_job("BUG", "a", "b"), "shader", 0, judge, tmp_path)

    assert judge.calls == ["shader.json", "shader_reduced_0001.json", "shader_reduced_final.json"]
    assert driver.stats.cache_hits == 1
    assert driver.stats.attempts == 2
    assert plan.updates == [False, False]
    assert (tmp_path / "shader_reduced_0002_fail.json").exists()


def test_revisiting_accepted_state_is_a_loop(tmp_path):
    plan = ScriptedPlan([_job("BUG", "b"), _job("BUG", "b")])
    judge = FakeJudge(_has_bug)
    driver = ReductionDriver(plan)

    with pytest.raises(ReductionLoopError):
        driver.do_reduction(_job("BUG", "a", "b"), "shader", 0, judge, tmp_path)

    assert driver.num_successful_reductions == 1


def test_step_limit_stops_reduction_early(tmp_path):
    candidates = [_job(f"line{i}") for i in range(10)]
    plan = ScriptedPlan(candidates)
    judge = FakeJudge(_has_bug)
    driver = ReductionDriver(plan)

    final_name = driver.do_reduction(_job("BUG"), "shader", 0, judge, tmp_path, step_limit=3)

    assert final_name == "shader_reduced_final"
    assert driver.stats.attempts == 3
    assert driver.stats.stopped_early is True
    assert (tmp_path / "shader_reduced_0003_fail.json").exists()
    assert not (tmp_path / "shader_reduced_0004_fail.json").exists()
    assert (tmp_path / "REDUCTION_INCOMPLETE").exists()
    assert (tmp_path / "shader_reduced_final.json").exists()


def test_step_limit_zero_makes_no_attempts(tmp_path):
    plan = ScriptedPlan([_job("BUG", "b")])
    driver = ReductionDriver(plan)

    driver.do_reduction(_job("BUG", "a"), "shader", 0, FakeJudge(_has_bug), tmp_path, step_limit=0)

    assert plan.seen_states == []
    assert driver.stats.attempts == 0
    assert (tmp_path / "REDUCTION_INCOMPLETE").exists()


def test_unbounded_reduction_runs_until_exhausted(tmp_path):
    candidates = [_job(f"line{i}") for i in range(6)]
    plan = ScriptedPlan(candidates)
    driver = ReductionDriver(plan)

    driver.do_reduction(_job("BUG"), "shader", 0, FakeJudge(_has_bug), tmp_path, step_limit=-1)

    assert driver.stats.attempts == 6
    assert driver.stats.stopped_early is False
    assert not (tmp_path / "REDUCTION_INCOMPLETE").exists()


def test_final_state_is_simplified_when_still_interesting(tmp_path):
    initial = _job("#version 310 es", "float x = _GLF_IDENTITY(1.0, BUG);")
    plan = ScriptedPlan([])
    driver = ReductionDriver(plan)

    driver.do_reduction(initial, "shader", 0, FakeJudge(_has_bug), tmp_path)

    final = ShaderJobFileOperations().read_shader_job(tmp_path / "shader_reduced_final.json")
    assert final.get_shader(ShaderKind.FRAGMENT).text == "#version 310 es\nfloat x = (BUG);\n"


def test_final_state_falls_back_when_simplification_breaks_it(tmp_path):
    initial = _job("#version 310 es", "float x = _GLF_IDENTITY(BUG, 1.0);")
    plan = ScriptedPlan([])
    judge = FakeJudge(_has_bug)
    driver = ReductionDriver(plan)

    final_name = driver.do_reduction(initial, "shader", 0, judge, tmp_path)

    final = ShaderJobFileOperations().read_shader_job(tmp_path / f"{final_name}.json")
    assert final == initial
    assert judge.calls.count("shader_reduced_final.json") == 1


def test_initial_state_never_interesting(tmp_path):
    plan = ScriptedPlan([_job("a")])
    judge = FakeJudge(lambda job: False)
    driver = ReductionDriver(plan)

    result = driver.do_reduction(_job("a", "b"), "shader", 0, judge, tmp_path)

    assert result is None
    assert len(judge.calls) == NUM_INITIAL_TRIES
    assert (tmp_path / "NOT_INTERESTING").exists()
    assert plan.seen_states == []
    assert driver.stats.attempts == 0
    assert not (tmp_path / "shader_reduced_final.json").exists()


def test_flaky_initial_judge_is_retried(tmp_path):
    plan = ScriptedPlan([])
    judge = FlakyJudge([False, False, False, False, True])
    driver = ReductionDriver(plan)

    result = driver.do_reduction(_job("BUG"), "shader", 0, judge, tmp_path)

    assert result == "shader_reduced_final"
    assert not (tmp_path / "NOT_INTERESTING").exists()
    # Five initial attempts plus the final check
    assert judge.calls == 6


def test_resume_offset_skips_initial_check_and_numbers_steps(tmp_path):
    plan = ScriptedPlan([_job("BUG", "b"), _job("BUG")])
    judge = FakeJudge(_has_bug)
    driver = ReductionDriver(plan)

    driver.do_reduction(_job("BUG", "a", "b"), "shader", 7, judge, tmp_path)

    assert judge.calls[0] == "shader_reduced_0008.json"
    assert "shader.json" not in judge.calls
    assert (tmp_path / "shader_reduced_0008_success.json").exists()
    assert (tmp_path / "shader_reduced_0009_success.json").exists()
    assert not (tmp_path / "shader_reduced_0001_success.json").exists()


def test_failed_application_is_retried(tmp_path):
    plan = ScriptedPlan([FailedReductionError(), FailedReductionError(), _job("BUG")])
    driver = ReductionDriver(plan)

    driver.do_reduction(_job("BUG", "a"), "shader", 0, FakeJudge(_has_bug), tmp_path)

    assert driver.num_successful_reductions == 1
    assert (tmp_path / "shader_reduced_0001_success.json").exists()


def test_persistent_application_failure_is_fatal(tmp_path):
    plan = ScriptedPlan([FailedReductionError()] * 3 + [_job("BUG")])
    driver = ReductionDriver(plan)

    with pytest.raises(FailedReductionError):
        driver.do_reduction(_job("BUG", "a"), "shader", 0, FakeJudge(_has_bug), tmp_path)


def test_judge_error_is_fatal(tmp_path):
    driver = ReductionDriver(ScriptedPlan([]))

    with pytest.raises(JudgeError):
        driver.do_reduction(_job("BUG"), "shader", 0, BrokenJudge(), tmp_path)


def test_bindings_are_written_but_never_kept_in_memory(tmp_path):
    uniforms = {"time": {"func": "glUniform1f", "args": [0.0], "binding": 3}}
    initial = _job("#version 310 es",
                   "layout(set = 0, binding = 3) uniform buf3 { float time; };",
                   "BUG", "a", uniforms=uniforms)
    free_uniforms = {"time": {"func": "glUniform1f", "args": [0.0]}}
    candidate = _job("#version 310 es", "uniform float time;", "BUG", uniforms=free_uniforms)
    plan = ScriptedPlan([candidate])
    judge = FakeJudge(_has_bug)
    driver = ReductionDriver(plan)

    driver.do_reduction(initial, "shader", 0, judge, tmp_path)

    for job in judge.jobs:
        assert job.uniforms.get_binding("time") == 3
        assert "binding = 3" in job.get_shader(ShaderKind.FRAGMENT).text
    assert all(not state.has_uniform_bindings() for state in plan.seen_states)
    assert not driver.current_state.has_uniform_bindings()
    assert plan.seen_states[0] == initial.without_uniform_bindings()


def test_binding_round_trip_judges_like_original(tmp_path):
    uniforms = {"resolution": {"func": "glUniform2f", "args": [1.0, 1.0], "binding": 0}}
    initial = _job("layout(set = 0, binding = 0) uniform buf0 { vec2 resolution; };",
                   "BUG", uniforms=uniforms)
    judge = FakeJudge(lambda job: job == initial)

    result = ReductionDriver(ScriptedPlan([])).do_reduction(initial, "shader", 0, judge, tmp_path)

    assert result == "shader_reduced_final"
    assert judge.calls[0] == "shader.json"


def test_fallback_final_has_no_result_for_rejected_simplification(tmp_path):
    initial = _job("#version 310 es", "float x = _GLF_IDENTITY(BUG, 1.0);")

    class ResultWritingJudge(FakeJudge):
        def judge(self, shader_job_file, result_file):
            Path(result_file).write_text("{}\n")
            return super().judge(shader_job_file, result_file)

    driver = ReductionDriver(ScriptedPlan([]))
    driver.do_reduction(initial, "shader", 0, ResultWritingJudge(_has_bug), tmp_path)

    assert (tmp_path / "shader_reduced_final.json").exists()
    assert not (tmp_path / "shader_reduced_final.info.json").exists()
