"""
Execution module for glreduce.

Handles running interestingness tests on shader jobs.
"""

from .judge import FileJudge, JudgeError, JudgeResult, ScriptJudge, Verdict
