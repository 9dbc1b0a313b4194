"""
Program reduction module for glreduce.

Shrinks interesting shader jobs step by step while an external judge
confirms the behaviour of interest is preserved.
"""

from .cache import ResultCache, ReductionLoopError
from .plan import (
    ReductionPlan, LineChunkPlan,
    ReductionPlanError, NoMoreToReduceError, FailedReductionError,
)
from .simplify import simplify
from .steps import StepRecord, reduction_step_name, final_output_name
from .driver import ReductionDriver, ReductionStats
