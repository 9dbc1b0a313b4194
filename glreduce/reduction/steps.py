"""
Reduction step naming and the on-disk step trail.

Every reduction attempt leaves <base>_reduced_<NNNN>_<outcome>.json in
the work directory. The trail is the audit record of a reduction and
the point from which an interrupted reduction continues.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple


SUCCESS = "success"
FAIL = "fail"

NOT_INTERESTING = "NOT_INTERESTING"
REDUCTION_INCOMPLETE = "REDUCTION_INCOMPLETE"


def reduction_step_name(base: str, attempt: int,
                        indicator: Optional[str] = None) -> str:
    """Short name of a reduction step's shader job."""
    name = f"{base}_reduced_{attempt:04d}"
    if indicator:
        name += f"_{indicator}"
    return name


def final_output_name(base: str) -> str:
    return f"{base}_reduced_final"


@dataclass
class StepRecord:
    """A judged reduction step found in the work directory."""
    attempt: int
    outcome: str
    path: Path

    @property
    def accepted(self) -> bool:
        return self.outcome == SUCCESS


def find_step_records(work_dir: Path, base: str) -> List[StepRecord]:
    """All judged steps for a job, ordered by attempt."""
    pattern = re.compile(
        re.escape(base) + r"_reduced_(\d{4,})_(" + SUCCESS + "|" + FAIL + r")\.json$"
    )
    records = []
    for path in Path(work_dir).iterdir():
        match = pattern.match(path.name)
        if match:
            records.append(StepRecord(int(match.group(1)), match.group(2), path))
    return sorted(records, key=lambda r: r.attempt)


def latest_resume_point(work_dir: Path, base: str) -> Tuple[int, Optional[Path]]:
    """
    Where to continue an interrupted reduction.

    Returns:
        (offset, path) where offset is the highest attempt on disk and
        path is the latest accepted step, or None if no step was accepted
    """
    records = find_step_records(work_dir, base)
    if not records:
        return 0, None
    accepted = [r for r in records if r.accepted]
    return records[-1].attempt, accepted[-1].path if accepted else None
