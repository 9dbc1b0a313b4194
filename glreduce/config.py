"""
Configuration for glreduce reduction sessions.
"""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional


@dataclass
class ReducerConfig:
    """Main reducer configuration."""
    # Working directory for the step trail and final output
    output_dir: Path = field(default_factory=lambda: Path("./reduction"))

    # Maximum number of reduction attempts (-1 = unbounded)
    step_limit: int = -1

    # Continue from the trail already present in output_dir
    continue_previous: bool = False

    # Emit the GraphicsFuzz macro definitions when writing shaders
    emit_graphicsfuzz_defines: bool = False

    # Interestingness test: the shader job .json path is appended
    judge_command: List[str] = field(default_factory=list)

    # Judge timeout in ms
    judge_timeout: int = 60000

    # Treat a judge timeout as interesting (for hang reductions)
    timeout_is_interesting: bool = False


_PATH_FIELDS = {"output_dir"}


def load_config(config_path: Optional[Path] = None) -> ReducerConfig:
    """Load configuration from a JSON file or return default."""
    if config_path is None:
        return ReducerConfig()

    with open(config_path) as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a JSON object")

    known = {fld.name for fld in fields(ReducerConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config keys in {config_path}: {', '.join(unknown)}")

    for name in _PATH_FIELDS & set(data):
        data[name] = Path(data[name])
    if "judge_command" in data:
        data["judge_command"] = [str(part) for part in data["judge_command"]]

    return ReducerConfig(**data)
