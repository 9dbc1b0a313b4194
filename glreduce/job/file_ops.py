"""
On-disk shader job format.

A shader job named <base> is stored as:
- <base>.json       uniforms descriptor
- <base>.<ext>      one file per shader stage (.vert, .frag, .comp)
- <base>.license    license text (only when non-empty)

The judge writes its diagnostics next to the job as <base>.info.json.
"""

import hashlib
import json
import logging
import shutil
from pathlib import Path
from typing import List

from .shader_job import ShaderJob, ShaderKind, ShaderSource
from .uniforms import UniformsInfo


logger = logging.getLogger('glreduce.job')

LICENSE_EXT = ".license"
RESULT_SUFFIX = ".info.json"

# Macro definitions needed to compile shaders that still contain
# GraphicsFuzz transformation macros.
GRAPHICSFUZZ_DEFINES = (
    "#ifndef REDUCER\n"
    " #define _GLF_ZERO(X, Y)          (Y)\n"
    " #define _GLF_ONE(X, Y)           (Y)\n"
    " #define _GLF_FALSE(X, Y)         (Y)\n"
    " #define _GLF_TRUE(X, Y)          (Y)\n"
    " #define _GLF_IDENTITY(X, Y)      (Y)\n"
    " #define _GLF_DEAD(X)             (X)\n"
    " #define _GLF_FUZZED(X)           (X)\n"
    " #define _GLF_WRAPPED_LOOP(X)     X\n"
    " #define _GLF_WRAPPED_IF_TRUE(X)  X\n"
    " #define _GLF_WRAPPED_IF_FALSE(X) X\n"
    " #define _GLF_SWITCH(X)           X\n"
    "#endif\n"
)


def job_base(json_path: Path) -> Path:
    """Path of the job without its .json suffix."""
    return json_path.with_suffix("")


def sibling(base: Path, ext: str) -> Path:
    """File next to a job base, e.g. sibling(base, ".frag")."""
    return base.with_name(base.name + ext)


def result_path(json_path: Path) -> Path:
    """Path of the judge result file belonging to a job."""
    return json_path.with_name(json_path.stem + RESULT_SUFFIX)


def insert_defines(text: str) -> str:
    """Insert the macro definitions after the first #version line, if any."""
    lines = text.splitlines(keepends=True)
    for i, line in enumerate(lines):
        if line.lstrip().startswith("#version"):
            head = line if line.endswith("\n") else line + "\n"
            return "".join(lines[:i]) + head + GRAPHICSFUZZ_DEFINES + "".join(lines[i + 1:])
    return GRAPHICSFUZZ_DEFINES + text


def strip_defines(text: str) -> str:
    """Remove a macro definition block inserted by insert_defines."""
    return text.replace(GRAPHICSFUZZ_DEFINES, "", 1)


class ShaderJobFileOperations:
    """
    Reads, writes, hashes and moves shader jobs.

    All paths refer to the job's .json file; sibling files are derived
    from it.
    """

    def __init__(self, emit_graphicsfuzz_defines: bool = False):
        """Initialize file operations."""
        self.emit_graphicsfuzz_defines = emit_graphicsfuzz_defines

    def read_shader_job(self, json_path: Path) -> ShaderJob:
        """
        Read a shader job from disk.

        Args:
            json_path: Path to the job's uniforms .json file

        Returns:
            The job, with any macro definition block removed
        """
        json_path = Path(json_path)
        with open(json_path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{json_path}: uniforms must be a JSON object")

        base = job_base(json_path)
        shaders: List[ShaderSource] = []
        for kind in ShaderKind:
            shader_path = sibling(base, kind.ext)
            if shader_path.exists():
                shaders.append(ShaderSource(kind, strip_defines(shader_path.read_text())))

        if not shaders:
            raise FileNotFoundError(f"No shader files found for {json_path}")

        license_path = sibling(base, LICENSE_EXT)
        license_text = license_path.read_text() if license_path.exists() else ""

        return ShaderJob(license=license_text, uniforms=UniformsInfo(data), shaders=shaders)

    def write_shader_job(self, job: ShaderJob, json_path: Path) -> None:
        """Write a shader job, replacing any previous files of the same name."""
        json_path = Path(json_path)
        base = job_base(json_path)

        with open(json_path, 'w') as f:
            json.dump(job.uniforms.to_json(), f, indent=2)
            f.write("\n")

        for kind in ShaderKind:
            stale = sibling(base, kind.ext)
            if stale.exists():
                stale.unlink()
        for shader in job.shaders:
            text = shader.text
            if self.emit_graphicsfuzz_defines:
                text = insert_defines(text)
            sibling(base, shader.kind.ext).write_text(text)

        license_path = sibling(base, LICENSE_EXT)
        if job.license:
            license_path.write_text(job.license)
        elif license_path.exists():
            license_path.unlink()

    def shader_job_files(self, json_path: Path) -> List[Path]:
        """Existing files of a job in a fixed order."""
        json_path = Path(json_path)
        base = job_base(json_path)
        candidates = [json_path, sibling(base, LICENSE_EXT)]
        candidates += [sibling(base, kind.ext) for kind in ShaderKind]
        return [p for p in candidates if p.exists()]

    def shader_job_file_hash(self, json_path: Path) -> str:
        """Content hash of a job as written to disk."""
        digest = hashlib.sha256()
        for path in self.shader_job_files(json_path):
            # Separate files so content cannot shift between them
            digest.update(path.suffix.encode())
            digest.update(b"\0")
            digest.update(path.read_bytes())
            digest.update(b"\0")
        return digest.hexdigest()

    def move_shader_job(self, src_json: Path, dst_json: Path,
                        overwrite: bool = False) -> None:
        """Move a job (and its judge result file) to a new name."""
        src_json = Path(src_json)
        dst_json = Path(dst_json)
        if not src_json.exists():
            raise FileNotFoundError(f"Shader job not found: {src_json}")
        if dst_json.exists() and not overwrite:
            raise FileExistsError(f"Shader job already exists: {dst_json}")

        # Stale stages of a previous job under dst must not survive the move
        for path in self.shader_job_files(dst_json):
            path.unlink()

        src_base = job_base(src_json)
        dst_base = job_base(dst_json)
        moves = [(src_json, dst_json), (result_path(src_json), result_path(dst_json))]
        for ext in [LICENSE_EXT] + [kind.ext for kind in ShaderKind]:
            moves.append((sibling(src_base, ext), sibling(dst_base, ext)))

        for src, dst in moves:
            if src.exists():
                logger.debug(f"Moving {src} -> {dst}")
                shutil.move(str(src), str(dst))

    def create_file(self, path: Path) -> None:
        """Create an empty marker file."""
        Path(path).touch()
