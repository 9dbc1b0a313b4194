"""
Shader job module for glreduce.

Holds the in-memory shader job model and its on-disk format.
"""

from .uniforms import UniformsInfo
from .shader_job import ShaderJob, ShaderKind, ShaderSource
from .file_ops import ShaderJobFileOperations, result_path
