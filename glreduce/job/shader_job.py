"""
Shader job representation.

A shader job bundles one or more shader sources, the license text that
accompanies them, and the uniforms descriptor. Jobs are immutable:
every reduction step produces a new ShaderJob.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .uniforms import UniformsInfo


class ShaderKind(Enum):
    """Shader stages, valued by their file extension."""
    VERTEX = ".vert"
    FRAGMENT = ".frag"
    COMPUTE = ".comp"

    @property
    def ext(self) -> str:
        return self.value


@dataclass(frozen=True)
class ShaderSource:
    """A single shader stage."""
    kind: ShaderKind
    text: str

    @property
    def lines(self) -> List[str]:
        return self.text.splitlines()


# Type with an optional precision qualifier, e.g. "highp vec2"
_TYPE = r"(?P<type>(?:(?:lowp|mediump|highp)\s+)?\w+)"

# uniform vec2 resolution;
_FREE_UNIFORM_RE = re.compile(
    r"^(?P<indent>[ \t]*)uniform\s+" + _TYPE + r"\s+(?P<decl>(?P<name>\w+)\s*(\[\s*\d+\s*\])?)\s*;",
    re.MULTILINE,
)

# layout(set = 0, binding = 3) uniform buf3 { vec2 resolution; };
_BOUND_UNIFORM_RE = re.compile(
    r"^(?P<indent>[ \t]*)layout\s*\(\s*set\s*=\s*0\s*,\s*binding\s*=\s*(?P<binding>\d+)\s*\)"
    r"\s*uniform\s+\w+\s*\{\s*" + _TYPE + r"\s+(?P<decl>(?P<name>\w+)\s*(\[\s*\d+\s*\])?)\s*;\s*\}\s*;",
    re.MULTILINE,
)


def _bind_declarations(text: str, bindings: Dict[str, int]) -> str:
    """Rewrite plain uniform declarations into Vulkan-style uniform blocks."""
    def repl(match: 're.Match[str]') -> str:
        name = match.group("name")
        if name not in bindings:
            return match.group(0)
        binding = bindings[name]
        return (f"{match.group('indent')}layout(set = 0, binding = {binding}) "
                f"uniform buf{binding} {{ {match.group('type')} {match.group('decl')}; }};")
    return _FREE_UNIFORM_RE.sub(repl, text)


def _unbind_declarations(text: str, names: List[str]) -> str:
    """Rewrite Vulkan-style uniform blocks back into plain declarations."""
    def repl(match: 're.Match[str]') -> str:
        if match.group("name") not in names:
            return match.group(0)
        return f"{match.group('indent')}uniform {match.group('type')} {match.group('decl')};"
    return _BOUND_UNIFORM_RE.sub(repl, text)


@dataclass(frozen=True)
class ShaderJob:
    """
    One program variant under reduction.

    The job is either binding-free (used while reducing) or
    binding-bound (used when materialising for Vulkan-style
    consumers). Switching between the two returns a new job.
    """
    license: str = ""
    uniforms: UniformsInfo = field(default_factory=UniformsInfo)
    shaders: Tuple[ShaderSource, ...] = ()

    def __post_init__(self):
        # Accept any sequence of shaders but store a tuple
        object.__setattr__(self, "shaders", tuple(self.shaders))

    def has_uniform_bindings(self) -> bool:
        return self.uniforms.has_bindings()

    def with_uniform_bindings(self, bindings: Optional[Dict[str, int]] = None) -> 'ShaderJob':
        """Return the binding-bound form of this job."""
        uniforms = self.uniforms.with_bindings(bindings)
        bindings = uniforms.bindings()
        shaders = [ShaderSource(s.kind, _bind_declarations(s.text, bindings))
                   for s in self.shaders]
        return ShaderJob(self.license, uniforms, tuple(shaders))

    def without_uniform_bindings(self) -> 'ShaderJob':
        """Return the binding-free form of this job."""
        uniforms = self.uniforms.without_bindings()
        names = uniforms.uniform_names()
        shaders = [ShaderSource(s.kind, _unbind_declarations(s.text, names))
                   for s in self.shaders]
        return ShaderJob(self.license, uniforms, tuple(shaders))

    def with_shaders(self, shaders) -> 'ShaderJob':
        """Return a copy with the shader sources replaced."""
        return replace(self, shaders=tuple(shaders))

    def get_shader(self, kind: ShaderKind) -> ShaderSource:
        for shader in self.shaders:
            if shader.kind is kind:
                return shader
        raise KeyError(kind)

    def line_count(self) -> int:
        """Total number of shader lines."""
        return sum(len(s.lines) for s in self.shaders)
