"""
Uniform descriptors for shader jobs.

A shader job's uniforms are described by a JSON object mapping each
uniform name to its setter function, arguments and (for Vulkan-style
consumers) a descriptor binding:

    {"resolution": {"func": "glUniform2f", "args": [256.0, 256.0], "binding": 0}}

Keys starting with '$' carry job metadata (e.g. "$compute") and are
never uniforms.
"""

import copy
import json
from typing import Any, Dict, List, Optional


METADATA_PREFIX = "$"


class UniformsInfo:
    """
    Immutable view over a uniforms JSON object.

    Binding changes return a new UniformsInfo; the wrapped mapping is
    never modified after construction.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        """Initialize from a parsed uniforms JSON object."""
        self._data: Dict[str, Any] = copy.deepcopy(data) if data else {}

    def uniform_names(self) -> List[str]:
        """Names of all uniforms, sorted."""
        return sorted(name for name in self._data
                      if not name.startswith(METADATA_PREFIX))

    def get(self, name: str) -> Dict[str, Any]:
        """Descriptor for a single uniform (a copy)."""
        return copy.deepcopy(self._data[name])

    def has_bindings(self) -> bool:
        """True if any uniform carries a binding."""
        return any("binding" in self._data[name] for name in self.uniform_names())

    def get_binding(self, name: str) -> int:
        """Binding of a uniform; only valid in the binding-bound form."""
        entry = self._data[name]
        if "binding" not in entry:
            raise ValueError(f"Uniform '{name}' has no binding")
        return entry["binding"]

    def bindings(self) -> Dict[str, int]:
        """Binding of every bound uniform."""
        return {name: self._data[name]["binding"] for name in self.uniform_names()
                if "binding" in self._data[name]}

    def with_bindings(self, bindings: Optional[Dict[str, int]] = None) -> 'UniformsInfo':
        """
        Return a copy where every uniform has a binding.

        Args:
            bindings: Bindings to restore, e.g. from bindings() before
                they were removed. Uniforms not listed take the lowest
                unused numbers in sorted name order.
        """
        if self.has_bindings():
            raise ValueError("Uniforms already have bindings")
        bindings = dict(bindings or {})
        data = copy.deepcopy(self._data)
        used = set(bindings.values())
        next_binding = 0
        for name in self.uniform_names():
            if name in bindings:
                data[name]["binding"] = bindings[name]
                continue
            while next_binding in used:
                next_binding += 1
            data[name]["binding"] = next_binding
            used.add(next_binding)
        return UniformsInfo(data)

    def without_bindings(self) -> 'UniformsInfo':
        """Return a copy with all bindings removed."""
        if not self.has_bindings():
            raise ValueError("Uniforms have no bindings to remove")
        data = copy.deepcopy(self._data)
        for name in self.uniform_names():
            data[name].pop("binding", None)
        return UniformsInfo(data)

    def to_json(self) -> Dict[str, Any]:
        """Plain JSON-serialisable copy."""
        return copy.deepcopy(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UniformsInfo):
            return NotImplemented
        return self._data == other._data

    def __hash__(self) -> int:
        return hash(json.dumps(self._data, sort_keys=True))

    def __repr__(self) -> str:
        return f"UniformsInfo({self._data!r})"
