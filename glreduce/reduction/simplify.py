"""
Final cleanup of reduced shaders.

Replaces GraphicsFuzz transformation macros by their plain meaning so
the reduced shader compiles without the macro definitions.
"""

import re
from typing import List, Optional, Tuple

from ..job.file_ops import strip_defines
from ..job.shader_job import ShaderJob, ShaderSource


# _GLF_IDENTITY(original, transformed) -> (transformed)
VALUE_MACROS = {"_GLF_ZERO", "_GLF_ONE", "_GLF_FALSE", "_GLF_TRUE", "_GLF_IDENTITY"}

# _GLF_FUZZED(x) -> (x)
PAREN_MACROS = {"_GLF_DEAD", "_GLF_FUZZED"}

# _GLF_WRAPPED_LOOP(x) -> x
WRAPPER_MACROS = {"_GLF_WRAPPED_LOOP", "_GLF_WRAPPED_IF_TRUE",
                  "_GLF_WRAPPED_IF_FALSE", "_GLF_SWITCH"}

_MACRO_RE = re.compile(r"\b(" + "|".join(sorted(VALUE_MACROS | PAREN_MACROS | WRAPPER_MACROS))
                       + r")\s*\(")


def _split_call(text: str, open_index: int) -> Optional[Tuple[List[str], int]]:
    """
    Split the arguments of a call whose '(' is at open_index.

    Returns:
        (arguments, index after the closing parenthesis), or None if
        the parentheses are unbalanced
    """
    depth = 0
    args: List[str] = []
    start = open_index + 1
    for i in range(open_index, len(text)):
        char = text[i]
        if char in "([":
            depth += 1
        elif char in ")]":
            depth -= 1
            if depth == 0:
                args.append(text[start:i])
                return args, i + 1
        elif char == "," and depth == 1:
            args.append(text[start:i])
            start = i + 1
    return None


def simplify_text(text: str) -> str:
    """Remove GraphicsFuzz macros from shader text."""
    text = strip_defines(text)
    out: List[str] = []
    pos = 0
    while True:
        match = _MACRO_RE.search(text, pos)
        if match is None:
            out.append(text[pos:])
            return "".join(out)

        name = match.group(1)
        call = _split_call(text, match.end() - 1)
        expected = 2 if name in VALUE_MACROS else 1
        if call is None or len(call[0]) != expected:
            # Not a well-formed use; keep the name and carry on after it
            out.append(text[pos:match.end()])
            pos = match.end()
            continue

        args, after = call
        inner = simplify_text(args[-1]).strip()
        out.append(text[pos:match.start()])
        if name in WRAPPER_MACROS:
            out.append(inner)
        else:
            out.append(f"({inner})")
        pos = after


def simplify(job: ShaderJob) -> ShaderJob:
    """Cleanup pass applied once a reduction has finished."""
    return ShaderJob(
        job.license,
        job.uniforms,
        tuple(ShaderSource(s.kind, simplify_text(s.text)) for s in job.shaders),
    )
