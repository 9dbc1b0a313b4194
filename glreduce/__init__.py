"""
glreduce: Shader Job Test-Case Reducer

glreduce shrinks a shader job that triggers an interesting behaviour
(typically a graphics compiler or driver bug) into a minimal reproducer.
Every candidate is judged by an external interestingness test.
"""

__version__ = "0.1.0"
