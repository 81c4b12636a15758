"""VERISM — state-machine specification compiler"""

__version__ = "0.1.0"

from verism.errors import CompileError, ErrorKind, VerismError
from verism.pipeline import compile_source, compile_program, check_source

__all__ = [
    "CompileError",
    "ErrorKind",
    "VerismError",
    "compile_source",
    "compile_program",
    "check_source",
    "__version__",
]
