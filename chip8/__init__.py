"""A CHIP-8 interpreter core with a Tkinter front end."""

from .errors import (Chip8Error, ExecError, InvalidOpcode, LoadError, MemoryOutOfRange,
                     RomTooLarge, StackOverflow, StackUnderflow)
from .instructions import Instruction, Op, decode, disassemble
from .machine import Machine, Quirks

__version__ = "1.0.0"

__all__ = [
    "Chip8Error", "ExecError", "InvalidOpcode", "LoadError", "MemoryOutOfRange",
    "RomTooLarge", "StackOverflow", "StackUnderflow",
    "Instruction", "Op", "decode", "disassemble",
    "Machine", "Quirks",
]
