"""Exceptions raised by the CHIP-8 virtual machine."""


class Chip8Error(Exception):
    """Base class for every error the machine reports."""


class LoadError(Chip8Error):
    pass


class RomTooLarge(LoadError):
    def __init__(self, size, capacity):
        self.size = size
        self.capacity = capacity
        super().__init__(f"ROM is {size} bytes, only {capacity} bytes fit in program memory")


class ExecError(Chip8Error):
    """A fault raised while executing an instruction. Halts the machine."""


class InvalidOpcode(ExecError):
    def __init__(self, opcode, address=None):
        self.opcode = opcode
        self.address = address
        where = "" if address is None else f" at 0x{address:03X}"
        super().__init__(f"Invalid opcode 0x{opcode:04X}{where}")


class StackOverflow(ExecError):
    def __init__(self, address):
        self.address = address
        super().__init__(f"Stack overflow calling from 0x{address:03X}")


class StackUnderflow(ExecError):
    def __init__(self, address):
        self.address = address
        super().__init__(f"Stack underflow returning from 0x{address:03X}")


class MemoryOutOfRange(ExecError):
    def __init__(self, address):
        self.address = address
        super().__init__(f"Memory access out of range: 0x{address:X}")
