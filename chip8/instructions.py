"""
Opcode decoding for the CHIP-8 instruction set.

Decoding is kept separate from execution: ``decode`` turns a 16-bit word
into an ``Instruction`` whose properties expose the operand fields, and the
machine only ever dispatches on ``Instruction.op``.

Operand naming follows Cowgod's reference:
    nnn - 12-bit address        kk - 8-bit immediate
    x   - register (bits 8-11)  y  - register (bits 4-7)
    n   - 4-bit nibble (bits 0-3)
"""

from enum import Enum
from typing import NamedTuple

from .errors import InvalidOpcode


class Op(Enum):
    CLS = "00E0"
    RET = "00EE"
    JP = "1nnn"
    CALL = "2nnn"
    SE_BYTE = "3xkk"
    SNE_BYTE = "4xkk"
    SE_REG = "5xy0"
    LD_BYTE = "6xkk"
    ADD_BYTE = "7xkk"
    LD_REG = "8xy0"
    OR = "8xy1"
    AND = "8xy2"
    XOR = "8xy3"
    ADD_REG = "8xy4"
    SUB = "8xy5"
    SHR = "8xy6"
    SUBN = "8xy7"
    SHL = "8xyE"
    SNE_REG = "9xy0"
    LD_I = "Annn"
    JP_V0 = "Bnnn"
    RND = "Cxkk"
    DRW = "Dxyn"
    SKP = "Ex9E"
    SKNP = "ExA1"
    LD_VX_DT = "Fx07"
    LD_VX_K = "Fx0A"
    LD_DT = "Fx15"
    LD_ST = "Fx18"
    ADD_I = "Fx1E"
    LD_F = "Fx29"
    LD_B = "Fx33"
    LD_MEM_VX = "Fx55"
    LD_VX_MEM = "Fx65"


# Opcodes with a fixed low nibble, keyed by (high nibble, low nibble)
_XY_OPS = {
    (0x5, 0x0): Op.SE_REG,
    (0x8, 0x0): Op.LD_REG,
    (0x8, 0x1): Op.OR,
    (0x8, 0x2): Op.AND,
    (0x8, 0x3): Op.XOR,
    (0x8, 0x4): Op.ADD_REG,
    (0x8, 0x5): Op.SUB,
    (0x8, 0x6): Op.SHR,
    (0x8, 0x7): Op.SUBN,
    (0x8, 0xE): Op.SHL,
    (0x9, 0x0): Op.SNE_REG,
}

# Opcodes with a fixed low byte, keyed by (high nibble, low byte)
_X_OPS = {
    (0xE, 0x9E): Op.SKP,
    (0xE, 0xA1): Op.SKNP,
    (0xF, 0x07): Op.LD_VX_DT,
    (0xF, 0x0A): Op.LD_VX_K,
    (0xF, 0x15): Op.LD_DT,
    (0xF, 0x18): Op.LD_ST,
    (0xF, 0x1E): Op.ADD_I,
    (0xF, 0x29): Op.LD_F,
    (0xF, 0x33): Op.LD_B,
    (0xF, 0x55): Op.LD_MEM_VX,
    (0xF, 0x65): Op.LD_VX_MEM,
}

_SIMPLE_OPS = {
    0x1: Op.JP,
    0x2: Op.CALL,
    0x3: Op.SE_BYTE,
    0x4: Op.SNE_BYTE,
    0x6: Op.LD_BYTE,
    0x7: Op.ADD_BYTE,
    0xA: Op.LD_I,
    0xB: Op.JP_V0,
    0xC: Op.RND,
    0xD: Op.DRW,
}


class Instruction(NamedTuple):
    """A decoded instruction word with its operand fields exposed as properties."""

    op: Op
    opcode: int

    @property
    def x(self):
        return (self.opcode & 0x0F00) >> 8

    @property
    def y(self):
        return (self.opcode & 0x00F0) >> 4

    @property
    def n(self):
        return self.opcode & 0x000F

    @property
    def kk(self):
        return self.opcode & 0x00FF

    @property
    def nnn(self):
        return self.opcode & 0x0FFF

    def mnemonic(self):
        """Render the instruction as assembler text, e.g. ``ADD V0, V1``."""
        return _MNEMONICS[self.op].format(
            x=f"{self.x:X}", y=f"{self.y:X}", n=self.n,
            kk=f"0x{self.kk:02X}", nnn=f"0x{self.nnn:03X}",
        )

    def __str__(self):
        return self.mnemonic()


_MNEMONICS = {
    Op.CLS: "CLS",
    Op.RET: "RET",
    Op.JP: "JP {nnn}",
    Op.CALL: "CALL {nnn}",
    Op.SE_BYTE: "SE V{x}, {kk}",
    Op.SNE_BYTE: "SNE V{x}, {kk}",
    Op.SE_REG: "SE V{x}, V{y}",
    Op.LD_BYTE: "LD V{x}, {kk}",
    Op.ADD_BYTE: "ADD V{x}, {kk}",
    Op.LD_REG: "LD V{x}, V{y}",
    Op.OR: "OR V{x}, V{y}",
    Op.AND: "AND V{x}, V{y}",
    Op.XOR: "XOR V{x}, V{y}",
    Op.ADD_REG: "ADD V{x}, V{y}",
    Op.SUB: "SUB V{x}, V{y}",
    Op.SHR: "SHR V{x}, V{y}",
    Op.SUBN: "SUBN V{x}, V{y}",
    Op.SHL: "SHL V{x}, V{y}",
    Op.SNE_REG: "SNE V{x}, V{y}",
    Op.LD_I: "LD I, {nnn}",
    Op.JP_V0: "JP V0, {nnn}",
    Op.RND: "RND V{x}, {kk}",
    Op.DRW: "DRW V{x}, V{y}, {n}",
    Op.SKP: "SKP V{x}",
    Op.SKNP: "SKNP V{x}",
    Op.LD_VX_DT: "LD V{x}, DT",
    Op.LD_VX_K: "LD V{x}, K",
    Op.LD_DT: "LD DT, V{x}",
    Op.LD_ST: "LD ST, V{x}",
    Op.ADD_I: "ADD I, V{x}",
    Op.LD_F: "LD F, V{x}",
    Op.LD_B: "LD B, V{x}",
    Op.LD_MEM_VX: "LD [I], V{x}",
    Op.LD_VX_MEM: "LD V{x}, [I]",
}


def decode(opcode):
    """
    Decode a 16-bit instruction word.

    Raises InvalidOpcode when the word matches no CHIP-8 instruction,
    including 0nnn machine-code calls, which this interpreter does not run.
    """
    if not 0 <= opcode <= 0xFFFF:
        raise ValueError(f"opcode must be a 16-bit word, got {opcode!r}")

    op_type = (opcode & 0xF000) >> 12

    if op_type == 0x0:
        if opcode == 0x00E0:
            return Instruction(Op.CLS, opcode)
        elif opcode == 0x00EE:
            return Instruction(Op.RET, opcode)

    elif op_type in (0x5, 0x8, 0x9):
        op = _XY_OPS.get((op_type, opcode & 0x000F))
        if op is not None:
            return Instruction(op, opcode)

    elif op_type in (0xE, 0xF):
        op = _X_OPS.get((op_type, opcode & 0x00FF))
        if op is not None:
            return Instruction(op, opcode)

    else:
        return Instruction(_SIMPLE_OPS[op_type], opcode)

    raise InvalidOpcode(opcode)


def disassemble(opcode):
    """Return the mnemonic for ``opcode``, or ``??? 0xNNNN`` if it is not decodable."""
    try:
        return decode(opcode).mnemonic()
    except InvalidOpcode:
        return f"??? 0x{opcode:04X}"
