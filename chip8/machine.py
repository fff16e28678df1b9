"""
CHIP-8 virtual machine core.

The Machine owns every piece of emulated state: 4 KiB of memory, the V0-VF
register file, the index register and program counter, a 16-level call
stack, the delay and sound timers, the 64x32 framebuffer and the 16-key
keypad. It never sleeps, spawns threads or touches a display; the driver
advances it with explicit calls:

    tick()         once per emulated CPU cycle (one instruction)
    tick_timers()  at 60 Hz, independent of the CPU rate

VF is the flag register. Every opcode that reports a flag computes its result
from the operand values read before the operation, stores the result into
Vx and only then writes VF, so ``8Fy4`` and friends leave the flag in VF.
"""

import logging
import random
from dataclasses import dataclass

from .errors import (ExecError, InvalidOpcode, MemoryOutOfRange, RomTooLarge,
                     StackOverflow, StackUnderflow)
from .instructions import Op, decode

logger = logging.getLogger(__name__)

# --- Constants ---
MEMORY_SIZE = 4096
PROGRAM_START = 0x200
PROGRAM_CAPACITY = MEMORY_SIZE - PROGRAM_START
FONT_START = 0x000
GLYPH_SIZE = 5
STACK_DEPTH = 16
SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32
KEY_COUNT = 16
FLAG = 0xF

# Fontset for characters 0-F. Each character is 5 bytes long.
FONTSET = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])


@dataclass(frozen=True)
class Quirks:
    """
    Behaviours that differ between historical interpreters.

    shift_uses_vy            8xy6/8xyE shift Vy into Vx (COSMAC VIP) instead
                             of shifting Vx in place (CHIP-48 and later).
    load_store_increments_i  Fx55/Fx65 leave I pointing past the last
                             register transferred (COSMAC VIP).
    """

    shift_uses_vy: bool = False
    load_store_increments_i: bool = False


class Machine:
    """
    A single CHIP-8 machine. Not thread-safe: callers on several threads must
    serialise every call themselves.
    """

    def __init__(self, quirks=None, rng=None):
        self.quirks = quirks if quirks is not None else Quirks()
        self.rng = rng if rng is not None else random.Random()

        self._handlers = {
            Op.CLS: self._cls,
            Op.RET: self._ret,
            Op.JP: self._jp,
            Op.CALL: self._call,
            Op.SE_BYTE: self._se_byte,
            Op.SNE_BYTE: self._sne_byte,
            Op.SE_REG: self._se_reg,
            Op.LD_BYTE: self._ld_byte,
            Op.ADD_BYTE: self._add_byte,
            Op.LD_REG: self._ld_reg,
            Op.OR: self._or,
            Op.AND: self._and,
            Op.XOR: self._xor,
            Op.ADD_REG: self._add_reg,
            Op.SUB: self._sub,
            Op.SHR: self._shr,
            Op.SUBN: self._subn,
            Op.SHL: self._shl,
            Op.SNE_REG: self._sne_reg,
            Op.LD_I: self._ld_i,
            Op.JP_V0: self._jp_v0,
            Op.RND: self._rnd,
            Op.DRW: self._drw,
            Op.SKP: self._skp,
            Op.SKNP: self._sknp,
            Op.LD_VX_DT: self._ld_vx_dt,
            Op.LD_VX_K: self._ld_vx_k,
            Op.LD_DT: self._ld_dt,
            Op.LD_ST: self._ld_st,
            Op.ADD_I: self._add_i,
            Op.LD_F: self._ld_f,
            Op.LD_B: self._ld_b,
            Op.LD_MEM_VX: self._ld_mem_vx,
            Op.LD_VX_MEM: self._ld_vx_mem,
        }

        self.reset()

    # --- Driver interface ---

    def reset(self):
        """Resets the VM to its power-on state: empty memory plus the fontset."""
        self._memory = bytearray(MEMORY_SIZE)
        self._memory[FONT_START:FONT_START + len(FONTSET)] = FONTSET
        self._v = bytearray(16)  # 16 8-bit general purpose registers (V0-VF)
        self._i = 0              # 16-bit index register
        self._pc = PROGRAM_START
        self._stack = []
        self._delay_timer = 0
        self._sound_timer = 0
        self._display = [False] * (SCREEN_WIDTH * SCREEN_HEIGHT)
        self._keys = [False] * KEY_COUNT
        self._awaiting_key = None  # register waiting for Fx0A, None if not waiting
        self._fault = None
        self._current = PROGRAM_START  # address of the instruction being executed

    def load(self, rom):
        """
        Reset the machine and copy ``rom`` into memory at 0x200.

        Raises RomTooLarge, leaving the machine untouched, if the ROM does
        not fit. Returns the number of bytes loaded.
        """
        rom = bytes(rom)
        if len(rom) > PROGRAM_CAPACITY:
            raise RomTooLarge(len(rom), PROGRAM_CAPACITY)

        self.reset()
        self._memory[PROGRAM_START:PROGRAM_START + len(rom)] = rom
        logger.info("Loaded %d byte ROM at 0x%03X", len(rom), PROGRAM_START)
        return len(rom)

    def tick(self):
        """
        Fetch, decode and execute one instruction.

        Raises an ExecError subclass on a fault. The machine then stays
        halted and every later call re-raises the same error until reset().
        """
        if self._fault is not None:
            raise self._fault.with_traceback(None)

        if self._awaiting_key is not None:
            key = self._first_pressed_key()
            if key is None:
                return
            self._v[self._awaiting_key] = key
            self._awaiting_key = None
            self._pc = (self._pc + 2) & 0xFFFF
            return

        address = self._pc
        try:
            opcode = self._fetch(address)
            try:
                instruction = decode(opcode)
            except InvalidOpcode:
                raise InvalidOpcode(opcode, address) from None
            logger.debug("%03X  %04X  %s", address, opcode, instruction)

            self._current = address
            self._pc = (address + 2) & 0xFFFF
            self._handlers[instruction.op](instruction)
        except ExecError as exc:
            # Faulting instructions leave pc on themselves.
            self._pc = address
            self._fault = exc
            logger.error("Machine halted: %s", exc)
            raise

    def tick_timers(self):
        """Decrement the delay and sound timers once, stopping at zero."""
        if self._delay_timer > 0:
            self._delay_timer -= 1
        if self._sound_timer > 0:
            self._sound_timer -= 1

    def set_key(self, index, pressed):
        if not 0 <= index < KEY_COUNT:
            raise ValueError(f"key index must be 0x0-0xF, got {index!r}")
        self._keys[index] = bool(pressed)

    def framebuffer(self):
        """Snapshot of the display as 32 rows of 64 booleans."""
        display = self._display
        return tuple(
            tuple(display[row * SCREEN_WIDTH:(row + 1) * SCREEN_WIDTH])
            for row in range(SCREEN_HEIGHT)
        )

    def sound_active(self):
        return self._sound_timer > 0

    def halted(self):
        return self._fault is not None

    def seed(self, value):
        """Re-seed the random source used by Cxkk."""
        self.rng.seed(value)

    # --- Read-only state ---

    @property
    def pc(self):
        return self._pc

    @property
    def i(self):
        return self._i

    @property
    def v(self):
        return tuple(self._v)

    @property
    def stack(self):
        return tuple(self._stack)

    @property
    def delay_timer(self):
        return self._delay_timer

    @property
    def sound_timer(self):
        return self._sound_timer

    @property
    def awaiting_key(self):
        return self._awaiting_key

    @property
    def fault(self):
        return self._fault

    def peek(self, address, length=1):
        """Copy ``length`` bytes of memory. Raises MemoryOutOfRange without halting."""
        self._check_range(address, length)
        return bytes(self._memory[address:address + length])

    # --- Internals ---

    def _fetch(self, address):
        self._check_range(address, 2)
        return (self._memory[address] << 8) | self._memory[address + 1]

    def _check_range(self, start, length):
        if length > 0 and start + length > MEMORY_SIZE:
            raise MemoryOutOfRange(start if start >= MEMORY_SIZE else MEMORY_SIZE)

    def _first_pressed_key(self):
        for key, pressed in enumerate(self._keys):
            if pressed:
                return key
        return None

    def _skip_if(self, condition):
        if condition:
            self._pc = (self._pc + 2) & 0xFFFF

    # --- Opcode implementations ---

    def _cls(self, ins):  # 00E0: CLS - Clear the display
        self._display = [False] * (SCREEN_WIDTH * SCREEN_HEIGHT)

    def _ret(self, ins):  # 00EE: RET - Return from a subroutine
        if not self._stack:
            raise StackUnderflow(self._current)
        self._pc = self._stack.pop()

    def _jp(self, ins):  # 1nnn: JP addr
        self._pc = ins.nnn

    def _call(self, ins):  # 2nnn: CALL addr
        if len(self._stack) >= STACK_DEPTH:
            raise StackOverflow(self._current)
        self._stack.append(self._pc)
        self._pc = ins.nnn

    def _se_byte(self, ins):  # 3xkk: SE Vx, byte
        self._skip_if(self._v[ins.x] == ins.kk)

    def _sne_byte(self, ins):  # 4xkk: SNE Vx, byte
        self._skip_if(self._v[ins.x] != ins.kk)

    def _se_reg(self, ins):  # 5xy0: SE Vx, Vy
        self._skip_if(self._v[ins.x] == self._v[ins.y])

    def _ld_byte(self, ins):  # 6xkk: LD Vx, byte
        self._v[ins.x] = ins.kk

    def _add_byte(self, ins):  # 7xkk: ADD Vx, byte (VF untouched)
        self._v[ins.x] = (self._v[ins.x] + ins.kk) & 0xFF

    def _ld_reg(self, ins):  # 8xy0: LD Vx, Vy
        self._v[ins.x] = self._v[ins.y]

    def _or(self, ins):  # 8xy1: OR Vx, Vy
        self._v[ins.x] |= self._v[ins.y]

    def _and(self, ins):  # 8xy2: AND Vx, Vy
        self._v[ins.x] &= self._v[ins.y]

    def _xor(self, ins):  # 8xy3: XOR Vx, Vy
        self._v[ins.x] ^= self._v[ins.y]

    def _add_reg(self, ins):  # 8xy4: ADD Vx, Vy - VF = carry
        vx, vy = self._v[ins.x], self._v[ins.y]
        result = vx + vy
        self._v[ins.x] = result & 0xFF
        self._v[FLAG] = 1 if result > 0xFF else 0

    def _sub(self, ins):  # 8xy5: SUB Vx, Vy - VF = NOT borrow
        vx, vy = self._v[ins.x], self._v[ins.y]
        self._v[ins.x] = (vx - vy) & 0xFF
        self._v[FLAG] = 1 if vx >= vy else 0

    def _shr(self, ins):  # 8xy6: SHR Vx {, Vy}
        source = self._v[ins.y if self.quirks.shift_uses_vy else ins.x]
        self._v[ins.x] = source >> 1
        self._v[FLAG] = source & 0x1

    def _subn(self, ins):  # 8xy7: SUBN Vx, Vy - VF = NOT borrow
        vx, vy = self._v[ins.x], self._v[ins.y]
        self._v[ins.x] = (vy - vx) & 0xFF
        self._v[FLAG] = 1 if vy >= vx else 0

    def _shl(self, ins):  # 8xyE: SHL Vx {, Vy}
        source = self._v[ins.y if self.quirks.shift_uses_vy else ins.x]
        self._v[ins.x] = (source << 1) & 0xFF
        self._v[FLAG] = (source & 0x80) >> 7

    def _sne_reg(self, ins):  # 9xy0: SNE Vx, Vy
        self._skip_if(self._v[ins.x] != self._v[ins.y])

    def _ld_i(self, ins):  # Annn: LD I, addr
        self._i = ins.nnn

    def _jp_v0(self, ins):  # Bnnn: JP V0, addr
        self._pc = (ins.nnn + self._v[0]) & 0xFFFF

    def _rnd(self, ins):  # Cxkk: RND Vx, byte
        self._v[ins.x] = self.rng.randint(0, 255) & ins.kk

    def _drw(self, ins):  # Dxyn: DRW Vx, Vy, nibble
        self._check_range(self._i, ins.n)
        sprite = self._memory[self._i:self._i + ins.n]
        start_x = self._v[ins.x] % SCREEN_WIDTH
        start_y = self._v[ins.y] % SCREEN_HEIGHT

        collision = 0
        for row, sprite_byte in enumerate(sprite):
            pixel_y = (start_y + row) % SCREEN_HEIGHT
            for col in range(8):
                if sprite_byte & (0x80 >> col):
                    index = pixel_y * SCREEN_WIDTH + (start_x + col) % SCREEN_WIDTH
                    if self._display[index]:
                        collision = 1
                    self._display[index] = not self._display[index]

        self._v[FLAG] = collision

    def _skp(self, ins):  # Ex9E: SKP Vx
        self._skip_if(self._keys[self._v[ins.x] & 0xF])

    def _sknp(self, ins):  # ExA1: SKNP Vx
        self._skip_if(not self._keys[self._v[ins.x] & 0xF])

    def _ld_vx_dt(self, ins):  # Fx07: LD Vx, DT
        self._v[ins.x] = self._delay_timer

    def _ld_vx_k(self, ins):  # Fx0A: LD Vx, K
        key = self._first_pressed_key()
        if key is not None:
            self._v[ins.x] = key
            return
        # Park on this instruction; tick() completes it once a key is down.
        self._awaiting_key = ins.x
        self._pc = self._current

    def _ld_dt(self, ins):  # Fx15: LD DT, Vx
        self._delay_timer = self._v[ins.x]

    def _ld_st(self, ins):  # Fx18: LD ST, Vx
        self._sound_timer = self._v[ins.x]

    def _add_i(self, ins):  # Fx1E: ADD I, Vx
        self._i = (self._i + self._v[ins.x]) & 0xFFFF

    def _ld_f(self, ins):  # Fx29: LD F, Vx
        self._i = FONT_START + (self._v[ins.x] & 0xF) * GLYPH_SIZE

    def _ld_b(self, ins):  # Fx33: LD B, Vx
        self._check_range(self._i, 3)
        value = self._v[ins.x]
        self._memory[self._i] = value // 100
        self._memory[self._i + 1] = (value // 10) % 10
        self._memory[self._i + 2] = value % 10

    def _ld_mem_vx(self, ins):  # Fx55: LD [I], Vx
        count = ins.x + 1
        self._check_range(self._i, count)
        self._memory[self._i:self._i + count] = self._v[:count]
        if self.quirks.load_store_increments_i:
            self._i = (self._i + count) & 0xFFFF

    def _ld_vx_mem(self, ins):  # Fx65: LD Vx, [I]
        count = ins.x + 1
        self._check_range(self._i, count)
        self._v[:count] = self._memory[self._i:self._i + count]
        if self.quirks.load_store_increments_i:
            self._i = (self._i + count) & 0xFFFF
