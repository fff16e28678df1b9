import random

import pytest

from chip8 import Machine, Quirks


def assemble(*words):
    """Pack 16-bit instruction words into big-endian ROM bytes."""
    rom = bytearray()
    for word in words:
        rom += word.to_bytes(2, "big")
    return bytes(rom)


def boot(*words, quirks=None, seed=1234):
    """Machine with ``words`` loaded at 0x200."""
    machine = Machine(quirks=quirks or Quirks(), rng=random.Random(seed))
    machine.load(assemble(*words))
    return machine


def run(machine, ticks):
    for _ in range(ticks):
        machine.tick()
    return machine


@pytest.fixture
def machine():
    return Machine(rng=random.Random(1234))
