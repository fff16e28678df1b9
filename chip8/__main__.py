"""Command line entry point: ``python -m chip8 ROM`` or ``chip8 ROM``."""

import argparse
import logging
import random
import sys
from pathlib import Path

from .errors import LoadError
from .machine import Machine, Quirks

logger = logging.getLogger("chip8")

aparser = argparse.ArgumentParser(prog="chip8", description="CHIP-8 emulator")
aparser.add_argument('rom',
    help="Path to a CHIP-8 ROM image")
aparser.add_argument('--clock-hz',
    help="Instructions executed per second (default: 700)",
    type=int,
    default=None)
aparser.add_argument('--scale',
    help="Screen pixels per CHIP-8 pixel (default: 12)",
    type=int,
    default=None)
aparser.add_argument('--shift-vy',
    help="8xy6/8xyE shift Vy into Vx, as on the COSMAC VIP",
    action="store_true")
aparser.add_argument('--load-store-i',
    help="Fx55/Fx65 advance I past the registers transferred",
    action="store_true")
aparser.add_argument('--seed',
    help="Seed for the random number generator",
    type=int,
    default=None)
aparser.add_argument('-v', '--verbose',
    help="Enable debug logging, including an instruction trace",
    action="store_true")


def load_machine(args):
    """Build a Machine from parsed arguments and load the ROM. Returns (machine, rom)."""
    rom_path = Path(args.rom)
    rom = rom_path.read_bytes()

    quirks = Quirks(shift_uses_vy=args.shift_vy, load_store_increments_i=args.load_store_i)
    machine = Machine(quirks=quirks, rng=random.Random(args.seed))
    machine.load(rom)
    return machine, rom


def main(argv=None):
    args = aparser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    logger.info("Loading ROM %s", args.rom)
    try:
        machine, rom = load_machine(args)
    except OSError as e:
        logger.error("Failed to open the ROM: %s", e)
        return 1
    except LoadError as e:
        logger.error("Failed to load the ROM: %s", e)
        return 1

    # Imported late so ROM errors are reported without needing a display
    from . import frontend

    frontend.run(machine, rom=rom, rom_name=Path(args.rom).name,
                 clock_hz=args.clock_hz, scale=args.scale)

    if machine.halted():
        logger.error("Machine halted: %s", machine.fault)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
