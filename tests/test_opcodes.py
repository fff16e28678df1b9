"""Instruction semantics, grouped by family. Programs load at 0x200."""

import pytest

from chip8 import MemoryOutOfRange, Quirks
from chip8.machine import FONTSET, GLYPH_SIZE

from conftest import boot, run


def lit_pixels(machine):
    return {(x, y) for y, row in enumerate(machine.framebuffer()) for x, on in enumerate(row) if on}


class TestSkips:

    @pytest.mark.parametrize("program, skipped", [
        ((0x6142, 0x3142), True),    # SE Vx, byte
        ((0x6142, 0x3143), False),
        ((0x6142, 0x4143), True),    # SNE Vx, byte
        ((0x6142, 0x4142), False),
        ((0x6142, 0x6242, 0x5120), True),    # SE Vx, Vy
        ((0x6142, 0x6243, 0x5120), False),
        ((0x6142, 0x6243, 0x9120), True),    # SNE Vx, Vy
        ((0x6142, 0x6242, 0x9120), False),
    ])
    def test_conditional_skip(self, program, skipped):
        m = run(boot(*program), len(program))
        end = 0x200 + 2 * len(program)
        assert m.pc == (end + 2 if skipped else end)


class TestRegisterOps:

    def test_load_immediate_and_copy(self):
        m = run(boot(0x6A7F, 0x8BA0), 2)
        assert m.v[0xA] == 0x7F
        assert m.v[0xB] == 0x7F

    def test_add_immediate_wraps_without_flag(self):
        m = run(boot(0x6FAA, 0x60F0, 0x7020), 3)
        assert m.v[0] == 0x10
        assert m.v[0xF] == 0xAA

    @pytest.mark.parametrize("opcode, expected", [
        (0x8011, 0b1110),   # OR
        (0x8012, 0b1000),   # AND
        (0x8013, 0b0110),   # XOR
    ])
    def test_bitwise(self, opcode, expected):
        m = run(boot(0x600C, 0x610A, opcode), 3)
        assert m.v[0] == expected


class TestArithmetic:

    @pytest.mark.parametrize("a, b", [(0, 0), (5, 10), (200, 55), (200, 56), (255, 255), (128, 128)])
    def test_add_with_carry(self, a, b):
        m = run(boot(0x6000 | a, 0x6100 | b, 0x8014), 3)
        assert m.v[0] == (a + b) % 256
        assert m.v[0xF] == (1 if a + b >= 256 else 0)

    @pytest.mark.parametrize("a, b", [(10, 3), (3, 10), (5, 5), (0, 255), (255, 0)])
    def test_subtract(self, a, b):
        m = run(boot(0x6000 | a, 0x6100 | b, 0x8015), 3)
        assert m.v[0] == (a - b) % 256
        assert m.v[0xF] == (1 if a >= b else 0)

    @pytest.mark.parametrize("a, b", [(10, 3), (3, 10), (5, 5)])
    def test_reverse_subtract(self, a, b):
        m = run(boot(0x6000 | a, 0x6100 | b, 0x8017), 3)
        assert m.v[0] == (b - a) % 256
        assert m.v[0xF] == (1 if b >= a else 0)

    def test_flag_written_after_result(self):
        """With VF as destination the flag overwrites the sum."""
        m = run(boot(0x6FFF, 0x6103, 0x8F14), 3)
        assert m.v[0xF] == 1
        m = run(boot(0x6F01, 0x6102, 0x8F14), 3)
        assert m.v[0xF] == 0

    def test_flag_uses_pre_operation_operands(self):
        """VF as the source operand is read before the flag is written."""
        m = run(boot(0x6F05, 0x6003, 0x80F5), 3)
        assert m.v[0] == 0xFE
        assert m.v[0xF] == 0


class TestShifts:

    def test_shift_right_in_place(self):
        m = run(boot(0x6005, 0x61F0, 0x8016), 3)
        assert m.v[0] == 0x02
        assert m.v[0xF] == 1

    def test_shift_left_in_place(self):
        m = run(boot(0x6081, 0x6101, 0x801E), 3)
        assert m.v[0] == 0x02
        assert m.v[0xF] == 1

    def test_shift_left_no_carry(self):
        m = run(boot(0x6041, 0x801E), 2)
        assert m.v[0] == 0x82
        assert m.v[0xF] == 0

    def test_shift_from_vy_quirk(self):
        quirks = Quirks(shift_uses_vy=True)
        m = run(boot(0x6005, 0x61F0, 0x8016, quirks=quirks), 3)
        assert m.v[0] == 0x78
        assert m.v[1] == 0xF0
        assert m.v[0xF] == 0

        m = run(boot(0x6001, 0x6181, 0x801E, quirks=quirks), 3)
        assert m.v[0] == 0x02
        assert m.v[0xF] == 1

    def test_shift_into_flag_register(self):
        m = run(boot(0x6F04, 0x8FF6), 2)
        assert m.v[0xF] == 0


class TestIndexAndMemory:

    def test_load_index(self):
        m = run(boot(0xA123), 1)
        assert m.i == 0x123

    def test_add_to_index(self):
        m = run(boot(0xA300, 0x6210, 0xF21E), 3)
        assert m.i == 0x310

    def test_add_to_index_wraps_16_bit(self):
        m = boot(0xAFFF, 0x60FF, *([0xF01E] * 258))
        run(m, 260)
        assert m.i == (0xFFF + 0xFF * 258) & 0xFFFF

    @pytest.mark.parametrize("digit", [0x0, 0x7, 0xF])
    def test_font_address(self, digit):
        m = run(boot(0x6000 | digit, 0xF029), 2)
        assert m.i == digit * GLYPH_SIZE
        assert m.peek(m.i, GLYPH_SIZE) == FONTSET[digit * 5:digit * 5 + 5]

    def test_font_address_uses_low_nibble(self):
        m = run(boot(0x60A3, 0xF029), 2)
        assert m.i == 3 * GLYPH_SIZE

    @pytest.mark.parametrize("value, digits", [(0, b"\x00\x00\x00"), (7, b"\x00\x00\x07"),
                                               (42, b"\x00\x04\x02"), (255, b"\x02\x05\x05")])
    def test_bcd(self, value, digits):
        m = run(boot(0x6000 | value, 0xA400, 0xF033), 3)
        assert m.peek(0x400, 3) == digits

    def test_store_registers(self):
        m = run(boot(0x6011, 0x6122, 0x6233, 0x6344, 0xA500, 0xF255), 6)
        assert m.peek(0x500, 4) == b"\x11\x22\x33\x00"
        assert m.i == 0x500

    def test_load_registers(self):
        m = run(boot(0xA206, 0xF265, 0x1204, 0xDEAD, 0xBE00), 2)
        assert m.v[:4] == (0xDE, 0xAD, 0xBE, 0x00)

    def test_load_store_index_quirk(self):
        quirks = Quirks(load_store_increments_i=True)
        m = run(boot(0xA500, 0xF355, quirks=quirks), 2)
        assert m.i == 0x504
        m = run(boot(0xA500, 0xF065, quirks=quirks), 2)
        assert m.i == 0x501

    def test_bcd_out_of_range_halts_without_writing(self):
        m = boot(0xAFFE, 0xF033)
        with pytest.raises(MemoryOutOfRange):
            run(m, 2)
        assert m.halted()
        assert m.peek(0xFFE, 2) == b"\x00\x00"

    def test_store_past_end_of_memory(self):
        m = boot(0xAFFC, 0xFF55)
        with pytest.raises(MemoryOutOfRange) as info:
            run(m, 2)
        assert info.value.address == 0x1000


class TestDisplay:

    def test_draw_font_glyph(self):
        # Glyph "0" at (0, 0): F0 90 90 90 F0
        m = run(boot(0x6000, 0xF029, 0xD005), 3)
        pixels = lit_pixels(m)
        assert (0, 0) in pixels and (3, 0) in pixels
        assert (0, 1) in pixels and (1, 1) not in pixels
        assert len(pixels) == 4 + 2 + 2 + 2 + 4
        assert m.v[0xF] == 0

    def test_draw_twice_toggles_off_with_collision(self):
        m = run(boot(0x6000, 0xF029, 0xD005, 0xD005), 4)
        assert lit_pixels(m) == set()
        assert m.v[0xF] == 1

    def test_partial_overlap_collides(self):
        # Glyph "1" (20 60 20 20 70) drawn over glyph "0"
        m = run(boot(0x6000, 0xF029, 0xD005, 0x6101, 0xF129, 0xD005), 6)
        assert m.v[0xF] == 1

    def test_no_overlap_no_collision(self):
        m = run(boot(0x6000, 0xF029, 0xD005, 0x6108, 0xD105), 5)
        assert m.v[0xF] == 0
        assert (8, 0) in lit_pixels(m)

    def test_wraps_both_axes(self):
        # Glyph "0" at (62, 30): columns 62,63,0,1 and rows 30,31,0,1,2
        m = run(boot(0x6000, 0xF029, 0x613E, 0x621E, 0xD125), 5)
        pixels = lit_pixels(m)
        assert {(62, 30), (63, 30), (0, 30), (1, 30)} <= pixels
        assert (62, 0) in pixels and (1, 0) in pixels
        assert (62, 2) in pixels

    def test_start_coordinates_wrap(self):
        m = run(boot(0x6000, 0xF029, 0x6141, 0x6221, 0xD125), 5)
        assert (1, 1) in lit_pixels(m)

    def test_clear_screen(self):
        m = run(boot(0x6000, 0xF029, 0xD005, 0x00E0), 4)
        assert lit_pixels(m) == set()

    def test_sprite_read_out_of_range(self):
        m = boot(0xAFFE, 0xD00F)
        with pytest.raises(MemoryOutOfRange):
            run(m, 2)
        assert lit_pixels(m) == set()


class TestRandom:

    def test_mask_applied(self):
        m = boot(*([0xC00F] * 50))
        for _ in range(50):
            m.tick()
            assert m.v[0] <= 0x0F

    def test_zero_mask(self):
        m = run(boot(0x60FF, 0xC000), 2)
        assert m.v[0] == 0
