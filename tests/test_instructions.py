"""
Execution Engine — Instruction Tests

Hand-assembled bytes, checked against the 8085 datasheet. The default
machine profile stores 16-bit immediates high byte first, so
LXI H,1234H is 21 12 34 here.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from sim8085.emu import Emulator8085, StopReason
from sim8085.cpu.regs import FLAG_S, FLAG_Z, FLAG_AC, FLAG_P, FLAG_CY


def make_emu(code, **regs):
    """Emulator with code at 0 and registers preset by name."""
    emu = Emulator8085()
    emu.load_program(bytes(code))
    for name, value in regs.items():
        emu.set_register(name, value)
    return emu


def step_n(emu, n=1):
    for _ in range(n):
        assert emu.step() is None


# ═══════════════════════════════════════════════
# Data transfer
# ═══════════════════════════════════════════════

class TestDataTransfer:

    def test_mov_register(self):
        """MOV B,C"""
        emu = make_emu([0x41], C=0x5A)
        step_n(emu)
        assert emu.regs.B == 0x5A
        assert emu.regs.PC == 1

    def test_mov_to_and_from_memory(self):
        """MOV M,A / MOV B,M via HL"""
        emu = make_emu([0x77, 0x46], A=0x99, H=0x20, L=0x10)
        step_n(emu, 2)
        assert emu.read_memory(0x2010) == 0x99
        assert emu.regs.B == 0x99

    def test_mvi(self):
        """MVI A,42H / MVI M,7FH"""
        emu = make_emu([0x3E, 0x42, 0x36, 0x7F], H=0x30, L=0x00)
        step_n(emu, 2)
        assert emu.regs.A == 0x42
        assert emu.read_memory(0x3000) == 0x7F
        assert emu.regs.PC == 4

    def test_lxi_high_byte_first(self):
        """LXI H,1234H = 21 12 34"""
        emu = make_emu([0x21, 0x12, 0x34])
        step_n(emu)
        assert emu.regs.H == 0x12
        assert emu.regs.L == 0x34
        assert emu.regs.PC == 3

    def test_lxi_sp(self):
        emu = make_emu([0x31, 0xFF, 0xF0])
        step_n(emu)
        assert emu.regs.SP == 0xFFF0

    def test_lda_sta(self):
        """LDA 2000H / STA 2001H"""
        emu = make_emu([0x3A, 0x20, 0x00, 0x32, 0x20, 0x01])
        emu.write_memory(0x2000, 0xAB)
        step_n(emu, 2)
        assert emu.regs.A == 0xAB
        assert emu.read_memory(0x2001) == 0xAB

    def test_lhld_shld(self):
        """LHLD: L from addr, H from addr+1"""
        emu = make_emu([0x2A, 0x20, 0x00, 0x22, 0x30, 0x00])
        emu.write_memory(0x2000, 0x34)
        emu.write_memory(0x2001, 0x12)
        step_n(emu, 2)
        assert emu.regs.HL == 0x1234
        assert emu.read_memory(0x3000) == 0x34
        assert emu.read_memory(0x3001) == 0x12

    def test_ldax_stax(self):
        """STAX D / LDAX B"""
        emu = make_emu([0x12, 0x0A], A=0x66, D=0x40, E=0x00, B=0x40, C=0x00)
        step_n(emu)
        assert emu.read_memory(0x4000) == 0x66
        emu.set_register('A', 0)
        step_n(emu)
        assert emu.regs.A == 0x66

    def test_xchg(self):
        emu = make_emu([0xEB], D=0x12, E=0x34, H=0x56, L=0x78)
        step_n(emu)
        assert emu.regs.DE == 0x5678
        assert emu.regs.HL == 0x1234

    def test_sphl(self):
        emu = make_emu([0xF9], H=0x80, L=0x00)
        step_n(emu)
        assert emu.regs.SP == 0x8000

    def test_xthl(self):
        emu = make_emu([0xE3], SP=0x3000, H=0x12, L=0x34)
        emu.write_memory(0x3000, 0xCD)
        emu.write_memory(0x3001, 0xAB)
        step_n(emu)
        assert emu.regs.HL == 0xABCD
        assert emu.read_memory(0x3000) == 0x34
        assert emu.read_memory(0x3001) == 0x12
        assert emu.regs.SP == 0x3000

    def test_transfers_leave_flags(self):
        emu = make_emu([0x41, 0x3E, 0x00], FLAG=0xD5)
        step_n(emu, 2)
        assert emu.regs.FLAG == 0xD5


# ═══════════════════════════════════════════════
# Stack
# ═══════════════════════════════════════════════

class TestStack:

    def test_push_layout(self):
        """PUSH B: SP-=2, B at SP+1, C at SP"""
        emu = make_emu([0xC5], SP=0x3000, B=0x12, C=0x34)
        step_n(emu)
        assert emu.regs.SP == 0x2FFE
        assert emu.read_memory(0x2FFF) == 0x12
        assert emu.read_memory(0x2FFE) == 0x34

    def test_push_b_pop_d(self):
        emu = make_emu([0xC5, 0xD1], SP=0x3000, B=0xBE, C=0xEF)
        step_n(emu, 2)
        assert emu.regs.D == 0xBE
        assert emu.regs.E == 0xEF
        assert emu.regs.SP == 0x3000

    def test_psw_round_trip(self):
        """PUSH PSW / POP PSW restores A and FLAG verbatim"""
        emu = make_emu([0xF5, 0x3E, 0x00, 0xAF, 0xF1], SP=0x3000, A=0x55, FLAG=0xD7)
        step_n(emu, 4)
        assert emu.regs.A == 0x55
        assert emu.regs.FLAG == 0xD7

    def test_psw_byte_order(self):
        emu = make_emu([0xF5], SP=0x3000, A=0x55, FLAG=0x01)
        step_n(emu)
        assert emu.read_memory(0x2FFF) == 0x55
        assert emu.read_memory(0x2FFE) == 0x01

    def test_stack_wraps_at_zero(self):
        emu = make_emu([0xC5], SP=0x0000, B=0x12, C=0x34)
        step_n(emu)
        assert emu.regs.SP == 0xFFFE
        assert emu.read_memory(0xFFFF) == 0x12


# ═══════════════════════════════════════════════
# Arithmetic
# ═══════════════════════════════════════════════

class TestArithmetic:

    def test_add_zero(self):
        """ADD B with A=0, B=0 → Z=1, S=0, P=1, CY=0, AC=0"""
        emu = make_emu([0x80])
        step_n(emu)
        assert emu.regs.A == 0
        assert emu.regs.zero and emu.regs.parity
        assert not emu.regs.sign
        assert not emu.regs.carry
        assert not emu.regs.aux_carry

    def test_add_overflow(self):
        """ADD B with A=FF, B=01 → A=0, CY=1, Z=1, AC=1"""
        emu = make_emu([0x80], A=0xFF, B=0x01)
        step_n(emu)
        assert emu.regs.A == 0
        assert emu.regs.carry
        assert emu.regs.zero
        assert emu.regs.aux_carry

    def test_adc_folds_carry(self):
        emu = make_emu([0x37, 0x88], A=0x10, B=0x01)     # STC / ADC B
        step_n(emu, 2)
        assert emu.regs.A == 0x12
        assert not emu.regs.carry

    def test_adi_aci(self):
        emu = make_emu([0xC6, 0xF0, 0xCE, 0x20], A=0x20)  # ADI F0 / ACI 20
        step_n(emu)
        assert emu.regs.A == 0x10
        assert emu.regs.carry
        step_n(emu)
        assert emu.regs.A == 0x31

    def test_add_m(self):
        emu = make_emu([0x86], A=0x01, H=0x20, L=0x00)
        emu.write_memory(0x2000, 0x41)
        step_n(emu)
        assert emu.regs.A == 0x42

    def test_sub_borrow(self):
        emu = make_emu([0x90], A=0x01, B=0x02)
        step_n(emu)
        assert emu.regs.A == 0xFF
        assert emu.regs.carry
        assert emu.regs.sign

    def test_sbb_sbi(self):
        emu = make_emu([0x37, 0x98, 0xDE, 0x01], A=0x10, B=0x05)  # STC / SBB B / SBI 1
        step_n(emu, 2)
        assert emu.regs.A == 0x0A
        assert not emu.regs.carry
        step_n(emu)
        assert emu.regs.A == 0x09

    def test_sui(self):
        emu = make_emu([0xD6, 0x10], A=0x10)
        step_n(emu)
        assert emu.regs.A == 0
        assert emu.regs.zero

    def test_inr_keeps_carry(self):
        emu = make_emu([0x3C], A=0xFF, FLAG=FLAG_CY)
        step_n(emu)
        assert emu.regs.A == 0
        assert emu.regs.zero
        assert emu.regs.carry

    def test_dcr_keeps_carry_clear(self):
        emu = make_emu([0x05], B=0x00)
        step_n(emu)
        assert emu.regs.B == 0xFF
        assert emu.regs.sign
        assert not emu.regs.carry

    def test_inr_dcr_memory(self):
        emu = make_emu([0x34, 0x34, 0x35], H=0x20, L=0x00)
        step_n(emu, 3)
        assert emu.read_memory(0x2000) == 1

    def test_inx_dcx_wrap_no_flags(self):
        emu = make_emu([0x23, 0x3B], H=0xFF, L=0xFF, SP=0, FLAG=0)
        step_n(emu, 2)
        assert emu.regs.HL == 0
        assert emu.regs.SP == 0xFFFF
        assert emu.regs.FLAG == 0

    def test_dad_sets_only_carry(self):
        emu = make_emu([0x09], H=0xFF, L=0xFF, B=0x00, C=0x02, FLAG=FLAG_Z)
        step_n(emu)
        assert emu.regs.HL == 0x0001
        assert emu.regs.FLAG == FLAG_Z | FLAG_CY

    def test_dad_h_doubles(self):
        emu = make_emu([0x29], H=0x12, L=0x34)
        step_n(emu)
        assert emu.regs.HL == 0x2468
        assert not emu.regs.carry


# ═══════════════════════════════════════════════
# Logic / rotate / flag ops
# ═══════════════════════════════════════════════

class TestLogic:

    def test_ana(self):
        emu = make_emu([0xA0], A=0xF3, B=0x3F, FLAG=FLAG_CY)
        step_n(emu)
        assert emu.regs.A == 0x33
        assert not emu.regs.carry
        assert emu.regs.aux_carry

    def test_xra_a_clears(self):
        emu = make_emu([0xAF], A=0x5A, FLAG=FLAG_CY | FLAG_AC)
        step_n(emu)
        assert emu.regs.A == 0
        assert emu.regs.FLAG == FLAG_Z | FLAG_P

    def test_ora_ori(self):
        emu = make_emu([0xB1, 0xF6, 0x80], A=0x01, C=0x02)
        step_n(emu, 2)
        assert emu.regs.A == 0x83
        assert emu.regs.sign
        assert not emu.regs.carry

    def test_ani_xri(self):
        emu = make_emu([0xE6, 0x0F, 0xEE, 0xFF], A=0x3C)
        step_n(emu, 2)
        assert emu.regs.A == 0xF3

    def test_cmp_leaves_a(self):
        emu = make_emu([0xB8], A=0x05, B=0x06)
        step_n(emu)
        assert emu.regs.A == 0x05
        assert emu.regs.carry
        assert not emu.regs.zero

    def test_cpi_equal(self):
        emu = make_emu([0xFE, 0x42], A=0x42)
        step_n(emu)
        assert emu.regs.zero
        assert not emu.regs.carry

    def test_rotates(self):
        emu = make_emu([0x07, 0x0F, 0x17, 0x1F], A=0x81)
        step_n(emu)                             # RLC
        assert (emu.regs.A, emu.regs.carry) == (0x03, True)
        step_n(emu)                             # RRC
        assert (emu.regs.A, emu.regs.carry) == (0x81, True)
        step_n(emu)                             # RAL, CY in
        assert (emu.regs.A, emu.regs.carry) == (0x03, True)
        step_n(emu)                             # RAR, CY in
        assert (emu.regs.A, emu.regs.carry) == (0x81, True)

    def test_rotate_keeps_other_flags(self):
        emu = make_emu([0x07], A=0x01, FLAG=FLAG_Z | FLAG_S)
        step_n(emu)
        assert emu.regs.FLAG == FLAG_Z | FLAG_S

    def test_cma_no_flags(self):
        emu = make_emu([0x2F], A=0x0F, FLAG=0)
        step_n(emu)
        assert emu.regs.A == 0xF0
        assert emu.regs.FLAG == 0

    def test_stc_cmc(self):
        emu = make_emu([0x37, 0x3F, 0x3F])
        step_n(emu)
        assert emu.regs.carry
        step_n(emu)
        assert not emu.regs.carry
        step_n(emu)
        assert emu.regs.carry


# ═══════════════════════════════════════════════
# Control transfer
# ═══════════════════════════════════════════════

class TestControl:

    def test_jmp(self):
        emu = make_emu([0xC3, 0x12, 0x34])
        step_n(emu)
        assert emu.regs.PC == 0x1234

    @pytest.mark.parametrize("opcode,flags,taken", [
        (0xC2, 0, True),          # JNZ
        (0xC2, FLAG_Z, False),
        (0xCA, FLAG_Z, True),     # JZ
        (0xD2, FLAG_CY, False),   # JNC
        (0xDA, FLAG_CY, True),    # JC
        (0xE2, FLAG_P, False),    # JPO
        (0xEA, FLAG_P, True),     # JPE
        (0xF2, 0, True),          # JP
        (0xFA, FLAG_S, True),     # JM
        (0xFA, 0, False),
    ])
    def test_conditional_jump(self, opcode, flags, taken):
        emu = make_emu([opcode, 0x00, 0x40], FLAG=flags)
        step_n(emu)
        assert emu.regs.PC == (0x0040 if taken else 3)

    def test_call_pushes_return(self):
        emu = make_emu([0xCD, 0x00, 0x10], SP=0x3000)
        step_n(emu)
        assert emu.regs.PC == 0x0010
        assert emu.regs.SP == 0x2FFE
        assert emu.read_memory(0x2FFF) == 0x00
        assert emu.read_memory(0x2FFE) == 0x03

    def test_call_ret(self):
        code = bytearray(0x20)
        code[0:3] = bytes([0xCD, 0x00, 0x10])     # CALL 0010H
        code[3] = 0x76                            # HLT
        code[0x10] = 0xC9                         # RET
        emu = make_emu(code, SP=0x3000)
        step_n(emu, 2)
        assert emu.regs.PC == 3
        assert emu.regs.SP == 0x3000

    def test_conditional_call_not_taken(self):
        emu = make_emu([0xCC, 0x00, 0x10], SP=0x3000)     # CZ with Z=0
        step_n(emu)
        assert emu.regs.PC == 3
        assert emu.regs.SP == 0x3000

    def test_conditional_return_not_taken_keeps_stack(self):
        emu = make_emu([0xC8], SP=0x3000)                  # RZ with Z=0
        step_n(emu)
        assert emu.regs.PC == 1
        assert emu.regs.SP == 0x3000

    def test_conditional_return_taken(self):
        emu = make_emu([0xD8], SP=0x2FFE, FLAG=FLAG_CY)    # RC
        emu.write_memory(0x2FFE, 0x34)
        emu.write_memory(0x2FFF, 0x12)
        step_n(emu)
        assert emu.regs.PC == 0x1234
        assert emu.regs.SP == 0x3000

    def test_rst_pushes_and_vectors(self):
        emu = make_emu([0x00, 0xDF], SP=0x3000)            # NOP / RST 3
        step_n(emu, 2)
        assert emu.regs.PC == 0x18
        assert emu.regs.SP == 0x2FFE
        assert emu.read_memory(0x2FFE) == 0x02

    def test_pchl(self):
        emu = make_emu([0xE9], H=0x12, L=0x00)
        step_n(emu)
        assert emu.regs.PC == 0x1200


# ═══════════════════════════════════════════════
# Machine control
# ═══════════════════════════════════════════════

class TestMachineControl:

    def test_nop(self):
        emu = make_emu([0x00])
        step_n(emu)
        assert emu.regs.PC == 1

    def test_hlt_leaves_pc(self):
        emu = make_emu([0x00, 0x76])
        emu.halted = False
        step_n(emu)
        assert emu.step() == StopReason.HALT
        assert emu.halted
        assert emu.regs.PC == 1

    def test_ei_di(self):
        emu = make_emu([0xFB, 0xF3])
        step_n(emu)
        assert emu.regs.interrupts_enabled
        step_n(emu)
        assert not emu.regs.interrupts_enabled
