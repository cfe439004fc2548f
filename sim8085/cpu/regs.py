"""
sim8085 — CPU Register File + FLAG Management

Register model for the 8085:
  A         8-bit accumulator
  B C       8-bit, pair BC (B=high, C=low)
  D E       8-bit, pair DE (D=high, E=low)
  H L       8-bit, pair HL (H=high, L=low); HL addresses the M operand
  SP        16-bit stack pointer (grows downward)
  PC        16-bit program counter
  FLAG      8-bit status byte:  S Z - AC - P - CY
            bit 7: S  (Sign, bit 7 of result)
            bit 6: Z  (Zero)
            bit 4: AC (Auxiliary carry, carry/borrow out of bit 3)
            bit 2: P  (Parity, set when the result has an even number of 1s)
            bit 0: CY (Carry, unsigned overflow / borrow)
            bits 5, 3, 1 are unused

The 8-bit registers live in a fixed 8-slot file indexed by the same 3-bit
codes the opcodes use (B=0 ... L=5, A=7). Slot 6 is the M code, which
never names a register, so FLAG is kept there; PSW = A:FLAG then reads
as slots 7:6.
"""

from enum import IntEnum

from ..errors import FlagBitOutOfBounds

# FLAG bit masks
FLAG_S = 0x80
FLAG_Z = 0x40
FLAG_AC = 0x10
FLAG_P = 0x04
FLAG_CY = 0x01

_SZAPC = FLAG_S | FLAG_Z | FLAG_AC | FLAG_P | FLAG_CY
_SZAP = FLAG_S | FLAG_Z | FLAG_AC | FLAG_P


class Reg(IntEnum):
    """8-bit register slots (opcode register-field encoding)."""
    B = 0
    C = 1
    D = 2
    E = 3
    H = 4
    L = 5
    FLAG = 6
    A = 7


def concat16(high: int, low: int) -> int:
    """Join two bytes into a word, high byte first."""
    return ((high & 0xFF) << 8) | (low & 0xFF)


def split16(value: int):
    """Split a word into (high, low)."""
    return (value >> 8) & 0xFF, value & 0xFF


def _reg8(slot: Reg):
    def getter(self) -> int:
        return self._file[slot]

    def setter(self, value: int):
        self._file[slot] = value & 0xFF

    return property(getter, setter, doc=f"{slot.name} (8-bit)")


def _pair(high: Reg, low: Reg):
    def getter(self) -> int:
        return concat16(self._file[high], self._file[low])

    def setter(self, value: int):
        self._file[high], self._file[low] = split16(value)

    return property(getter, setter, doc=f"{high.name}{low.name} (16-bit)")


class Registers:
    """8085 CPU register set."""

    __slots__ = ('_file', '_sp', '_pc', 'interrupts_enabled')

    def __init__(self):
        self._file = bytearray(8)
        self._sp: int = 0
        self._pc: int = 0
        self.interrupts_enabled: bool = False

    A = _reg8(Reg.A)
    B = _reg8(Reg.B)
    C = _reg8(Reg.C)
    D = _reg8(Reg.D)
    E = _reg8(Reg.E)
    H = _reg8(Reg.H)
    L = _reg8(Reg.L)
    FLAG = _reg8(Reg.FLAG)

    BC = _pair(Reg.B, Reg.C)
    DE = _pair(Reg.D, Reg.E)
    HL = _pair(Reg.H, Reg.L)
    PSW = _pair(Reg.A, Reg.FLAG)

    @property
    def SP(self) -> int:
        return self._sp

    @SP.setter
    def SP(self, value: int):
        self._sp = value & 0xFFFF

    @property
    def PC(self) -> int:
        return self._pc

    @PC.setter
    def PC(self, value: int):
        self._pc = value & 0xFFFF

    # --- Indexed access (opcode register fields) ---

    def get8(self, slot: int) -> int:
        return self._file[slot]

    def set8(self, slot: int, value: int):
        self._file[slot] = value & 0xFF

    def get_pair(self, name: str) -> int:
        """Read a register pair by its operand name (B, D, H, SP, PSW)."""
        return getattr(self, _PAIR_ATTR[name])

    def set_pair(self, name: str, value: int):
        setattr(self, _PAIR_ATTR[name], value & 0xFFFF)

    # --- FLAG access ---

    def set_SZAPC(self, flags: int):
        """Set S, Z, AC, P, CY. Unused bits are preserved."""
        self.FLAG = (self.FLAG & ~_SZAPC) | (flags & _SZAPC)

    def set_SZAP(self, flags: int):
        """Set S, Z, AC, P. Preserves CY."""
        self.FLAG = (self.FLAG & ~_SZAP) | (flags & _SZAP)

    def set_C(self, flags: int):
        """Set CY only."""
        self.FLAG = (self.FLAG & ~FLAG_CY) | (flags & FLAG_CY)

    def get_flag(self, bit: int) -> bool:
        if not 0 <= bit <= 7:
            raise FlagBitOutOfBounds(bit)
        return bool(self.FLAG & (1 << bit))

    def set_flag(self, bit: int, value: bool):
        if not 0 <= bit <= 7:
            raise FlagBitOutOfBounds(bit)
        if value:
            self.FLAG |= 1 << bit
        else:
            self.FLAG &= ~(1 << bit)

    @property
    def carry(self) -> bool:
        return bool(self.FLAG & FLAG_CY)

    @property
    def zero(self) -> bool:
        return bool(self.FLAG & FLAG_Z)

    @property
    def sign(self) -> bool:
        return bool(self.FLAG & FLAG_S)

    @property
    def parity(self) -> bool:
        return bool(self.FLAG & FLAG_P)

    @property
    def aux_carry(self) -> bool:
        return bool(self.FLAG & FLAG_AC)

    # --- Stack operations ---

    def push16(self, memory, value: int):
        """Push a word: SP -= 2, high byte at SP+1, low byte at SP."""
        high, low = split16(value)
        self.SP = self._sp - 2
        memory.write8((self._sp + 1) & 0xFFFF, high)
        memory.write8(self._sp, low)

    def pull16(self, memory) -> int:
        """Pop a word pushed by push16."""
        low = memory.read8(self._sp)
        high = memory.read8((self._sp + 1) & 0xFFFF)
        self.SP = self._sp + 2
        return concat16(high, low)

    # --- Display ---

    def display(self) -> str:
        """Format register state for traces."""
        flag_chars = ''.join(
            c if self.FLAG & (0x80 >> i) else '.'
            for i, c in enumerate('SZ-A-P-C'))
        return (f"PC={self.PC:04X} SP={self.SP:04X} A={self.A:02X} "
                f"BC={self.BC:04X} DE={self.DE:04X} HL={self.HL:04X} "
                f"F={self.FLAG:02X} [{flag_chars}]")

    def snapshot(self) -> dict:
        return {
            'A': self.A, 'B': self.B, 'C': self.C, 'D': self.D,
            'E': self.E, 'H': self.H, 'L': self.L, 'FLAG': self.FLAG,
            'SP': self.SP, 'PC': self.PC,
        }

    def reset(self):
        """Zero every register, FLAG and interrupt enable."""
        self._file[:] = bytes(8)
        self._sp = 0
        self._pc = 0
        self.interrupts_enabled = False


_PAIR_ATTR = {'B': 'BC', 'D': 'DE', 'H': 'HL', 'SP': 'SP', 'PSW': 'PSW'}
