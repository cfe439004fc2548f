"""
sim8085 — Opcode Table (shared by the engine and the assembler)

One table, read in both directions:

  decode(byte)    -> ('MVI', 'A', 'D8')     engine: what does this byte do?
  encode(tokens)  -> 0x3E                   assembler: which byte is this?

A pattern is the mnemonic followed by its operand tokens. Operand tokens
are either literals the source must spell exactly (register B C D E H L M A,
register pair B D H SP PSW, restart number 0-7) or one of the immediate
placeholders:

  D8   : 1 data byte follows the opcode
  D16  : 2 data bytes follow the opcode

For lookup the placeholders collapse to the single token "DATA", so the
assembler can ask for ('MVI', 'A', 'DATA') without knowing the width in
advance; the matched pattern then says how many bytes to emit. Both
directions are precomputed dicts built once at construction time. Two
entries that collapse to the same signature are rejected, which is what
makes encode(decode(b)) == b hold for every defined byte.

Timing is the Intel 8085 datasheet (machine cycles, T-states). Conditional
transfers carry the taken-branch figure. The engine never counts cycles;
the numbers are for listings.

Undefined on the 8085: $08 $10 $18 $28 $38 $CB $D9 $DD $ED $FD.
"""

from typing import Dict, FrozenSet, Iterable, Iterator, Optional, Sequence, Tuple

from .errors import UnknownOpcode

__all__ = ['OpcodeTable', 'INTEL_8085', 'IMM8', 'IMM16', 'DATA',
           'REGS8', 'PAIRS_SP', 'PAIRS_PSW', 'CONDITIONS']

IMM8 = 'D8'
IMM16 = 'D16'
DATA = 'DATA'

_WIDTH = {IMM8: 1, IMM16: 2}

# Register field order as encoded in the opcode (bits 5-3 / 2-0)
REGS8 = ('B', 'C', 'D', 'E', 'H', 'L', 'M', 'A')
# Pair field order (bits 5-4)
PAIRS_SP = ('B', 'D', 'H', 'SP')
PAIRS_PSW = ('B', 'D', 'H', 'PSW')
# Condition field order (bits 5-3)
CONDITIONS = ('NZ', 'Z', 'NC', 'C', 'PO', 'PE', 'P', 'M')

Pattern = Tuple[str, ...]


def _signature(tokens: Iterable[str]) -> Pattern:
    return tuple(DATA if t in (IMM8, IMM16, DATA) else t for t in tokens)


class OpcodeTable:
    """Bidirectional opcode ↔ pattern mapping.

    entries: iterable of (byte, pattern, (machine_cycles, t_states)).
    """

    def __init__(self, entries: Iterable[Tuple[int, Sequence[str], Tuple[int, int]]]):
        self._by_byte: Dict[int, Pattern] = {}
        self._by_signature: Dict[Pattern, int] = {}
        self._timing: Dict[int, Tuple[int, int]] = {}
        self._literals: Dict[str, set] = {}

        for byte, pattern, timing in entries:
            pattern = tuple(t.upper() for t in pattern)
            if not 0 <= byte <= 0xFF:
                raise ValueError(f"Opcode {byte:#x} is not a byte")
            if not pattern:
                raise ValueError(f"Opcode ${byte:02X} has an empty pattern")
            if byte in self._by_byte:
                raise ValueError(f"Opcode ${byte:02X} defined twice")
            sig = _signature(pattern)
            if sig in self._by_signature:
                other = self._by_signature[sig]
                raise ValueError(
                    f"Opcodes ${other:02X} and ${byte:02X} share signature "
                    f"{' '.join(sig)}")
            self._by_byte[byte] = pattern
            self._by_signature[sig] = byte
            self._timing[byte] = tuple(timing)
            lits = self._literals.setdefault(pattern[0], set())
            lits.update(t for t in pattern[1:] if t not in _WIDTH)

    # --- Decode direction ---

    def decode(self, byte: int) -> Pattern:
        """Return the token pattern for an opcode byte."""
        try:
            return self._by_byte[byte]
        except KeyError:
            raise UnknownOpcode(byte) from None

    def operand_width(self, byte: int) -> int:
        """Number of immediate bytes after the opcode (0, 1 or 2)."""
        return sum(_WIDTH.get(t, 0) for t in self.decode(byte)[1:])

    def length(self, byte: int) -> int:
        return 1 + self.operand_width(byte)

    def timing(self, byte: int) -> Tuple[int, int]:
        """(machine_cycles, t_states) for an opcode byte."""
        self.decode(byte)
        return self._timing[byte]

    # --- Encode direction ---

    def encode(self, tokens: Sequence[str]) -> Optional[int]:
        """Return the opcode byte matching tokens, or None.

        Immediate positions may be given as DATA, D8 or D16.
        """
        return self._by_signature.get(_signature(t.upper() for t in tokens))

    def literal_operands(self, mnemonic: str) -> FrozenSet[str]:
        """Operand tokens that appear literally in some pattern of mnemonic."""
        return frozenset(self._literals.get(mnemonic.upper(), ()))

    @property
    def mnemonics(self) -> FrozenSet[str]:
        return frozenset(self._literals)

    # --- Container protocol ---

    def __contains__(self, byte) -> bool:
        return byte in self._by_byte

    def __len__(self) -> int:
        return len(self._by_byte)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._by_byte))

    def items(self):
        for byte in self:
            yield byte, self._by_byte[byte]


# ──────────────────────────────────────────────
# Intel 8085 instruction set
# ──────────────────────────────────────────────

def _intel_8085_entries():
    entries = []

    def _op(byte, *pattern, timing):
        entries.append((byte, pattern, timing))

    # ── Data transfer ──
    for d, dst in enumerate(REGS8):
        for s, src in enumerate(REGS8):
            if dst == 'M' and src == 'M':
                continue                      # $76 is HLT
            t = (2, 7) if 'M' in (dst, src) else (1, 4)
            _op(0x40 | d << 3 | s, 'MOV', dst, src, timing=t)
        _op(0x06 | d << 3, 'MVI', dst, IMM8,
            timing=(3, 10) if dst == 'M' else (2, 7))

    for p, pair in enumerate(PAIRS_SP):
        _op(0x01 | p << 4, 'LXI', pair, IMM16, timing=(3, 10))
        _op(0x09 | p << 4, 'DAD', pair, timing=(3, 10))
        _op(0x03 | p << 4, 'INX', pair, timing=(1, 6))
        _op(0x0B | p << 4, 'DCX', pair, timing=(1, 6))

    _op(0x02, 'STAX', 'B', timing=(2, 7))
    _op(0x12, 'STAX', 'D', timing=(2, 7))
    _op(0x0A, 'LDAX', 'B', timing=(2, 7))
    _op(0x1A, 'LDAX', 'D', timing=(2, 7))
    _op(0x22, 'SHLD', IMM16, timing=(5, 16))
    _op(0x2A, 'LHLD', IMM16, timing=(5, 16))
    _op(0x32, 'STA', IMM16, timing=(4, 13))
    _op(0x3A, 'LDA', IMM16, timing=(4, 13))
    _op(0xEB, 'XCHG', timing=(1, 4))
    _op(0xE3, 'XTHL', timing=(5, 16))
    _op(0xF9, 'SPHL', timing=(1, 6))

    # ── Arithmetic / logic ──
    for d, reg in enumerate(REGS8):
        t = (3, 10) if reg == 'M' else (1, 4)
        _op(0x04 | d << 3, 'INR', reg, timing=t)
        _op(0x05 | d << 3, 'DCR', reg, timing=t)

    for i, mnem in enumerate(('ADD', 'ADC', 'SUB', 'SBB', 'ANA', 'XRA', 'ORA', 'CMP')):
        for s, reg in enumerate(REGS8):
            _op(0x80 | i << 3 | s, mnem, reg,
                timing=(2, 7) if reg == 'M' else (1, 4))
    for i, mnem in enumerate(('ADI', 'ACI', 'SUI', 'SBI', 'ANI', 'XRI', 'ORI', 'CPI')):
        _op(0xC6 | i << 3, mnem, IMM8, timing=(2, 7))

    _op(0x07, 'RLC', timing=(1, 4))
    _op(0x0F, 'RRC', timing=(1, 4))
    _op(0x17, 'RAL', timing=(1, 4))
    _op(0x1F, 'RAR', timing=(1, 4))
    _op(0x27, 'DAA', timing=(1, 4))
    _op(0x2F, 'CMA', timing=(1, 4))
    _op(0x37, 'STC', timing=(1, 4))
    _op(0x3F, 'CMC', timing=(1, 4))

    # ── Stack ──
    for p, pair in enumerate(PAIRS_PSW):
        _op(0xC1 | p << 4, 'POP', pair, timing=(3, 10))
        _op(0xC5 | p << 4, 'PUSH', pair, timing=(3, 12))

    # ── Control transfer ──
    for c, cond in enumerate(CONDITIONS):
        _op(0xC0 | c << 3, 'R' + cond, timing=(3, 12))
        _op(0xC2 | c << 3, 'J' + cond, IMM16, timing=(3, 10))
        _op(0xC4 | c << 3, 'C' + cond, IMM16, timing=(5, 18))
    _op(0xC3, 'JMP', IMM16, timing=(3, 10))
    _op(0xCD, 'CALL', IMM16, timing=(5, 18))
    _op(0xC9, 'RET', timing=(3, 10))
    _op(0xE9, 'PCHL', timing=(1, 6))
    for n in range(8):
        _op(0xC7 | n << 3, 'RST', str(n), timing=(3, 12))

    # ── I/O and machine control ──
    _op(0xDB, 'IN', IMM8, timing=(3, 10))
    _op(0xD3, 'OUT', IMM8, timing=(3, 10))
    _op(0xFB, 'EI', timing=(1, 4))
    _op(0xF3, 'DI', timing=(1, 4))
    _op(0x20, 'RIM', timing=(1, 4))
    _op(0x30, 'SIM', timing=(1, 4))
    _op(0x00, 'NOP', timing=(1, 4))
    _op(0x76, 'HLT', timing=(1, 5))

    return entries


INTEL_8085 = OpcodeTable(_intel_8085_entries())
