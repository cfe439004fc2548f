"""
8085 Two-Pass Assembler.

Assembles 8085 source text into the byte image the emulator loads at
address 0, plus one listing record per emitted byte.

Source grammar (one statement per line):
    [label:] [mnemonic [operand {, operand}]] [; comment]

    operand := register | pair | M | PSW | SP | label | number
    number  := digits H  (hex, must start with a digit: 0FFH)
             | digits O  (octal)
             | digits B  (binary)
             | digits    (decimal)

    DB byte {, byte}   emits the bytes as written (numbers or labels that
                       fit in 8 bits). This is what the disassembler writes
                       for bytes that are not an instruction.

How the two-pass algorithm works:
  Pass 1: Scan all lines for label definitions. Validate each name
          (identifier syntax, not a register/pair/mnemonic, not defined
          twice). Nothing is emitted.
  Pass 2: Encode each instruction through the shared opcode table.
          Operands are classified (register literal, known label, number)
          and normalized, so ('MVI', 'A', '05H') is looked up as
          ('MVI', 'A', 'DATA'). Labels get the address of the next byte
          emitted. A label used as an operand emits zero bytes and records
          a fixup (offset, label, width).
  Patch:  Every fixup is resolved by offset against the label addresses
          from pass 2. Nothing is found by scanning the byte stream for
          magic values, so no data byte can be mistaken for a reference.

Assembly is all-or-nothing. Assembler.assemble() raises AssemblerError
carrying an ErrorKind and the 1-based source line; the module-level
assemble() returns an AssemblyOutcome holding either the result or the
error, never a partial image.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .config import MachineConfig
from .opcodes import INTEL_8085, IMM8, IMM16, DATA, OpcodeTable

__all__ = ['Assembler', 'AssemblerError', 'ErrorKind', 'ListingRecord',
           'AssemblyResult', 'AssemblyOutcome', 'AssemblyErrorInfo',
           'assemble', 'assemble_to_ihex']

log = logging.getLogger(__name__)


class ErrorKind(Enum):
    INVALID_LABEL = 'invalid label'
    RESERVED_LABEL = 'reserved label'
    DUPLICATE_LABEL = 'duplicate label'
    UNDEFINED_LABEL = 'undefined label'
    UNKNOWN_MNEMONIC = 'unknown mnemonic or syntax'
    INVALID_NUMERIC_LITERAL = 'invalid numeric literal'
    DATA_OUT_OF_RANGE = 'data out of range'
    UNRESOLVED_LABEL = 'unresolved label'


class AssemblerError(Exception):
    """Raised on assembly errors."""
    def __init__(self, kind: ErrorKind, message: str, line: int = 0):
        self.kind = kind
        self.message = message
        self.line = line
        super().__init__(f"Line {line}: {message}" if line else message)


# ──────────────────────────────────────────────
# Lexical rules
# ──────────────────────────────────────────────

_IDENT = re.compile(r'^[A-Z_][A-Z0-9_]*$')

# Operand spellings that always name a register, pair or memory operand
_REGISTER_TOKENS = frozenset({'A', 'B', 'C', 'D', 'E', 'H', 'L', 'M', 'SP', 'PSW'})

# Data directive: DB byte {, byte}
_DB = 'DB'

# Never usable as labels, on top of every mnemonic in the table
_RESERVED_WORDS = _REGISTER_TOKENS | {'F', 'DATA', _DB}

_RADIX = {'H': (16, '0123456789ABCDEF'), 'O': (8, '01234567'), 'B': (2, '01')}

_WIDTH = {IMM8: 1, IMM16: 2}


def _parse_number(text: str) -> Optional[int]:
    """Parse a numeric literal by radix suffix; None if malformed."""
    base, digits, body = 10, '0123456789', text
    if text and text[-1] in _RADIX:
        base, digits = _RADIX[text[-1]]
        body = text[:-1]
    if not body or not body[0].isdigit() or any(c not in digits for c in body):
        return None
    return int(body, base)


# ──────────────────────────────────────────────
# Records
# ──────────────────────────────────────────────

@dataclass
class AsmLine:
    """One non-blank source line, comment stripped."""
    line_num: int
    label: Optional[str] = None       # normalized (upper case)
    label_text: str = ''              # as written
    mnemonic: Optional[str] = None
    operands: List[str] = field(default_factory=list)


@dataclass
class ListingRecord:
    """Display record for one emitted byte.

    The first byte of an instruction carries the label, mnemonic text,
    instruction length and datasheet timing; operand bytes carry only
    their address and value.
    """
    address: str
    label: str
    mnemonic: str
    hex_code: str
    byte_count: int
    machine_cycles: int = 0
    t_states: int = 0
    line: int = 0


@dataclass
class Fixup:
    """Pending label reference, patched after pass 2."""
    offset: int
    label: str
    width: int
    line: int


@dataclass(frozen=True)
class AssemblyErrorInfo:
    kind: ErrorKind
    message: str
    line: int


@dataclass
class AssemblyResult:
    machine_code: bytes
    listing: List[ListingRecord]
    labels: Dict[str, int]

    def __len__(self) -> int:
        return len(self.machine_code)

    def to_ihex(self, start: int = 0, record_size: int = 16) -> str:
        """Intel HEX text: type 00 data records, type 01 end record."""
        lines = []
        code = self.machine_code
        for offset in range(0, len(code), record_size):
            chunk = code[offset:offset + record_size]
            addr = start + offset
            record = bytes([len(chunk), (addr >> 8) & 0xFF, addr & 0xFF, 0x00]) + chunk
            lines.append(f":{record.hex().upper()}{_checksum(record):02X}")
        lines.append(":00000001FF")
        return '\n'.join(lines) + '\n'

    def get_listing(self) -> str:
        """Human-readable listing: address, bytes, source."""
        lines = [f"{'ADDR':<6}{'BYTES':<10}{'M':>2}{'T':>4}  SOURCE", "-" * 48]
        for i, rec in enumerate(self.listing):
            if not rec.byte_count:
                continue
            data = ' '.join(r.hex_code for r in self.listing[i:i + rec.byte_count])
            label = f"{rec.label}:" if rec.label else ''
            lines.append(f"{rec.address:<6}{data:<10}{rec.machine_cycles:>2}"
                         f"{rec.t_states:>4}  {label:<8}{rec.mnemonic}")
        return '\n'.join(lines)


@dataclass
class AssemblyOutcome:
    """Either a result or an error; never both."""
    result: Optional[AssemblyResult] = None
    error: Optional[AssemblyErrorInfo] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def machine_code(self) -> bytes:
        return self.result.machine_code if self.result is not None else b''

    @property
    def listing(self) -> List[ListingRecord]:
        return self.result.listing if self.result is not None else []


def _checksum(record: bytes) -> int:
    """Intel HEX checksum: two's complement of the byte sum."""
    return (-sum(record)) & 0xFF


def _parse_line(text: str, line_num: int) -> Optional[AsmLine]:
    """Split one source line into label / mnemonic / operands."""
    code = text.split(';', 1)[0].strip()
    if not code:
        return None
    line = AsmLine(line_num=line_num)

    parts = code.split(None, 1)
    if parts[0].endswith(':'):
        line.label_text = parts[0][:-1]
        line.label = line.label_text.upper()
        parts = parts[1].split(None, 1) if len(parts) > 1 else []
        if not parts:
            return line

    line.mnemonic = parts[0].upper()
    if len(parts) > 1:
        line.operands = [op.strip().upper() for op in parts[1].split(',')]
    return line


# ──────────────────────────────────────────────
# Assembler
# ──────────────────────────────────────────────

class Assembler:
    """Two-pass 8085 assembler over an injected opcode table."""

    MAX_SIZE = 0x10000

    def __init__(self, table: Optional[OpcodeTable] = None,
                 config: Optional[MachineConfig] = None):
        self.table = table if table is not None else INTEL_8085
        self.config = config if config is not None else MachineConfig()
        self._mnemonics = self.table.mnemonics
        self._reserved = _RESERVED_WORDS | self._mnemonics
        self._reset()

    def _reset(self):
        self._lines: List[AsmLine] = []
        self._declared: Dict[str, int] = {}       # label -> definition line
        self._addresses: Dict[str, int] = {}      # label -> resolved address
        self._fixups: List[Fixup] = []
        self._code = bytearray()
        self._listing: List[ListingRecord] = []

    def assemble(self, source: str) -> AssemblyResult:
        """Assemble source text. Raises AssemblerError on the first error."""
        self._reset()
        for num, text in enumerate(source.splitlines(), start=1):
            parsed = _parse_line(text, num)
            if parsed is not None:
                self._lines.append(parsed)

        self._pass1()
        self._pass2()
        self._patch()

        result = AssemblyResult(
            machine_code=bytes(self._code),
            listing=self._listing,
            labels=dict(self._addresses),
        )
        log.debug("Assembled %d bytes, %d labels, %d fixups",
                  len(result), len(result.labels), len(self._fixups))
        return result

    # ── Pass 1: label discovery ──

    def _pass1(self):
        for line in self._lines:
            if line.label is None:
                continue
            name = line.label
            if not _IDENT.match(name):
                raise AssemblerError(ErrorKind.INVALID_LABEL,
                                     f"Invalid label name '{line.label_text}'",
                                     line.line_num)
            if name in self._reserved:
                raise AssemblerError(ErrorKind.RESERVED_LABEL,
                                     f"'{line.label_text}' is a reserved word",
                                     line.line_num)
            if name in self._declared:
                raise AssemblerError(
                    ErrorKind.DUPLICATE_LABEL,
                    f"Label '{line.label_text}' already defined on line "
                    f"{self._declared[name]}", line.line_num)
            self._declared[name] = line.line_num

    # ── Pass 2: encode ──

    def _pass2(self):
        pending_label = ''
        for line in self._lines:
            if line.label is not None:
                self._addresses[line.label] = len(self._code)
                pending_label = line.label_text
            if line.mnemonic is None:
                continue
            self._encode_line(line, pending_label)
            pending_label = ''

    def _check_operands(self, line: AsmLine):
        for operand in line.operands:
            if not operand or any(c.isspace() for c in operand):
                raise AssemblerError(
                    ErrorKind.UNKNOWN_MNEMONIC,
                    f"Malformed operand list '{', '.join(line.operands)}'",
                    line.line_num)

    def _data_value(self, operand: str, num: int):
        """A declared label name, else the parsed number."""
        if operand in self._declared:
            return operand
        number = _parse_number(operand)
        if number is None:
            if _IDENT.match(operand) and operand not in _REGISTER_TOKENS:
                raise AssemblerError(ErrorKind.UNDEFINED_LABEL,
                                     f"Undefined label '{operand}'", num)
            raise AssemblerError(ErrorKind.INVALID_NUMERIC_LITERAL,
                                 f"Invalid number '{operand}'", num)
        return number

    def _encode_line(self, line: AsmLine, label: str):
        mnem = line.mnemonic
        num = line.line_num
        if mnem == _DB:
            self._encode_db(line, label)
            return
        if mnem not in self._mnemonics:
            raise AssemblerError(ErrorKind.UNKNOWN_MNEMONIC,
                                 f"Unknown mnemonic '{mnem}'", num)

        self._check_operands(line)
        literals = self.table.literal_operands(mnem)
        tokens = [mnem]
        value = None          # int literal or label name
        for operand in line.operands:
            if operand in _REGISTER_TOKENS or operand in literals:
                tokens.append(operand)
            else:
                tokens.append(DATA)
                value = self._data_value(operand, num)

        opcode = self.table.encode(tokens)
        if opcode is None:
            raise AssemblerError(
                ErrorKind.UNKNOWN_MNEMONIC,
                f"No form of {mnem} takes operands "
                f"'{', '.join(line.operands)}'", num)

        pattern = self.table.decode(opcode)
        width = sum(_WIDTH.get(t, 0) for t in pattern[1:])
        if len(self._code) + 1 + width > self.MAX_SIZE:
            raise AssemblerError(ErrorKind.DATA_OUT_OF_RANGE,
                                 "Program does not fit in 64K", num)

        if isinstance(value, str):
            self._fixups.append(Fixup(len(self._code) + 1, value, width, num))
            data = bytes(width)
        elif width:
            if not 0 <= value < (1 << (8 * width)):
                raise AssemblerError(
                    ErrorKind.DATA_OUT_OF_RANGE,
                    f"Value {value} does not fit in {width} byte(s)", num)
            data = bytes([value]) if width == 1 else self.config.split_word(value)
        else:
            data = b''

        cycles, t_states = self.table.timing(opcode)
        text = mnem
        if line.operands:
            text += ' ' + ','.join(line.operands)
        self._emit(opcode, ListingRecord(
            address=f"{len(self._code):04X}",
            label=label,
            mnemonic=text,
            hex_code=f"{opcode:02X}",
            byte_count=1 + width,
            machine_cycles=cycles,
            t_states=t_states,
            line=num,
        ))
        for b in data:
            self._emit(b, ListingRecord(
                address=f"{len(self._code):04X}", label='', mnemonic='',
                hex_code=f"{b:02X}", byte_count=0, line=num))

    def _encode_db(self, line: AsmLine, label: str):
        """DB: one byte per operand; labels become 1-byte fixups."""
        num = line.line_num
        if not line.operands:
            raise AssemblerError(ErrorKind.UNKNOWN_MNEMONIC,
                                 "DB needs at least one byte", num)
        self._check_operands(line)
        if len(self._code) + len(line.operands) > self.MAX_SIZE:
            raise AssemblerError(ErrorKind.DATA_OUT_OF_RANGE,
                                 "Program does not fit in 64K", num)

        data = bytearray()
        for operand in line.operands:
            value = self._data_value(operand, num)
            if isinstance(value, str):
                self._fixups.append(Fixup(len(self._code) + len(data), value, 1, num))
                value = 0
            elif not 0 <= value <= 0xFF:
                raise AssemblerError(ErrorKind.DATA_OUT_OF_RANGE,
                                     f"Value {value} does not fit in a byte", num)
            data.append(value)

        for i, b in enumerate(data):
            first = i == 0
            self._emit(b, ListingRecord(
                address=f"{len(self._code):04X}",
                label=label if first else '',
                mnemonic=f"{_DB} {','.join(line.operands)}" if first else '',
                hex_code=f"{b:02X}",
                byte_count=len(data) if first else 0,
                line=num,
            ))

    def _emit(self, byte: int, record: ListingRecord):
        self._code.append(byte)
        self._listing.append(record)

    # ── Patch pass ──

    def _patch(self):
        for fix in self._fixups:
            addr = self._addresses.get(fix.label)
            if addr is None:
                raise AssemblerError(ErrorKind.UNRESOLVED_LABEL,
                                     f"Label '{fix.label}' has no address",
                                     fix.line)
            if addr >= 1 << (8 * fix.width):
                raise AssemblerError(
                    ErrorKind.DATA_OUT_OF_RANGE,
                    f"Address of '{fix.label}' ({addr:04X}H) does not fit "
                    f"in {fix.width} byte(s)", fix.line)
            data = bytes([addr]) if fix.width == 1 else self.config.split_word(addr)
            for i, b in enumerate(data):
                self._code[fix.offset + i] = b
                self._listing[fix.offset + i].hex_code = f"{b:02X}"


# ──────────────────────────────────────────────
# Convenience functions
# ──────────────────────────────────────────────

def assemble(source: str, table: Optional[OpcodeTable] = None,
             config: Optional[MachineConfig] = None) -> AssemblyOutcome:
    """Assemble source text; errors come back in the outcome, not raised."""
    try:
        result = Assembler(table, config).assemble(source)
    except AssemblerError as e:
        log.debug("Assembly failed: %s", e)
        return AssemblyOutcome(error=AssemblyErrorInfo(e.kind, e.message, e.line))
    return AssemblyOutcome(result=result)


def assemble_to_ihex(source: str, config: Optional[MachineConfig] = None) -> str:
    """Assemble source text, return Intel HEX. Raises AssemblerError."""
    return Assembler(config=config).assemble(source).to_ihex()
