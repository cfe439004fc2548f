"""
sim8085 — Disassembler

Turns a byte image back into assembler source using the same opcode table
the engine decodes with. Output re-assembles to the same bytes under the
same MachineConfig.

API Usage:
    from sim8085.disasm import Disassembler

    dis = Disassembler()
    for inst in dis.disassemble(b'\\x3E\\x05\\x76'):
        print(inst.format())        # "$0000: 3E 05      MVI A,05H"

    dis.disassemble_hex("3E 05 06 03 80 76")

Bytes with no opcode, and instructions cut off by the end of the image,
come out as DB lines, which the assembler reads back as the same bytes.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import MachineConfig
from .opcodes import INTEL_8085, IMM8, IMM16, OpcodeTable


def hex_literal(value: int, digits: int = 2) -> str:
    """Assembler hex literal: 05H, 0FFH, 0C000H (leading 0 before A-F)."""
    text = f"{value:0{digits}X}H"
    if text[0] in 'ABCDEF':
        text = '0' + text
    return text


def format_instruction(pattern: Sequence[str], data: Optional[int] = None) -> str:
    """Render a decoded pattern with its immediate filled in."""
    operands = []
    for token in pattern[1:]:
        if token == IMM8:
            operands.append(hex_literal(data, 2))
        elif token == IMM16:
            operands.append(hex_literal(data, 4))
        else:
            operands.append(token)
    if not operands:
        return pattern[0]
    return f"{pattern[0]} {','.join(operands)}"


@dataclass
class DisassembledInstruction:
    """One decoded instruction with all formatting data."""
    address: int
    raw_bytes: bytes
    text: str
    cycles: int = 0
    t_states: int = 0

    @property
    def length(self) -> int:
        return len(self.raw_bytes)

    @property
    def hex_str(self) -> str:
        """Hex bytes formatted like '3E 05'."""
        return " ".join(f"{b:02X}" for b in self.raw_bytes)

    def format(self, hex_width: int = 10) -> str:
        """Format as a single disassembly line."""
        return f"${self.address:04X}: {self.hex_str.ljust(hex_width)} {self.text}"


class Disassembler:
    """
    8085 disassembler over an OpcodeTable.

    Usage:
        dis = Disassembler()
        results = dis.disassemble(raw_bytes, base_addr=0x0000)
        single  = dis.decode_one(raw_bytes, offset=0)
    """

    def __init__(self, table: Optional[OpcodeTable] = None,
                 config: Optional[MachineConfig] = None):
        self.table = table if table is not None else INTEL_8085
        self.config = config if config is not None else MachineConfig()

    # ── public API ──

    def disassemble(self, data: bytes, base_addr: int = 0,
                    max_instructions: int = 0) -> List[DisassembledInstruction]:
        """Disassemble a block of bytes."""
        data = bytes(data)
        results: List[DisassembledInstruction] = []
        offset = 0
        while offset < len(data):
            inst = self.decode_one(data, offset, base_addr + offset)
            results.append(inst)
            offset += inst.length
            if max_instructions and len(results) >= max_instructions:
                break
        return results

    def disassemble_hex(self, hex_string: str, base_addr: int = 0,
                        max_instructions: int = 0) -> List[DisassembledInstruction]:
        """Disassemble a hex string like '3E 05 76' or '3E0576'."""
        return self.disassemble(self._parse_hex(hex_string), base_addr,
                                max_instructions)

    def decode_one(self, data: bytes, offset: int = 0,
                   base_addr: int = 0) -> Optional[DisassembledInstruction]:
        """Decode exactly one instruction at the given offset."""
        if offset >= len(data):
            return None

        opcode = data[offset]
        if opcode not in self.table:
            return self._make_db(data, offset, base_addr, 1)

        total_len = self.table.length(opcode)
        if offset + total_len > len(data):
            return self._make_db(data, offset, base_addr, len(data) - offset)

        raw = bytes(data[offset:offset + total_len])
        if total_len == 3:
            value = self.config.join_word(raw[1:])
        elif total_len == 2:
            value = raw[1]
        else:
            value = None
        cycles, t_states = self.table.timing(opcode)
        return DisassembledInstruction(
            address=base_addr,
            raw_bytes=raw,
            text=format_instruction(self.table.decode(opcode), value),
            cycles=cycles,
            t_states=t_states,
        )

    def to_source(self, data: bytes) -> str:
        """Disassemble to plain assembler source, one instruction per line."""
        return '\n'.join(inst.text for inst in self.disassemble(data))

    # ── helpers ──

    @staticmethod
    def _make_db(data: bytes, offset: int, base_addr: int,
                 count: int) -> DisassembledInstruction:
        """DB pseudo-instruction for unknown or truncated bytes."""
        raw = bytes(data[offset:offset + count])
        return DisassembledInstruction(
            address=base_addr,
            raw_bytes=raw,
            text="DB " + ",".join(hex_literal(b) for b in raw),
        )

    @staticmethod
    def _parse_hex(hex_string: str) -> bytes:
        """Parse flexible hex input: '3E 05', '3E,05', '0x3E 0x05', '3E05'."""
        s = hex_string.strip()
        s = s.replace("0x", "").replace("0X", "")
        s = s.replace(",", " ").replace(";", " ").replace("\n", " ").replace("\t", " ")
        return bytes.fromhex("".join(s.split()))


def disassemble_bytes(data: bytes, base_addr: int = 0,
                      table: Optional[OpcodeTable] = None,
                      config: Optional[MachineConfig] = None) -> List[DisassembledInstruction]:
    """Module-level convenience function."""
    return Disassembler(table, config).disassemble(data, base_addr)
