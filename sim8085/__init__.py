"""
sim8085 — Intel 8085 Emulator and Assembler
============================================
An instruction-level 8085 emulator and a two-pass assembler that share a
single opcode table, so what the assembler encodes is exactly what the
engine decodes.

Architecture:
    ┌───────────┐    ┌───────────┐    ┌──────────────┐    ┌────────────┐
    │ .asm text │───>│ Assembler │───>│ byte image + │───>│ Emulator   │
    │           │    │ (2 pass)  │    │ listing      │    │ (step/run) │
    └───────────┘    └─────┬─────┘    └──────────────┘    └─────┬──────┘
                           │          ┌──────────────┐          │
                           └─────────>│ OpcodeTable  │<─────────┘
                                      │ encode/decode│
                                      └──────────────┘

    - opcodes.py:   byte <-> token pattern, datasheet timing
    - config.py:    machine profiles (operand byte order, DAA/IN/OUT)
    - cpu/:         register file + pure flag arithmetic
    - mem/, periph/: 64K memory and 256 I/O ports, range-checked
    - emu.py:       fetch/decode/execute, run budget, cancellation
    - assembler.py: labels, fixups, listing, Intel HEX
    - disasm.py:    bytes back to source through the same table
"""

__version__ = "0.4.0"

from .errors import (
    EmulatorError, UnknownOpcode, UnsupportedInstruction, AddressOutOfBounds,
    PortOutOfBounds, InvalidRegister, ValueOutOfRange, FlagBitOutOfBounds,
)
from .config import MachineConfig, PROFILES
from .opcodes import OpcodeTable, INTEL_8085
from .emu import Emulator8085, StopReason
from .assembler import (
    Assembler, AssemblerError, ErrorKind, AssemblyResult, AssemblyOutcome,
    ListingRecord, assemble, assemble_to_ihex,
)
from .disasm import Disassembler, disassemble_bytes
