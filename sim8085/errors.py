"""
sim8085 — Runtime Error Types

Every fault the execution engine can hit while decoding or executing an
instruction, or while the host pokes at machine state, is one of these.
The engine's step() converts them into a StopReason and keeps the original
exception in `last_error`; step_or_raise() and the host accessors let them
propagate so callers can catch them by type.

    EmulatorError
      ├── UnknownOpcode           undefined byte at PC (also a LookupError)
      ├── UnsupportedInstruction  defined opcode this machine does not model
      ├── AddressOutOfBounds      memory address outside $0000–$FFFF
      ├── PortOutOfBounds         I/O port outside $00–$FF
      ├── InvalidRegister         unknown register name
      ├── ValueOutOfRange         16-bit register value outside $0000–$FFFF
      └── FlagBitOutOfBounds      flag bit index outside 0–7
"""

from typing import Optional


class EmulatorError(Exception):
    """Base class for all runtime faults."""

    def __init__(self, message: str, pc: Optional[int] = None):
        self.pc = pc
        if pc is not None:
            message = f"{message} at ${pc:04X}"
        super().__init__(message)


class UnknownOpcode(EmulatorError, LookupError):
    """Raised when a byte has no entry in the opcode table."""

    def __init__(self, opcode: int, pc: Optional[int] = None):
        self.opcode = opcode
        if 0 <= opcode <= 0xFF:
            text = f"Unknown opcode ${opcode:02X}"
        else:
            text = f"Opcode value {opcode} is not a byte"
        super().__init__(text, pc)


class UnsupportedInstruction(EmulatorError):
    """Raised for a defined instruction the current machine does not model."""

    def __init__(self, mnemonic: str, pc: Optional[int] = None):
        self.mnemonic = mnemonic
        super().__init__(f"{mnemonic} is not yet modeled", pc)


class AddressOutOfBounds(EmulatorError, ValueError):
    def __init__(self, addr: int):
        self.addr = addr
        super().__init__(f"Memory address {addr:#x} outside $0000-$FFFF")


class PortOutOfBounds(EmulatorError, ValueError):
    def __init__(self, port: int):
        self.port = port
        super().__init__(f"I/O port {port:#x} outside $00-$FF")


class InvalidRegister(EmulatorError, ValueError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Unknown register {name!r}")


class ValueOutOfRange(EmulatorError, ValueError):
    def __init__(self, name: str, value: int, limit: int):
        self.value = value
        super().__init__(f"{name}: value {value:#x} outside 0-{limit:#x}")


class FlagBitOutOfBounds(EmulatorError, ValueError):
    def __init__(self, bit: int):
        self.bit = bit
        super().__init__(f"Flag bit {bit} outside 0-7")
