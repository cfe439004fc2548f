"""
sim8085 — Machine Profiles

A profile bundles the knobs that differ between "the simulator as taught"
and "the chip on the datasheet":

  default    16-bit immediates stored high byte first, DAA/IN/OUT reported
             as not yet modeled. This is the teaching machine.
  datasheet  16-bit immediates stored low byte first (Intel order), IN/OUT
             move bytes between A and the port space, DAA performs the
             decimal adjust.

RIM/SIM are never modeled; there is no interrupt hardware behind them.

The assembler and the engine take the same MachineConfig so an image
assembled under one profile is always read back in the same byte order.
"""

from dataclasses import dataclass, fields, replace

BIG = 'big'
LITTLE = 'little'

DEFAULT_MAX_STEPS = 1_000_000
DEFAULT_TRACE_LIMIT = 10_000

PROFILES = {
    "default": {
        "operand_order": BIG,
        "model_io_and_bcd": False,
        "max_steps": DEFAULT_MAX_STEPS,
        "description": "Teaching machine - big-endian immediates, DAA/IN/OUT unmodeled",
    },
    "datasheet": {
        "operand_order": LITTLE,
        "model_io_and_bcd": True,
        "max_steps": DEFAULT_MAX_STEPS,
        "description": "Intel 8085 datasheet - little-endian immediates, DAA/IN/OUT modeled",
    },
}


@dataclass(frozen=True)
class MachineConfig:
    """Settings shared by the engine and the assembler.

    max_steps of 0 or None means run() is unbounded unless the caller
    supplies its own budget. trace_limit caps the in-memory trace to the
    most recent lines; 0 keeps every line.
    """
    operand_order: str = BIG
    model_io_and_bcd: bool = False
    max_steps: int = DEFAULT_MAX_STEPS
    trace: bool = False
    trace_limit: int = DEFAULT_TRACE_LIMIT

    def __post_init__(self):
        if self.operand_order not in (BIG, LITTLE):
            raise ValueError(f"operand_order must be '{BIG}' or '{LITTLE}', "
                             f"got {self.operand_order!r}")
        if self.max_steps is not None and self.max_steps < 0:
            raise ValueError("max_steps must be >= 0")
        if self.trace_limit < 0:
            raise ValueError("trace_limit must be >= 0")

    @classmethod
    def from_profile(cls, name: str = "default", **overrides) -> "MachineConfig":
        if name not in PROFILES:
            raise ValueError(f"Unknown profile {name!r} "
                             f"(choose from: {', '.join(PROFILES)})")
        known = {f.name for f in fields(cls)}
        settings = {k: v for k, v in PROFILES[name].items() if k in known}
        return replace(cls(**settings), **overrides)

    def split_word(self, value: int) -> bytes:
        """Encode a 16-bit immediate in instruction-stream order."""
        value &= 0xFFFF
        return value.to_bytes(2, self.operand_order)

    def join_word(self, data) -> int:
        """Decode two instruction-stream bytes into a 16-bit value."""
        return int.from_bytes(bytes(data[:2]), self.operand_order)
