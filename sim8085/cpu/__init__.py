"""8085 CPU core: register file and flag arithmetic."""

from .regs import Registers, Reg, concat16, split16

__all__ = ['Registers', 'Reg', 'concat16', 'split16']
