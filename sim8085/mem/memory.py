"""
sim8085 — 64K Flat Memory

The 8085 sees one flat 16-bit address space, $0000–$FFFF, all RAM. Reset
zero-fills it. Programs are loaded as dense byte images (address 0 unless
the caller says otherwise).

Addresses are range-checked, never wrapped: read8/write8 outside the
address space raise AddressOutOfBounds. Values written are masked to
8 bits. Address arithmetic that wraps on real hardware (stack pointer
moves, the second byte of LHLD/SHLD) is masked by the CPU before it gets
here.
"""

from ..errors import AddressOutOfBounds

MEMORY_SIZE = 0x10000


def _check(addr) -> int:
    if not isinstance(addr, int) or not 0 <= addr < MEMORY_SIZE:
        raise AddressOutOfBounds(addr)
    return addr


class Memory:
    """64K byte-addressable memory."""

    def __init__(self):
        self._mem = bytearray(MEMORY_SIZE)

    def __len__(self) -> int:
        return MEMORY_SIZE

    # --- Core read/write ---

    def read8(self, addr: int) -> int:
        return self._mem[_check(addr)]

    def write8(self, addr: int, value: int):
        self._mem[_check(addr)] = value & 0xFF

    # --- Bulk access ---

    def load_binary(self, data: bytes, base_addr: int = 0):
        """Copy a byte image into memory starting at base_addr.

        The whole image must fit; nothing is written otherwise.
        """
        data = bytes(data)
        _check(base_addr)
        if data:
            _check(base_addr + len(data) - 1)
        self._mem[base_addr:base_addr + len(data)] = data

    def snapshot(self, start: int = 0, length: int = MEMORY_SIZE) -> bytes:
        """Copy of a memory range, for diffing before/after a run."""
        _check(start)
        if length:
            _check(start + length - 1)
        return bytes(self._mem[start:start + length])

    def clear(self):
        self._mem[:] = bytes(MEMORY_SIZE)

    # --- Hex dump ---

    def hexdump(self, start: int, length: int = 256) -> str:
        """Hex dump of memory for debugging. Stops at the end of memory."""
        _check(start)
        end = min(start + length, MEMORY_SIZE)
        lines = []
        for addr in range(start, end, 16):
            row = self._mem[addr:min(addr + 16, end)]
            hex_bytes = ' '.join(f'{b:02X}' for b in row)
            ascii_bytes = ''.join(chr(b) if 0x20 <= b < 0x7F else '.' for b in row)
            lines.append(f'{addr:04X}  {hex_bytes:<47}  {ascii_bytes}')
        return '\n'.join(lines)
