"""
sim8085 — I/O Port Space

256 byte-wide ports, $00–$FF, zero on reset. The CPU reaches them with
IN/OUT (when the machine profile models those instructions); the host
pokes them directly to simulate attached devices.

Change callbacks let a test harness watch outputs:
  ports.on_change(0x01, lambda port, old, new: print(f"LED: {new:08b}"))
"""

from ..errors import PortOutOfBounds

PORT_COUNT = 0x100


def _check(port) -> int:
    if not isinstance(port, int) or not 0 <= port < PORT_COUNT:
        raise PortOutOfBounds(port)
    return port


class PortSpace:
    """I/O port model. No pin-level emulation."""

    def __init__(self):
        self._ports = bytearray(PORT_COUNT)
        self._change_callbacks = {}

    def read(self, port: int) -> int:
        return self._ports[_check(port)]

    def write(self, port: int, value: int):
        """Write a port; fires change callbacks when the value changes."""
        _check(port)
        value &= 0xFF
        old = self._ports[port]
        self._ports[port] = value
        if old != value:
            for cb in self._change_callbacks.get(port, ()):
                cb(port, old, value)

    def set_input(self, port: int, value: int):
        """Drive a port from outside (a device) without firing callbacks."""
        self._ports[_check(port)] = value & 0xFF

    def on_change(self, port: int, callback):
        """Register callback(port, old_value, new_value) for writes to port."""
        self._change_callbacks.setdefault(_check(port), []).append(callback)

    def snapshot(self) -> bytes:
        return bytes(self._ports)

    def reset(self):
        """Reset all ports to zero. Callbacks stay registered."""
        self._ports[:] = bytes(PORT_COUNT)
