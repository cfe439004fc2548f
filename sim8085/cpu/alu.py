"""
sim8085 — ALU Flag Arithmetic

Pure functions, no CPU state. Each returns (result, flags) where flags is
a FLAG byte built from the masks in regs.py. The caller picks which flag
group to apply:

  set_SZAPC   ADD ADC SUB SBB, immediates, logical ops, CMP/CPI, DAA
  set_SZAP    INR DCR (CY is never touched)
  set_C       DAD and the rotates

Flag rules:
  S   = bit 7 of the 8-bit result
  Z   = result == 0
  P   = even number of 1 bits in the result
  AC  = add: carry out of bit 3;  sub/compare: borrow out of bit 3
  CY  = add: result > $FF;        sub/compare: result < 0 (A < operand)

Logical ops force CY=0; AND sets AC=1, XOR/OR clear AC.
"""

from .regs import FLAG_S, FLAG_Z, FLAG_AC, FLAG_P, FLAG_CY


def parity(value: int) -> bool:
    """True when value has an even number of 1 bits."""
    return bin(value & 0xFF).count('1') % 2 == 0


def szp(value: int) -> int:
    """S, Z and P flags for an 8-bit result."""
    value &= 0xFF
    flags = 0
    if value & 0x80:
        flags |= FLAG_S
    if value == 0:
        flags |= FLAG_Z
    if parity(value):
        flags |= FLAG_P
    return flags


# ══════════════════════════════════════════════
# 8-bit arithmetic
# ══════════════════════════════════════════════

def add8(a: int, b: int, carry: int = 0) -> tuple:
    """a + b + carry. Sets S, Z, AC, P, CY."""
    total = a + b + carry
    result = total & 0xFF
    flags = szp(result)
    if total > 0xFF:
        flags |= FLAG_CY
    if (a & 0x0F) + (b & 0x0F) + carry > 0x0F:
        flags |= FLAG_AC
    return (result, flags)


def sub8(a: int, b: int, borrow: int = 0) -> tuple:
    """a - b - borrow. Sets S, Z, AC, P, CY (CY = borrow)."""
    total = a - b - borrow
    result = total & 0xFF
    flags = szp(result)
    if total < 0:
        flags |= FLAG_CY
    if (a & 0x0F) - (b & 0x0F) - borrow < 0:
        flags |= FLAG_AC
    return (result, flags)


def cmp8(a: int, b: int) -> tuple:
    """Compare: flags of a - b. The caller discards the result."""
    return sub8(a, b)


def inr8(value: int) -> tuple:
    """Increment. Apply with set_SZAP so CY survives."""
    return add8(value, 1)


def dcr8(value: int) -> tuple:
    """Decrement. Apply with set_SZAP so CY survives."""
    return sub8(value, 1)


# ══════════════════════════════════════════════
# Logical
# ══════════════════════════════════════════════

def and8(a: int, b: int) -> tuple:
    result = a & b & 0xFF
    return (result, szp(result) | FLAG_AC)


def xor8(a: int, b: int) -> tuple:
    result = (a ^ b) & 0xFF
    return (result, szp(result))


def or8(a: int, b: int) -> tuple:
    result = (a | b) & 0xFF
    return (result, szp(result))


# ══════════════════════════════════════════════
# Rotates: return (result, CY flag)
# ══════════════════════════════════════════════

def rlc(a: int) -> tuple:
    """Rotate left, bit 7 into CY and bit 0."""
    out = (a >> 7) & 1
    return (((a << 1) | out) & 0xFF, out * FLAG_CY)


def rrc(a: int) -> tuple:
    """Rotate right, bit 0 into CY and bit 7."""
    out = a & 1
    return (((a >> 1) | (out << 7)) & 0xFF, out * FLAG_CY)


def ral(a: int, carry: int) -> tuple:
    """Rotate left through carry."""
    out = (a >> 7) & 1
    return (((a << 1) | carry) & 0xFF, out * FLAG_CY)


def rar(a: int, carry: int) -> tuple:
    """Rotate right through carry."""
    out = a & 1
    return (((a >> 1) | (carry << 7)) & 0xFF, out * FLAG_CY)


# ══════════════════════════════════════════════
# 16-bit and BCD
# ══════════════════════════════════════════════

def dad16(hl: int, pair: int) -> tuple:
    """HL + pair. Only CY, set when the sum exceeds $FFFF."""
    total = hl + pair
    return (total & 0xFFFF, FLAG_CY if total > 0xFFFF else 0)


def daa(a: int, flags: int) -> tuple:
    """Decimal adjust A after a BCD add.

    Low nibble > 9 or AC set: add 6 (AC = carry out of bit 3).
    Then high nibble > 9 or CY set: add $60 and set CY. CY is never cleared.
    """
    carry = flags & FLAG_CY
    out = 0
    low = a & 0x0F
    if low > 9 or flags & FLAG_AC:
        a += 0x06
        if low + 0x06 > 0x0F:
            out |= FLAG_AC
    if (a >> 4) > 9 or carry:
        a += 0x60
        carry = FLAG_CY
    if a > 0xFF:
        carry = FLAG_CY
    result = a & 0xFF
    return (result, szp(result) | out | carry)
