"""
sim8085 — Execution Engine

Integrates:
  - CPU registers (cpu/regs.py)
  - 64K memory (mem/memory.py)
  - 256 I/O ports (periph/ports.py)
  - Opcode table (opcodes.py), injected, shared with the assembler
  - Flag arithmetic (cpu/alu.py)

Execution model (one step):
  1. Fetch opcode at PC, decode through the opcode table
  2. Fetch the 0/1/2 immediate bytes (16-bit order per MachineConfig)
  3. Run the handler; control transfers set the next PC directly
  4. PC = next PC, or stop if sequential execution ran past $FFFF

States: halted / running. reset() leaves the machine halted; run() clears
the flag and starts at $0000; HLT (or any stop below) sets it again.
step() works in either state and never clears the flag itself.

Stop reasons:
  - HALT:           HLT executed (PC left on the HLT byte)
  - BREAK:          breakpoint address reached
  - BUDGET:         step budget exhausted
  - CANCELLED:      the caller's cancel event was set
  - ILLEGAL:        undefined opcode
  - UNSUPPORTED:    instruction this machine does not model
  - FAULT:          any other runtime fault (operand fetch past $FFFF)
  - END_OF_MEMORY:  PC would advance past $FFFF

Faults never escape step(): the exception is kept in `last_error`, logged,
and the machine halts. step_or_raise() is the same step without the
conversion.
"""

import logging
from collections import deque
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Optional, Set

from .config import MachineConfig
from .cpu import alu
from .cpu.regs import Registers, Reg, FLAG_CY, FLAG_Z, FLAG_S, FLAG_P
from .disasm import format_instruction
from .errors import (
    EmulatorError, UnknownOpcode, UnsupportedInstruction,
    InvalidRegister, ValueOutOfRange,
)
from .mem.memory import Memory
from .opcodes import INTEL_8085, CONDITIONS, OpcodeTable
from .periph.ports import PortSpace

log = logging.getLogger(__name__)

REGISTERS_8 = ('A', 'B', 'C', 'D', 'E', 'H', 'L', 'FLAG')
REGISTERS_16 = ('SP', 'PC')

# condition suffix -> (FLAG mask, required state)
_CONDITION_TEST = {
    'NZ': (FLAG_Z, False),
    'Z':  (FLAG_Z, True),
    'NC': (FLAG_CY, False),
    'C':  (FLAG_CY, True),
    'PO': (FLAG_P, False),
    'PE': (FLAG_P, True),
    'P':  (FLAG_S, False),
    'M':  (FLAG_S, True),
}


class StopReason(Enum):
    HALT = 'HALT'
    BREAK = 'BREAK'
    BUDGET = 'BUDGET'
    CANCELLED = 'CANCELLED'
    ILLEGAL = 'ILLEGAL'
    UNSUPPORTED = 'UNSUPPORTED'
    FAULT = 'FAULT'
    END_OF_MEMORY = 'END_OF_MEMORY'


class Emulator8085:
    """Intel 8085 instruction-level emulator.

    Usage:
        emu = Emulator8085()
        emu.load_program(bytes([0x3E, 0x05, 0x76]))   # MVI A,05H / HLT
        reason = emu.run()                              # StopReason.HALT
        emu.get_register('A')                           # 5
    """

    def __init__(self, table: Optional[OpcodeTable] = None,
                 config: Optional[MachineConfig] = None):
        self.table = table if table is not None else INTEL_8085
        self.config = config if config is not None else MachineConfig()

        self.regs = Registers()
        self.mem = Memory()
        self.ports = PortSpace()

        self.halted = True
        self.last_error: Optional[EmulatorError] = None
        self.steps_executed = 0

        # Breakpoints: set of PC addresses that stop run()/resume()
        self._breakpoints: Set[int] = set()

        self._trace = self.config.trace
        self._trace_output = deque(maxlen=self.config.trace_limit or None)

        # Per-step scratch, valid while a handler runs
        self._pc = 0
        self._next_pc = 0
        self._mnem = ''

        self._dispatch = self._build_dispatch()

    # ══════════════════════════════════════════════
    # Loading / reset
    # ══════════════════════════════════════════════

    def reset(self):
        """Power-on state: registers, memory and ports zeroed, halted."""
        self.regs.reset()
        self.mem.clear()
        self.ports.reset()
        self.halted = True
        self.last_error = None
        self.steps_executed = 0
        self._breakpoints.clear()
        self._trace_output.clear()

    def load_program(self, program, base_addr: int = 0):
        """Load a byte image (or a binary file path) into memory.

        Programs start at address 0; base_addr is for loading data
        blocks alongside. Raises AddressOutOfBounds if the image does
        not fit.
        """
        if isinstance(program, (str, Path)):
            data = Path(program).read_bytes()
        else:
            data = bytes(program)
        self.mem.load_binary(data, base_addr)
        log.debug("Loaded %d bytes at $%04X", len(data), base_addr)

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def step(self) -> Optional[StopReason]:
        """Execute one instruction. Returns StopReason if stopped, else None."""
        try:
            return self.step_or_raise()
        except UnknownOpcode as e:
            return self._fault(StopReason.ILLEGAL, e)
        except UnsupportedInstruction as e:
            return self._fault(StopReason.UNSUPPORTED, e)
        except EmulatorError as e:
            return self._fault(StopReason.FAULT, e)

    def step_or_raise(self) -> Optional[StopReason]:
        """Execute one instruction, letting runtime faults propagate.

        Every fault is raised before any state changes, so a failed step
        leaves the machine exactly as it was.
        """
        pc = self.regs.PC
        opcode = self.mem.read8(pc)
        try:
            pattern = self.table.decode(opcode)
        except UnknownOpcode:
            raise UnknownOpcode(opcode, pc) from None

        width = self.table.operand_width(opcode)
        if width == 1:
            data = self.mem.read8(pc + 1)
        elif width == 2:
            data = self.config.join_word(
                (self.mem.read8(pc + 1), self.mem.read8(pc + 2)))
        else:
            data = None

        self._pc = pc
        self._next_pc = pc + 1 + width
        self._mnem = pattern[0]

        # Registers are captured before execution; the line is recorded
        # only after the handler returns.
        line = None
        if self._trace:
            line = f"${pc:04X}: {format_instruction(pattern, data):<12s} {self.regs.display()}"

        try:
            self._dispatch[pattern[0]](pattern[1:], data)
        except _HaltException:
            self._record_trace(line)
            self.halted = True
            self.steps_executed += 1
            log.debug("HLT at $%04X after %d steps", pc, self.steps_executed)
            return StopReason.HALT

        self._record_trace(line)
        self.steps_executed += 1
        if self._next_pc > 0xFFFF:
            self.halted = True
            log.debug("Execution ran past $FFFF at $%04X", pc)
            return StopReason.END_OF_MEMORY
        self.regs.PC = self._next_pc
        return None

    def run(self, max_steps: Optional[int] = None, cancel=None) -> StopReason:
        """Start at $0000 and run until a stop condition.

        Args:
            max_steps: step budget; None uses config.max_steps, 0 means
                       no budget
            cancel:    anything with is_set() (e.g. threading.Event),
                       checked between steps

        Returns:
            StopReason indicating why execution stopped
        """
        self.regs.PC = 0
        return self.resume(max_steps, cancel)

    def resume(self, max_steps: Optional[int] = None, cancel=None) -> StopReason:
        """Continue from the current PC. Same stop conditions as run().

        A breakpoint on the first instruction is stepped over so resume()
        after a BREAK makes progress.
        """
        if max_steps is None:
            max_steps = self.config.max_steps
        self.halted = False
        self.last_error = None
        executed = 0
        while True:
            if cancel is not None and cancel.is_set():
                reason = StopReason.CANCELLED
                break
            if max_steps and executed >= max_steps:
                reason = StopReason.BUDGET
                break
            if executed and self.regs.PC in self._breakpoints:
                reason = StopReason.BREAK
                break
            reason = self.step()
            executed += 1
            if reason is not None:
                break
        self.halted = True
        log.debug("Stopped: %s after %d steps at $%04X",
                  reason.value, executed, self.regs.PC)
        return reason

    def _fault(self, reason: StopReason, error: EmulatorError) -> StopReason:
        self.last_error = error
        self.halted = True
        log.warning("%s: %s", reason.value, error)
        return reason

    # ══════════════════════════════════════════════
    # Host access (range-checked)
    # ══════════════════════════════════════════════

    def read_memory(self, addr: int) -> int:
        return self.mem.read8(addr)

    def write_memory(self, addr: int, value: int):
        self.mem.write8(addr, value)

    def read_port(self, port: int) -> int:
        return self.ports.read(port)

    def write_port(self, port: int, value: int):
        self.ports.write(port, value)

    def get_register(self, name: str) -> int:
        return getattr(self.regs, self._register_name(name))

    def set_register(self, name: str, value: int):
        """Set a register by name.

        8-bit registers mask the value; SP and PC reject values outside
        $0000-$FFFF.
        """
        name = self._register_name(name)
        if name in REGISTERS_16 and not 0 <= value <= 0xFFFF:
            raise ValueOutOfRange(name, value, 0xFFFF)
        setattr(self.regs, name, value)

    def get_flag(self, bit: int) -> bool:
        return self.regs.get_flag(bit)

    def set_flag(self, bit: int, value: bool):
        self.regs.set_flag(bit, value)

    @staticmethod
    def _register_name(name) -> str:
        key = name.upper() if isinstance(name, str) else name
        if key not in REGISTERS_8 and key not in REGISTERS_16:
            raise InvalidRegister(name)
        return key

    def state(self) -> dict:
        """Snapshot of everything a front end displays."""
        snap = self.regs.snapshot()
        snap.update(
            halted=self.halted,
            interrupts_enabled=self.regs.interrupts_enabled,
            steps=self.steps_executed,
            ports=self.ports.snapshot(),
        )
        return snap

    # ══════════════════════════════════════════════
    # Operand helpers
    # ══════════════════════════════════════════════

    def _read_r(self, name: str) -> int:
        """Register or M (memory at HL)."""
        if name == 'M':
            return self.mem.read8(self.regs.HL)
        return self.regs.get8(Reg[name])

    def _write_r(self, name: str, value: int):
        if name == 'M':
            self.mem.write8(self.regs.HL, value)
        else:
            self.regs.set8(Reg[name], value)

    def _source(self, ops, data) -> int:
        """ALU source: the immediate byte, else the register operand."""
        return data if data is not None else self._read_r(ops[0])

    def _condition(self, cond: str) -> bool:
        mask, wanted = _CONDITION_TEST[cond]
        return bool(self.regs.FLAG & mask) == wanted

    # ══════════════════════════════════════════════
    # Instruction handlers
    # ══════════════════════════════════════════════
    # Handler signature: handler(ops, data)
    #   ops  : operand tokens from the opcode pattern
    #   data : immediate value (8 or 16 bit) or None

    def _build_dispatch(self) -> dict:
        """Build mnemonic → handler dispatch table."""
        dispatch = {
            # ── Data transfer ──
            'MOV':  self._op_mov,
            'MVI':  self._op_mvi,
            'LXI':  self._op_lxi,
            'LDA':  self._op_lda,
            'STA':  self._op_sta,
            'LHLD': self._op_lhld,
            'SHLD': self._op_shld,
            'LDAX': self._op_ldax,
            'STAX': self._op_stax,
            'XCHG': self._op_xchg,
            'SPHL': self._op_sphl,
            'XTHL': self._op_xthl,

            # ── Stack ──
            'PUSH': self._op_push,
            'POP':  self._op_pop,

            # ── Arithmetic ──
            'ADD':  self._op_add,
            'ADI':  self._op_add,
            'ADC':  self._op_adc,
            'ACI':  self._op_adc,
            'SUB':  self._op_sub,
            'SUI':  self._op_sub,
            'SBB':  self._op_sbb,
            'SBI':  self._op_sbb,
            'INR':  self._op_inr,
            'DCR':  self._op_dcr,
            'INX':  self._op_inx,
            'DCX':  self._op_dcx,
            'DAD':  self._op_dad,
            'DAA':  self._op_daa,

            # ── Logic ──
            'ANA':  self._op_ana,
            'ANI':  self._op_ana,
            'XRA':  self._op_xra,
            'XRI':  self._op_xra,
            'ORA':  self._op_ora,
            'ORI':  self._op_ora,
            'CMP':  self._op_cmp,
            'CPI':  self._op_cmp,
            'RLC':  self._op_rlc,
            'RRC':  self._op_rrc,
            'RAL':  self._op_ral,
            'RAR':  self._op_rar,
            'CMA':  self._op_cma,
            'CMC':  self._op_cmc,
            'STC':  self._op_stc,

            # ── Control transfer ──
            'JMP':  self._op_jmp,
            'CALL': self._op_call,
            'RET':  self._op_ret,
            'RST':  self._op_rst,
            'PCHL': self._op_pchl,

            # ── I/O and machine control ──
            'IN':   self._op_in,
            'OUT':  self._op_out,
            'EI':   self._op_ei,
            'DI':   self._op_di,
            'RIM':  self._op_unmodeled,
            'SIM':  self._op_unmodeled,
            'NOP':  self._op_nop,
            'HLT':  self._op_hlt,
        }
        for cond in CONDITIONS:
            dispatch['J' + cond] = partial(self._op_jcc, cond)
            dispatch['C' + cond] = partial(self._op_ccc, cond)
            dispatch['R' + cond] = partial(self._op_rcc, cond)

        if not self.config.model_io_and_bcd:
            for mnem in ('DAA', 'IN', 'OUT'):
                dispatch[mnem] = self._op_unmodeled
        return dispatch

    # ── Data transfer handlers ──

    def _op_mov(self, ops, data):
        self._write_r(ops[0], self._read_r(ops[1]))

    def _op_mvi(self, ops, data):
        self._write_r(ops[0], data)

    def _op_lxi(self, ops, data):
        self.regs.set_pair(ops[0], data)

    def _op_lda(self, ops, data):
        self.regs.A = self.mem.read8(data)

    def _op_sta(self, ops, data):
        self.mem.write8(data, self.regs.A)

    def _op_lhld(self, ops, data):
        self.regs.L = self.mem.read8(data)
        self.regs.H = self.mem.read8((data + 1) & 0xFFFF)

    def _op_shld(self, ops, data):
        self.mem.write8(data, self.regs.L)
        self.mem.write8((data + 1) & 0xFFFF, self.regs.H)

    def _op_ldax(self, ops, data):
        self.regs.A = self.mem.read8(self.regs.get_pair(ops[0]))

    def _op_stax(self, ops, data):
        self.mem.write8(self.regs.get_pair(ops[0]), self.regs.A)

    def _op_xchg(self, ops, data):
        self.regs.HL, self.regs.DE = self.regs.DE, self.regs.HL

    def _op_sphl(self, ops, data):
        self.regs.SP = self.regs.HL

    def _op_xthl(self, ops, data):
        sp = self.regs.SP
        low = self.mem.read8(sp)
        high = self.mem.read8((sp + 1) & 0xFFFF)
        self.mem.write8(sp, self.regs.L)
        self.mem.write8((sp + 1) & 0xFFFF, self.regs.H)
        self.regs.L = low
        self.regs.H = high

    # ── Stack handlers ──

    def _op_push(self, ops, data):
        self.regs.push16(self.mem, self.regs.get_pair(ops[0]))

    def _op_pop(self, ops, data):
        self.regs.set_pair(ops[0], self.regs.pull16(self.mem))

    # ── Arithmetic handlers ──

    def _op_add(self, ops, data):
        self.regs.A, flags = alu.add8(self.regs.A, self._source(ops, data))
        self.regs.set_SZAPC(flags)

    def _op_adc(self, ops, data):
        self.regs.A, flags = alu.add8(self.regs.A, self._source(ops, data),
                                      int(self.regs.carry))
        self.regs.set_SZAPC(flags)

    def _op_sub(self, ops, data):
        self.regs.A, flags = alu.sub8(self.regs.A, self._source(ops, data))
        self.regs.set_SZAPC(flags)

    def _op_sbb(self, ops, data):
        self.regs.A, flags = alu.sub8(self.regs.A, self._source(ops, data),
                                      int(self.regs.carry))
        self.regs.set_SZAPC(flags)

    def _op_inr(self, ops, data):
        result, flags = alu.inr8(self._read_r(ops[0]))
        self._write_r(ops[0], result)
        self.regs.set_SZAP(flags)

    def _op_dcr(self, ops, data):
        result, flags = alu.dcr8(self._read_r(ops[0]))
        self._write_r(ops[0], result)
        self.regs.set_SZAP(flags)

    def _op_inx(self, ops, data):
        self.regs.set_pair(ops[0], self.regs.get_pair(ops[0]) + 1)

    def _op_dcx(self, ops, data):
        self.regs.set_pair(ops[0], self.regs.get_pair(ops[0]) - 1)

    def _op_dad(self, ops, data):
        self.regs.HL, flags = alu.dad16(self.regs.HL, self.regs.get_pair(ops[0]))
        self.regs.set_C(flags)

    def _op_daa(self, ops, data):
        self.regs.A, flags = alu.daa(self.regs.A, self.regs.FLAG)
        self.regs.set_SZAPC(flags)

    # ── Logic handlers ──

    def _op_ana(self, ops, data):
        self.regs.A, flags = alu.and8(self.regs.A, self._source(ops, data))
        self.regs.set_SZAPC(flags)

    def _op_xra(self, ops, data):
        self.regs.A, flags = alu.xor8(self.regs.A, self._source(ops, data))
        self.regs.set_SZAPC(flags)

    def _op_ora(self, ops, data):
        self.regs.A, flags = alu.or8(self.regs.A, self._source(ops, data))
        self.regs.set_SZAPC(flags)

    def _op_cmp(self, ops, data):
        _, flags = alu.cmp8(self.regs.A, self._source(ops, data))
        self.regs.set_SZAPC(flags)

    def _op_rlc(self, ops, data):
        self.regs.A, flags = alu.rlc(self.regs.A)
        self.regs.set_C(flags)

    def _op_rrc(self, ops, data):
        self.regs.A, flags = alu.rrc(self.regs.A)
        self.regs.set_C(flags)

    def _op_ral(self, ops, data):
        self.regs.A, flags = alu.ral(self.regs.A, int(self.regs.carry))
        self.regs.set_C(flags)

    def _op_rar(self, ops, data):
        self.regs.A, flags = alu.rar(self.regs.A, int(self.regs.carry))
        self.regs.set_C(flags)

    def _op_cma(self, ops, data):
        self.regs.A = ~self.regs.A

    def _op_cmc(self, ops, data):
        self.regs.FLAG ^= FLAG_CY

    def _op_stc(self, ops, data):
        self.regs.FLAG |= FLAG_CY

    # ── Control transfer handlers ──

    def _op_jmp(self, ops, data):
        self._next_pc = data

    def _op_jcc(self, cond, ops, data):
        if self._condition(cond):
            self._next_pc = data

    def _op_call(self, ops, data):
        self.regs.push16(self.mem, self._next_pc)
        self._next_pc = data

    def _op_ccc(self, cond, ops, data):
        if self._condition(cond):
            self._op_call(ops, data)

    def _op_ret(self, ops, data):
        self._next_pc = self.regs.pull16(self.mem)

    def _op_rcc(self, cond, ops, data):
        if self._condition(cond):
            self._op_ret(ops, data)

    def _op_rst(self, ops, data):
        self.regs.push16(self.mem, self._next_pc)
        self._next_pc = int(ops[0]) * 8

    def _op_pchl(self, ops, data):
        self._next_pc = self.regs.HL

    # ── I/O and machine control handlers ──

    def _op_in(self, ops, data):
        self.regs.A = self.ports.read(data)

    def _op_out(self, ops, data):
        self.ports.write(data, self.regs.A)

    def _op_ei(self, ops, data):
        self.regs.interrupts_enabled = True

    def _op_di(self, ops, data):
        self.regs.interrupts_enabled = False

    def _op_nop(self, ops, data):
        pass

    def _op_hlt(self, ops, data):
        raise _HaltException()

    def _op_unmodeled(self, ops, data):
        raise UnsupportedInstruction(self._mnem, self._pc)

    # ══════════════════════════════════════════════
    # Breakpoint API
    # ══════════════════════════════════════════════

    def add_breakpoint(self, addr: int):
        """Add a breakpoint at PC address. run()/resume() stop when PC hits this."""
        self._breakpoints.add(addr & 0xFFFF)

    def remove_breakpoint(self, addr: int):
        self._breakpoints.discard(addr & 0xFFFF)

    def clear_breakpoints(self):
        self._breakpoints.clear()

    @property
    def breakpoints(self) -> frozenset:
        return frozenset(self._breakpoints)

    # ══════════════════════════════════════════════
    # Trace / Debug
    # ══════════════════════════════════════════════

    def enable_trace(self, enable: bool = True):
        """Record one line per executed instruction (also logged at DEBUG).

        Only the last config.trace_limit lines are kept.
        """
        self._trace = enable

    def get_trace(self) -> str:
        return '\n'.join(self._trace_output)

    def _record_trace(self, line: Optional[str]):
        if line is None:
            return
        self._trace_output.append(line)
        log.debug(line)

    def clear_trace(self):
        self._trace_output.clear()


# Internal exception for flow control
class _HaltException(Exception):
    pass
