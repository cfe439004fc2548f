#!/usr/bin/env python3
"""
sim85 — 8085 assembler / emulator CLI

Usage:
    python sim85.py <input.asm> [-o output.bin|.hex|.lst] [--format bin|hex|listing]
                                [--run] [--max-steps N] [--trace]
                                [--dump-memory START:LEN] [--profile default|datasheet]
                                [-v] [-q] [--log-file PATH]
    python sim85.py <image.bin> --disasm

Output format is auto-detected from file extension:
    .bin       → raw binary (load at address 0)
    .hex/.ihx  → Intel HEX
    .lst       → listing with addresses, bytes and datasheet timing

Examples:
    python sim85.py add.asm                       # listing to stdout
    python sim85.py add.asm -o add.bin
    python sim85.py add.asm --run --dump-memory 0:32
    python sim85.py loop.asm --run --max-steps 500 --trace
    python sim85.py add.bin --disasm
"""

import argparse
import logging
import os
import sys
from pathlib import Path

# Allow running from project root without installing
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sim8085 import __version__
from sim8085.assembler import Assembler, AssemblerError
from sim8085.config import MachineConfig, PROFILES
from sim8085.disasm import Disassembler
from sim8085.emu import Emulator8085
from sim8085.errors import EmulatorError

logger = logging.getLogger("sim85")

_EXTENSIONS = {'.bin': 'bin', '.hex': 'hex', '.ihx': 'hex', '.lst': 'listing'}


def parse_int_arg(value: str) -> int:
    """Parse an integer argument: 0x1F, 1FH, $1F or decimal."""
    value = value.strip()
    if value.lower().startswith("0x"):
        return int(value, 16)
    if value.upper().endswith("H"):
        return int(value[:-1], 16)
    if value.startswith("$"):
        return int(value[1:], 16)
    return int(value)


def parse_range_arg(value: str):
    """Parse START:LEN for --dump-memory."""
    start, sep, length = value.partition(':')
    if not sep:
        raise argparse.ArgumentTypeError("expected START:LEN")
    try:
        return parse_int_arg(start), parse_int_arg(length)
    except ValueError:
        raise argparse.ArgumentTypeError(f"bad range {value!r}") from None


def setup_logging(args):
    """Configure logging based on arguments."""
    if args.quiet:
        level = logging.ERROR
    elif args.verbose == 0:
        level = logging.WARNING
    elif args.verbose == 1:
        level = logging.INFO
    else:  # -vv or more
        level = logging.DEBUG

    handlers = []

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    handlers.append(console)

    if args.log_file:
        log_path = Path(args.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if args.log_file else level,
        handlers=handlers,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sim85",
        description="Intel 8085 assembler and instruction-level emulator",
        epilog="Profiles: " + ", ".join(
            f"{name} ({p['description']})" for name, p in PROFILES.items()),
    )
    parser.add_argument("input", help="Assembly source (or binary image with --disasm)")
    parser.add_argument("-o", "--output", help="Output file (default: listing to stdout)")
    parser.add_argument("--format", choices=["bin", "hex", "listing"], default=None,
                        help="Output format (auto-detected from -o extension if not set)")
    parser.add_argument("--profile", choices=list(PROFILES), default="default",
                        help="Machine profile (default: default)")
    parser.add_argument("--run", action="store_true",
                        help="Run the assembled program from address 0")
    parser.add_argument("--max-steps", type=parse_int_arg, default=None,
                        help="Step budget for --run (0 = unbounded)")
    parser.add_argument("--trace", action="store_true",
                        help="Print one line per executed instruction")
    parser.add_argument("--dump-memory", type=parse_range_arg, default=None,
                        metavar="START:LEN", help="Hex dump memory after --run")
    parser.add_argument("--disasm", action="store_true",
                        help="Disassemble INPUT as a raw binary image")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More log output (-v info, -vv debug)")
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="Only log errors")
    parser.add_argument("--log-file", help="Also write a debug log to this file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _output_format(args) -> str:
    if args.format:
        return args.format
    if args.output:
        return _EXTENSIONS.get(os.path.splitext(args.output)[1].lower(), 'bin')
    return 'listing'


def _disassemble(args, config) -> int:
    try:
        data = Path(args.input).read_bytes()
    except OSError as e:
        print(f"Error reading {args.input}: {e}", file=sys.stderr)
        return 1
    for inst in Disassembler(config=config).disassemble(data):
        print(inst.format())
    return 0


def _run(args, config, image: bytes) -> int:
    emu = Emulator8085(config=config)
    emu.load_program(image)
    emu.enable_trace(args.trace)
    reason = emu.run(max_steps=args.max_steps)

    if args.trace:
        print(emu.get_trace())
    print(emu.regs.display())
    print(f"Stopped: {reason.value} after {emu.steps_executed} steps")
    if emu.last_error is not None:
        print(f"Runtime error: {emu.last_error}", file=sys.stderr)
    if args.dump_memory:
        start, length = args.dump_memory
        print(emu.mem.hexdump(start, length))
    return 1 if emu.last_error is not None else 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args)
    config = MachineConfig.from_profile(args.profile, trace=args.trace)

    if args.disasm:
        return _disassemble(args, config)

    try:
        with open(args.input, "r", encoding="utf-8") as f:
            source = f.read()
    except FileNotFoundError:
        print(f"Error: File not found: {args.input}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error reading {args.input}: {e}", file=sys.stderr)
        return 1

    logger.info("Input:   %s", args.input)
    logger.info("Profile: %s - %s", args.profile, PROFILES[args.profile]['description'])

    try:
        result = Assembler(config=config).assemble(source)
        logger.info("Assembled %d bytes, %d labels", len(result), len(result.labels))

        out_format = _output_format(args)
        if out_format == 'bin':
            output = result.machine_code
        elif out_format == 'hex':
            output = result.to_ihex()
        else:
            output = result.get_listing() + '\n'

        if args.output:
            if out_format == 'bin':
                Path(args.output).write_bytes(output)
            else:
                Path(args.output).write_text(output, encoding="utf-8")
            logger.info("Output:  %s (%s)", args.output, out_format)
        elif not args.run:
            if out_format == 'bin':
                # Can't write raw bytes to stdout in text mode
                sys.stdout.buffer.write(output)
            else:
                sys.stdout.write(output)

        if args.run:
            return _run(args, config, result.machine_code)

    except AssemblerError as e:
        print(f"Assembler error: {e}", file=sys.stderr)
        return 1
    except EmulatorError as e:
        print(f"Emulator error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
