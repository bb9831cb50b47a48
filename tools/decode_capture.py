#!/usr/bin/env python3
"""Decode and print frames from a captured Plugwise serial stream."""

import argparse
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from plugwise_gateway.core.errors import ProtocolError
from plugwise_gateway.protocol import messages
from plugwise_gateway.protocol.constants import Command
from plugwise_gateway.protocol.frames import DecodeStatus, Frame, FrameDecoder, format_address

PARSERS = {
    Command.ACK: messages.parse_ack,
    Command.INITIALIZE_RESPONSE: messages.parse_initialize,
    Command.INFO_RESPONSE: messages.parse_info,
    Command.CALIBRATION_RESPONSE: messages.parse_calibration,
    Command.POWER_USE_RESPONSE: messages.parse_power_use,
    Command.POWER_BUFFER_RESPONSE: messages.parse_power_buffer,
    Command.CLOCK_INFO_RESPONSE: messages.parse_clock_info,
}


def get_command_name(cmd: int) -> str:
    """Get human-readable command name."""
    try:
        return Command(cmd).name
    except ValueError:
        return f"UNKNOWN(0x{cmd:04X})"


def decode_stream(data: bytes, response: bool) -> tuple[list[Frame | DecodeStatus], dict]:
    """Run the streaming decoder over a whole capture."""
    decoder = FrameDecoder(response=response)
    decoder.feed(data)
    results: list[Frame | DecodeStatus] = []
    while True:
        result = decoder.decode()
        if result is DecodeStatus.NEED_MORE_DATA:
            break
        results.append(result)
    return results, decoder.stats


def print_frame(idx: int, frame: Frame, verbose: bool = False):
    """Print a single frame."""
    address = format_address(frame.address) if frame.address is not None else "-"
    sequence = f"{frame.sequence:04X}" if frame.sequence is not None else "----"
    print(f"[{idx:4d}] seq={sequence} {get_command_name(frame.command):24s} addr={address}")

    if not frame.payload:
        return
    parser = PARSERS.get(frame.command)
    if verbose and frame.is_response and parser is not None:
        try:
            print(f"       {parser(frame)}")
        except ProtocolError as e:
            print(f"       (undecodable: {e})")
    else:
        print(f"       payload: {frame.payload.decode('ascii')}")


def main():
    parser = argparse.ArgumentParser(description="Decode frames from captured serial data")
    parser.add_argument("input", help="Input binary file")
    parser.add_argument("--requests", "-r", action="store_true", help="Capture holds host-to-stick requests")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show decoded payloads")
    parser.add_argument("--limit", "-n", type=int, default=0, help="Limit number of frames to show (0=all)")
    parser.add_argument("--command", "-c", type=str, help="Filter by command (e.g., INFO_RESPONSE, 0x0024)")
    parser.add_argument("--stats", "-s", action="store_true", help="Show statistics only")
    args = parser.parse_args()

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: File not found: {input_path}")
        sys.exit(1)

    data = input_path.read_bytes()
    print(f"Loaded {len(data):,} bytes from {input_path}")
    print()

    results, stats = decode_stream(data, response=not args.requests)
    frames = [result for result in results if isinstance(result, Frame)]

    print(
        f"Extracted {len(frames)} frames ({stats['frames_invalid']} invalid, "
        f"{stats['noise_bytes']} noise bytes skipped)"
    )
    print()

    if args.stats:
        cmd_counts: dict[int, int] = {}
        addr_counts: dict[int, int] = {}
        for frame in frames:
            cmd_counts[frame.command] = cmd_counts.get(frame.command, 0) + 1
            if frame.address is not None:
                addr_counts[frame.address] = addr_counts.get(frame.address, 0) + 1

        print("Commands:")
        for cmd, count in sorted(cmd_counts.items(), key=lambda x: -x[1]):
            print(f"  0x{cmd:04X} {get_command_name(cmd):24s} {count:6d}")
        print()
        print("Addresses:")
        for address, count in sorted(addr_counts.items(), key=lambda x: -x[1]):
            print(f"  {format_address(address)} {count:6d}")
        return

    filter_cmd = None
    if args.command:
        if args.command.startswith("0x"):
            filter_cmd = int(args.command, 16)
        else:
            try:
                filter_cmd = Command[args.command.upper()].value
            except KeyError:
                print(f"Unknown command: {args.command}")
                sys.exit(1)

    shown = 0
    for idx, frame in enumerate(frames):
        if filter_cmd is not None and frame.command != filter_cmd:
            continue
        print_frame(idx, frame, args.verbose)
        shown += 1
        if args.limit and shown >= args.limit:
            break


if __name__ == "__main__":
    main()
