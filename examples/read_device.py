"""Connect to an HHI device, print its registers and follow notifications.

Usage:
    uv run python examples/read_device.py --duration 30
    uv run python examples/read_device.py --address AA:BB:CC:DD:EE:FF --amplitude 1500
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from collections import Counter
from dataclasses import asdict
from datetime import datetime

from hhi_ble import (
    DiscoveredDevice,
    DiscoveryCancelled,
    HHIDevice,
    HHIError,
    LogEntry,
    StateChange,
    get_mode_name,
)


def _timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


async def _pick_device(candidates: list[DiscoveredDevice]) -> DiscoveredDevice | None:
    """Terminal device picker; empty input cancels."""
    for index, candidate in enumerate(candidates):
        marker = "*" if candidate.advertises_control_service else " "
        print(
            f" {marker} [{index}] {candidate.name or 'Unknown'} "
            f"({candidate.address}) rssi={candidate.rssi}"
        )
    answer = (await asyncio.to_thread(input, "Select device (empty to cancel): ")).strip()
    if not answer:
        return None
    try:
        return candidates[int(answer)]
    except (ValueError, IndexError):
        print(f"Invalid selection: {answer}")
        return None


def _print_change(change: StateChange) -> None:
    print(f"[{_timestamp()}] {change.source:<6} {change.field}={change.value!r}")


def _print_log(entry: LogEntry) -> None:
    if entry.level >= logging.WARNING:
        print(f"[{_timestamp()}] {entry.level_name}: {entry.message}")


async def run(address: str | None, duration: float, amplitude: int | None) -> None:
    """Connect, dump state, optionally write amplitude, then listen."""
    sources: Counter[str] = Counter()
    device = HHIDevice(mac_address=address, chooser=None if address else _pick_device)
    device.add_log_listener(_print_log)

    try:
        report = await device.connect()
    except DiscoveryCancelled:
        print("Cancelled")
        return

    try:
        mode = device.operating_mode
        print(f"Connected: mode={int(mode)} ({get_mode_name(mode) or 'unknown'})")
        print(f"  registers read={len(report.succeeded)} missing={len(report.failed)}")
        for name, value in asdict(device.config).items():
            if name != "wifi_password":
                print(f"  config.{name}={value!r}")
        for name, value in asdict(device.status).items():
            print(f"  status.{name}={value!r}")

        if amplitude is not None:
            if not device.stimulation_relevant:
                print("Warning: stimulation settings only apply in custom mode (3)")
            device.config.stim_amplitude = amplitude
            save = await device.save_stimulation_settings()
            print(f"Saved stimulation settings: ok={save.ok}")

        def _on_change(change: StateChange) -> None:
            sources[change.source] += 1
            _print_change(change)

        device.add_state_listener(_on_change)

        if duration > 0:
            print(f"Listening for notifications: {duration:.1f}s")
            await asyncio.sleep(duration)
        else:
            print("Listening for notifications: unlimited (Ctrl+C to stop)")
            while device.is_connected:
                await asyncio.sleep(1)
    finally:
        await device.disconnect()

    print("\nSummary:")
    print(f"  changes_seen={dict(sources)}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Read and follow HHI device registers over BLE."
    )
    parser.add_argument(
        "--address",
        help="Device MAC address (default: scan and pick interactively).",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=30.0,
        help="Notification listen duration in seconds (0 = run until Ctrl+C). Default: 30",
    )
    parser.add_argument(
        "--amplitude",
        type=int,
        help="Write this stimulation amplitude before listening.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING)
    try:
        asyncio.run(run(address=args.address, duration=args.duration, amplitude=args.amplitude))
    except KeyboardInterrupt:
        pass
    except HHIError as err:
        print(f"Error: {err}")


if __name__ == "__main__":
    main()
