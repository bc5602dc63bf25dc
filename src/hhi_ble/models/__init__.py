"""Data models for HHI devices."""

from .enums import (
    ConnectivityFlag,
    OperatingMode,
    StimulationCommand,
    TriggerSource,
    get_mode_name,
    mode_allows_network,
    mode_allows_stimulation,
)
from .events import LogEntry, SaveReport, StateChange, SyncReport
from .state import ConfigState, StatusState, decode_connectivity

__all__ = [
    "ConfigState",
    "ConnectivityFlag",
    "LogEntry",
    "OperatingMode",
    "SaveReport",
    "StateChange",
    "StatusState",
    "StimulationCommand",
    "SyncReport",
    "TriggerSource",
    "decode_connectivity",
    "get_mode_name",
    "mode_allows_network",
    "mode_allows_stimulation",
]
