"""Keeps ConfigState/StatusState in step with the device."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import fields
from functools import partial
from typing import TYPE_CHECKING, Any, Final

from .exceptions import EncodingError, RegisterAccessError, SessionClosed
from .models import (
    ConfigState,
    LogEntry,
    StateChange,
    StatusState,
    SyncReport,
    decode_connectivity,
    mode_allows_network,
    mode_allows_stimulation,
)
from .protocol import CATALOG, RegisterId, describe
from .transport import read_register, subscribe

if TYPE_CHECKING:
    from .transport import DeviceSession

_LOGGER = logging.getLogger(__name__)

# Later optional reads must never block earlier ones; composite fields come
# from a single raw read.
READ_ORDER: Final[tuple[RegisterId, ...]] = (
    RegisterId.OPERATING_MODE,
    RegisterId.STIM_AMPLITUDE,
    RegisterId.STIM_FREQUENCY,
    RegisterId.STIM_PULSE_WIDTH,
    RegisterId.STIM_DURATION,
    RegisterId.STIM_PULSE_COUNT,
    RegisterId.EMG_THRESHOLD,
    RegisterId.TRIGGER_ENABLE,
    RegisterId.CONNECTIVITY,
    RegisterId.IP_ADDRESS,
    RegisterId.WIFI_SSID,
    RegisterId.MQTT_SERVER,
    RegisterId.MASTER_NAME,
    RegisterId.MINION_NAME,
    RegisterId.BATTERY_LEVEL,
)

REQUIRED_REGISTERS: Final[frozenset[RegisterId]] = frozenset({RegisterId.OPERATING_MODE})

NOTIFY_ORDER: Final[tuple[RegisterId, ...]] = (
    RegisterId.CONNECTIVITY,
    RegisterId.IP_ADDRESS,
    RegisterId.WIFI_SSID,
    RegisterId.MQTT_SERVER,
    RegisterId.MASTER_NAME,
    RegisterId.MINION_NAME,
    RegisterId.BATTERY_LEVEL,
    RegisterId.CURRENT_AMPLITUDE,
    RegisterId.CURRENT_EMG_THRESHOLD,
    RegisterId.STIM_ACTIVE,
)

_CONFIG_FIELD_NAMES = frozenset(f.name for f in fields(ConfigState))

# Register id -> ConfigState attribute. Mirror registers feed the same
# field as the register they mirror.
CONFIG_FIELDS: Final[dict[int, str]] = {
    **{reg.id: reg.name for reg in CATALOG.values() if reg.name in _CONFIG_FIELD_NAMES},
    RegisterId.CURRENT_AMPLITUDE: "stim_amplitude",
    RegisterId.CURRENT_EMG_THRESHOLD: "emg_threshold",
}

STATUS_FIELDS: Final[dict[int, str]] = {
    RegisterId.IP_ADDRESS: "ip_address",
    RegisterId.BATTERY_LEVEL: "battery_percent",
    RegisterId.STIM_ACTIVE: "stim_active",
}


class StateSynchronizer:
    """Single mutator of ConfigState and StatusState.

    Both the initial read and notifications go through :meth:`apply`, so the
    same bytes always produce the same application-level value.
    """

    def __init__(
            self,
            config: ConfigState | None = None,
            status: StatusState | None = None,
    ):
        self.config = config if config is not None else ConfigState()
        self.status = status if status is not None else StatusState()
        self._state_listeners: list[Callable[[StateChange], None]] = []
        self._log_listeners: list[Callable[[LogEntry], None]] = []

    @property
    def current_mode(self) -> int:
        """Last known operating mode."""
        return self.config.operating_mode

    @property
    def stimulation_relevant(self) -> bool:
        return mode_allows_stimulation(self.config.operating_mode)

    @property
    def network_relevant(self) -> bool:
        return mode_allows_network(self.config.operating_mode)

    def add_state_listener(self, callback: Callable[[StateChange], None]) -> Callable[[], None]:
        """Subscribe to the state-change feed. Returns an unsubscribe function."""
        self._state_listeners.append(callback)
        return lambda: self._state_listeners.remove(callback)

    def add_log_listener(self, callback: Callable[[LogEntry], None]) -> Callable[[], None]:
        """Subscribe to the diagnostic log feed. Returns an unsubscribe function."""
        self._log_listeners.append(callback)
        return lambda: self._log_listeners.remove(callback)

    def log(
            self,
            level: int,
            msg: str,
            *args: Any,
            register: int | None = None,
            error: BaseException | None = None,
    ) -> None:
        """Record an entry on both the logging module and the log feed.

        ``msg`` and ``args`` use logging's %-style formatting; the feed entry
        carries the formatted message.
        """
        _LOGGER.log(level, msg, *args)
        message = msg % args if args else msg
        entry = LogEntry(level=level, message=message, register=register, error=error)
        for callback in list(self._log_listeners):
            try:
                callback(entry)
            except Exception:
                _LOGGER.exception("Log listener failed")

    def apply(self, register_id: int, value: Any, source: str) -> list[StateChange]:
        """Store a decoded register value in the state mirrors.

        Args:
            register_id: Register the value came from
            value: Decoded value
            source: "read" or "notify"

        Returns:
            The field changes that were applied
        """
        updates: list[tuple[object, str, Any]] = []

        if register_id == RegisterId.CONNECTIVITY:
            wifi, mqtt = decode_connectivity(value)
            updates.append((self.status, "wifi_connected", wifi))
            updates.append((self.status, "mqtt_connected", mqtt))
        elif register_id == RegisterId.STIM_ACTIVE:
            updates.append((self.status, "stim_active", bool(value)))
        elif register_id in STATUS_FIELDS:
            updates.append((self.status, STATUS_FIELDS[register_id], value))
        elif register_id in CONFIG_FIELDS:
            updates.append((self.config, CONFIG_FIELDS[register_id], value))
        else:
            _LOGGER.debug("No state field for %s", describe(register_id))
            return []

        changes = []
        for target, name, new_value in updates:
            setattr(target, name, new_value)
            changes.append(StateChange(register=register_id, field=name, value=new_value, source=source))
        self._publish(changes)
        return changes

    def record_write(self, register_id: int, value: Any) -> list[StateChange]:
        """Reflect a confirmed user write into ConfigState."""
        name = CONFIG_FIELDS.get(register_id)
        if name is None:
            return []
        setattr(self.config, name, value)
        changes = [StateChange(register=register_id, field=name, value=value, source="write")]
        self._publish(changes)
        return changes

    def handle_disconnect(self, session: DeviceSession | None = None) -> None:
        """Clear status fields so nothing stale survives the session."""
        changed = self.status.reset()
        self._publish([
            StateChange(register=None, field=name, value=getattr(self.status, name), source="reset")
            for name in changed
        ])
        self.log(logging.INFO, "Device disconnected; status cleared")

    async def initial_read(self, session: DeviceSession) -> SyncReport:
        """Read every readable register in canonical order.

        Each register is independent: a missing or failing register is
        logged and skipped. Only loss of the session stops the pass.

        Raises:
            SessionClosed: If the session ends mid-pass
        """
        report = SyncReport()
        for register_id in READ_ORDER:
            try:
                value = await read_register(session, register_id)
            except SessionClosed as e:
                self.log(logging.WARNING, "Initial read aborted: %s", e, register=register_id, error=e)
                raise
            except (RegisterAccessError, EncodingError) as e:
                report.failed[register_id] = e
                if register_id in REQUIRED_REGISTERS:
                    report.required_failed = True
                    level = logging.ERROR
                else:
                    level = logging.WARNING
                self.log(
                    level,
                    "Read of %s not available: %s",
                    describe(register_id),
                    e,
                    register=register_id,
                    error=e,
                )
                continue

            self.apply(register_id, value, "read")
            report.succeeded.append(register_id)

        _LOGGER.info(
            "Initial read complete: %d ok, %d failed",
            len(report.succeeded),
            len(report.failed),
        )
        return report

    async def arm_notifications(self, session: DeviceSession) -> SyncReport:
        """Subscribe to every status/mirror register.

        Raises:
            SessionClosed: If the session ends mid-pass
        """
        report = SyncReport()
        for register_id in NOTIFY_ORDER:
            try:
                await subscribe(
                    session,
                    register_id,
                    partial(self._on_notification, register_id),
                    on_error=partial(self._on_notification_error, register_id),
                )
            except SessionClosed as e:
                self.log(logging.WARNING, "Notification setup aborted: %s", e, register=register_id, error=e)
                raise
            except RegisterAccessError as e:
                report.failed[register_id] = e
                self.log(
                    logging.WARNING,
                    "Notifications for %s not available: %s",
                    describe(register_id),
                    e,
                    register=register_id,
                    error=e,
                )
                continue
            report.succeeded.append(register_id)
        return report

    def _on_notification(self, register_id: int, value: Any) -> None:
        self.apply(register_id, value, "notify")

    def _on_notification_error(self, register_id: int, error: BaseException) -> None:
        self.log(
            logging.WARNING,
            "Malformed notification on %s: %s",
            describe(register_id),
            error,
            register=register_id,
            error=error,
        )

    def _publish(self, changes: list[StateChange]) -> None:
        for change in changes:
            for callback in list(self._state_listeners):
                try:
                    callback(change)
                except Exception:
                    _LOGGER.exception("State listener failed")
