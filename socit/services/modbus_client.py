# socit/services/modbus_client.py

from __future__ import annotations

import asyncio
import ipaddress
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from pymodbus.client import AsyncModbusSerialClient, AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

SERIAL_BAUDRATE = 9600

T = TypeVar("T")


# ============================================================================
# Errors
# ============================================================================

class InverterError(Exception):
    """Base class for failures talking to the inverter."""


class BusError(InverterError):
    """A bus operation failed, including the retry after reconnecting."""


class DeviceConnectError(InverterError):
    """The initial connection to the inverter could not be established."""


IO_ERRORS = (ModbusException, OSError, asyncio.TimeoutError)


# ============================================================================
# Transport selection
# ============================================================================

def parse_socket_address(device: str) -> Optional[tuple[str, int]]:
    """Return (host, port) if ``device`` looks like ``host:port``, else None."""
    text = device.strip()
    if text.startswith("["):
        host, sep, port = text[1:].partition("]:")
        if not sep:
            return None
    else:
        host, sep, port = text.rpartition(":")
        if not sep or ":" in host:
            return None
    if not host or "/" in host or not port.isdigit():
        return None
    port_num = int(port)
    if not 0 < port_num < 65536:
        return None
    if ":" in host:
        try:
            ipaddress.IPv6Address(host)
        except ValueError:
            return None
    return host, port_num


def default_client_factory(device: str, timeout: float) -> Any:
    """Create a pymodbus client: TCP for ``host:port``, serial otherwise."""
    address = parse_socket_address(device)
    if address is not None:
        host, port = address
        return AsyncModbusTcpClient(host, port=port, timeout=timeout)
    # Not a socket address; treat it as a serial device path.
    return AsyncModbusSerialClient(device, baudrate=SERIAL_BAUDRATE, timeout=timeout)


# ============================================================================
# Robust client
# ============================================================================

class RobustModbusClient:
    """
    Holding-register client that reconnects once on I/O failure.

    Every operation is attempted on the live connection; if it fails the
    connection is torn down, re-established and the operation retried once.
    A second failure is raised as BusError. Writes compare against the
    current register contents first and are skipped when nothing changed,
    which limits wear on the inverter's persistent storage.
    """

    def __init__(
        self,
        device: str,
        unit: int = 1,
        *,
        timeout: float = 3.0,
        log: Optional[logging.Logger] = None,
        client_factory: Optional[Callable[[str, float], Any]] = None,
    ):
        self.device = device
        self.unit = unit
        self.timeout = timeout
        self.log = log or logging.getLogger("socit.modbus")
        self._factory = client_factory or default_client_factory
        self._client: Any = None

    # ----------------------------------------------------------------------

    async def _open(self) -> None:
        client = self._factory(self.device, self.timeout)
        if not await client.connect():
            raise ConnectionError(f"could not connect to {self.device}")
        self._client = client

    def _drop(self) -> None:
        if self._client is None:
            return
        try:
            self._client.close()
        except Exception as exc:  # pragma: no cover - best-effort teardown
            self.log.debug("Modbus close error: %s", exc)
        self._client = None

    async def connect(self) -> None:
        try:
            await self._open()
        except IO_ERRORS as exc:
            raise DeviceConnectError(f"Failed to connect to inverter at {self.device}: {exc}") from exc
        self.log.info("Connected to inverter at %s (unit %d)", self.device, self.unit)

    def close(self) -> None:
        self._drop()

    @property
    def connected(self) -> bool:
        return self._client is not None

    # ----------------------------------------------------------------------

    async def _call(self, what: str, op: Callable[[Any], Awaitable[T]]) -> T:
        if self._client is not None:
            try:
                return await op(self._client)
            except IO_ERRORS as exc:
                self.log.warning("Modbus %s failed (%s); reconnecting", what, exc)
        else:
            self.log.info("Modbus %s: no connection; reconnecting", what)

        self._drop()
        try:
            await self._open()
            return await op(self._client)
        except IO_ERRORS as exc:
            self._drop()
            raise BusError(f"Modbus {what} failed after reconnect: {exc}") from exc

    async def read(self, start: int, count: int) -> List[int]:
        async def op(client) -> List[int]:
            rr = await client.read_holding_registers(start, count=count, device_id=self.unit)
            if rr.isError():
                raise ModbusException(f"read error at {start}: {rr}")
            if len(rr.registers) < count:
                raise ModbusException(
                    f"short response at {start}: got {len(rr.registers)} of {count} registers"
                )
            return list(rr.registers[:count])

        return await self._call(f"read {start}+{count}", op)

    async def write(self, start: int, words: Sequence[int]) -> bool:
        """Write ``words`` at ``start``; returns False if the registers already matched."""
        values = [int(w) & 0xFFFF for w in words]
        current = await self.read(start, len(values))
        if current == values:
            self.log.debug("Registers %d+%d unchanged; skipping write", start, len(values))
            return False

        async def op(client) -> None:
            rr = await client.write_registers(start, values, device_id=self.unit)
            if rr.isError():
                raise ModbusException(f"write error at {start}: {rr}")

        await self._call(f"write {start}+{len(values)}", op)
        return True
