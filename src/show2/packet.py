"""
Show2 packet transaction — the request/acknowledge handshake.

Wire protocol (USB bulk, one byte per transfer)::

    host → device   0x06            acknowledge / start marker
    host → device   <length>        payload length, 0..255
    device → host   0x06            write request acknowledged
    device → host   0x06 (polled)   ready to receive the payload

States::

    UNSENT → REQUEST_SENT → READY_TO_SEND → SENT
                         ↘ DO_NOT_SEND

Only the handshake up to READY_TO_SEND is implemented.  SENT and
DO_NOT_SEND exist so the state set is complete; entering either raises
``NotImplementedError``.

Protocol reference: https://dn.odroid.com/ODROID-SHOW/show_protocol.png
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Union

import usb.core

from .errors import (
    ContractViolation,
    HandshakeTimeoutError,
    PayloadTooLargeError,
    ProtocolError,
    TransportError,
)
from .usb_transport import DEFAULT_TIMEOUT_MS

if TYPE_CHECKING:
    from .device_session import Show2Device

log = logging.getLogger(__name__)

ACKNOWLEDGE_BYTE = 0x06
MAX_PAYLOAD_LENGTH = 0xFF

# libusb treats a 0 ms timeout as "wait forever"; 1 ms is the shortest real wait
ACK_READ_TIMEOUT_MS = 1

# Per-attempt read timeout while polling for "ready to receive"
POLL_INTERVAL_MS = 10

_ACK = bytes([ACKNOWLEDGE_BYTE])


class PacketState(Enum):
    UNSENT = "unsent"
    REQUEST_SENT = "request_sent"
    READY_TO_SEND = "ready_to_send"
    DO_NOT_SEND = "do_not_send"
    SENT = "sent"


# Payload transfer is not implemented; these states cannot be entered yet
_UNREACHABLE = frozenset({PacketState.SENT, PacketState.DO_NOT_SEND})


class Show2Packet:
    """One payload exchange with a Show2 device.

    The packet keeps references to its payload and its session and must
    not be used after the session is closed.  Several packets may be
    built against one session, but their handshakes must not interleave.
    """

    def __init__(self, payload: Union[str, bytes, bytearray, memoryview],
                 device: Show2Device):
        if isinstance(payload, str):
            length = len(payload.encode("utf-8"))
        else:
            length = memoryview(payload).nbytes
        if length > MAX_PAYLOAD_LENGTH:
            raise PayloadTooLargeError(length, MAX_PAYLOAD_LENGTH)

        self.device = device
        self.payload = payload
        self.length = length
        self._state = PacketState.UNSENT

    @property
    def state(self) -> PacketState:
        return self._state

    def _set_state(self, state: PacketState) -> None:
        if state in _UNREACHABLE:
            raise NotImplementedError(
                f"{state.name} is not reachable: payload transfer is not implemented")
        log.debug("Packet state %s → %s", self._state.name, state.name)
        self._state = state

    def _require_state(self, expected: PacketState, operation: str) -> None:
        if self._state is not expected:
            raise ContractViolation(
                f"{operation}() requires state {expected.name}, "
                f"packet is {self._state.name}",
                expected=expected, observed=self._state,
            )
        if self.device.closed:
            raise ContractViolation(f"{operation}() on a closed Show2 session")

    def _write_byte(self, value: int, step: str, timeout: int) -> int:
        endpoint = self.device.io_out.address
        try:
            sent = self.device.write(bytes([value]), timeout)
        except usb.core.USBError as e:
            raise TransportError(f"write {step}", endpoint, str(e)) from e
        if sent != 1:
            raise ContractViolation(
                f"wrote {sent} bytes for the {step}, expected exactly 1",
                expected=1, observed=sent,
            )
        log.debug("→ 0x%02x (%s) on EP 0x%02x", value, step, endpoint)
        return sent

    # -- Handshake ---------------------------------------------------------

    def start_transaction(self, timeout: int = DEFAULT_TIMEOUT_MS) -> int:
        """Send the start marker and the payload length, expect an ACK.

        Args:
            timeout: Timeout in ms for each of the two writes.  The ACK
                read does not wait.

        Returns:
            Bytes written for the length byte (always 1).

        Raises:
            ProtocolError: The device did not answer with 0x06.
            TransportError: A write failed at the USB layer.
        """
        self._require_state(PacketState.UNSENT, "start_transaction")

        self._write_byte(ACKNOWLEDGE_BYTE, "acknowledge marker", timeout)
        bytes_sent = self._write_byte(self.length, "payload length", timeout)

        step = "write request acknowledge"
        try:
            reply = self.device.read(1, ACK_READ_TIMEOUT_MS)
        except usb.core.USBTimeoutError as e:
            raise ProtocolError(step, _ACK, b"") from e
        except usb.core.USBError as e:
            raise TransportError("read acknowledge", self.device.io_in.address, str(e)) from e

        if len(reply) != 1 or reply[0] != ACKNOWLEDGE_BYTE:
            raise ProtocolError(step, _ACK, bytes(reply))

        log.debug("← ACK; length %d accepted", self.length)

        # TODO: advance to REQUEST_SENT once the ready-to-receive poll has
        # been verified against hardware; until then check_is_ready_to_receive
        # is only reachable by setting the state explicitly.
        return bytes_sent

    def check_is_ready_to_receive(self, timeout: int = DEFAULT_TIMEOUT_MS) -> None:
        """Poll the IN endpoint until the device signals it is ready.

        Each attempt waits ``POLL_INTERVAL_MS``.  Read failures (no data
        yet) are retried until *timeout* ms have elapsed in total.

        Raises:
            ProtocolError: The device answered with something other than 0x06.
            HandshakeTimeoutError: No answer within *timeout*.
        """
        self._require_state(PacketState.REQUEST_SENT, "check_is_ready_to_receive")

        step = "ready-to-receive poll"
        start = time.monotonic()
        attempts = 0

        while True:
            attempts += 1
            try:
                reply = self.device.read(1, POLL_INTERVAL_MS)
            except usb.core.USBError as e:
                elapsed_ms = (time.monotonic() - start) * 1000
                if elapsed_ms >= timeout:
                    raise HandshakeTimeoutError(step, timeout, attempts) from e
                continue

            if len(reply) != 1 or reply[0] != ACKNOWLEDGE_BYTE:
                raise ProtocolError(step, _ACK, bytes(reply))
            break

        log.debug("← ACK after %d attempts; ready to send", attempts)
        self._set_state(PacketState.READY_TO_SEND)
