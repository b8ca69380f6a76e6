"""
Error taxonomy for the Show2 driver.

Every recoverable failure raised by the driver derives from
``Show2Error``.  Each error keeps the values that explain it as
attributes so callers can log or branch on them without parsing the
message.

``ContractViolation`` is deliberately outside that hierarchy: it marks a
caller sequencing bug or a transport that broke its own contract, and
should not be caught by ``except Show2Error``.
"""

from __future__ import annotations

from typing import Optional


class Show2Error(RuntimeError):
    """Base class for all recoverable driver errors."""


class DeviceNotFoundError(Show2Error):
    """No attached USB device matched the requested VID/PID."""

    def __init__(self, vid: int, pid: int):
        self.vid = vid
        self.pid = pid
        super().__init__(f"USB device {vid:04x}:{pid:04x} not found")


class ConfigDescriptorUnavailableError(Show2Error):
    """The device's active configuration descriptor could not be read."""

    def __init__(self, vid: int, pid: int, reason: str = ""):
        self.vid = vid
        self.pid = pid
        self.reason = reason
        msg = f"Could not get config descriptor for {vid:04x}:{pid:04x}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class OpenFailedError(Show2Error):
    """The device was found but could not be opened.

    ``guidance`` holds host-specific steps that usually fix it.
    """

    def __init__(self, vid: int, pid: int, guidance: str, reason: str = ""):
        self.vid = vid
        self.pid = pid
        self.guidance = guidance
        self.reason = reason
        msg = f"Found {vid:04x}:{pid:04x}, but it could not be opened"
        if reason:
            msg += f" ({reason})"
        msg += f".\n{guidance}"
        super().__init__(msg)


class AmbiguousInterfaceError(Show2Error):
    """The device exposes zero or several interfaces and none was chosen."""

    def __init__(self, count: int):
        self.count = count
        super().__init__(
            f"This USB device has {count} interfaces to choose from. "
            "Specify an interface by using find_device_with_interface()"
        )


class InterfaceClaimFailedError(Show2Error):
    """The interface is already claimed by another session or process."""

    def __init__(self, interface: int, reason: str = ""):
        self.interface = interface
        self.reason = reason
        msg = f"Could not claim interface {interface}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class EndpointsNotFoundError(Show2Error):
    """The interface lacks a bulk IN or a bulk OUT endpoint."""

    def __init__(self, interface: int, has_in: bool = False, has_out: bool = False):
        self.interface = interface
        self.has_in = has_in
        self.has_out = has_out
        missing = [name for name, found in (("IN", has_in), ("OUT", has_out)) if not found]
        detail = " and ".join(missing) if missing else "IN/OUT"
        super().__init__(
            f"Could not find bulk {detail} endpoint on interface index {interface}"
        )


class PayloadTooLargeError(Show2Error):
    """The payload length does not fit the one-byte length field."""

    def __init__(self, length: int, limit: int = 0xFF):
        self.length = length
        self.limit = limit
        super().__init__(f"payload is too big! size: {length}, max size: {limit}")


class ProtocolError(Show2Error):
    """The device answered with an unexpected byte or byte count."""

    def __init__(self, step: str, expected: bytes, observed: bytes):
        self.step = step
        self.expected = expected
        self.observed = observed
        super().__init__(
            f"Protocol Error during {step}: expected {expected.hex() or '<nothing>'}, "
            f"got {observed.hex() or '<nothing>'} "
            f"({len(observed)} byte{'s' if len(observed) != 1 else ''})"
        )


class HandshakeTimeoutError(Show2Error, TimeoutError):
    """The device did not signal readiness within the overall timeout."""

    def __init__(self, step: str, timeout_ms: int, attempts: int):
        self.step = step
        self.timeout_ms = timeout_ms
        self.attempts = attempts
        super().__init__(
            f"timeout during {step}: no answer within {timeout_ms} ms "
            f"({attempts} read attempts)"
        )


class TransportError(Show2Error):
    """A bulk transfer failed at the USB layer."""

    def __init__(self, step: str, endpoint: int, reason: str = ""):
        self.step = step
        self.endpoint = endpoint
        self.reason = reason
        msg = f"Could not {step} on USB endpoint 0x{endpoint:02x}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ContractViolation(AssertionError):
    """A caller or transport broke the driver's usage contract."""

    def __init__(self, message: str, expected: Optional[object] = None,
                 observed: Optional[object] = None):
        self.expected = expected
        self.observed = observed
        super().__init__(message)
