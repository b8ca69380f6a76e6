"""
Show2 device session: match, open, claim, resolve.

A ``Show2Device`` owns one open handle to the display, the interface it
claimed and the bulk endpoints resolved on that interface.  It is the
handle every ``Show2Packet`` transaction goes through.

Open sequence::

    match VID/PID → config descriptor → open handle
        → pick interface → claim → resolve bulk IN/OUT

Usage::

    from show2 import find_device

    with find_device(0x10C4, 0xEA60) as show:
        packet = show.into_packet("Lorem Ipsum")
        packet.start_transaction(500)
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import Any, Callable, Iterable, Optional, Union

import usb.core

from .device_matcher import DeviceDescriptor, match_device_vid_pid
from .endpoints import Endpoint, resolve_endpoints
from .errors import (
    AmbiguousInterfaceError,
    ConfigDescriptorUnavailableError,
    ContractViolation,
    InterfaceClaimFailedError,
    OpenFailedError,
)
from .usb_transport import DEFAULT_TIMEOUT_MS, PyUsbTransport, UsbTransport

log = logging.getLogger(__name__)

LIBUSB_WINDOWS_WIKI = (
    "https://github.com/libusb/libusb/wiki/Windows#how-to-use-libusb-on-windows"
)


def open_guidance(vid: int, pid: int, platform: Optional[str] = None) -> str:
    """Host-specific steps for a device that enumerates but won't open."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return (
            "This is usually a driver issue: bind the WinUSB driver to the "
            f"device (for example with Zadig). See <{LIBUSB_WINDOWS_WIKI}> "
            "for more details."
        )
    if platform == "darwin":
        return (
            "Another driver or application is holding the device. Unload it "
            "or close the application, then retry."
        )
    return (
        "This is usually a permissions issue. Add a udev rule, e.g. "
        f"/etc/udev/rules.d/99-show2.rules:\n"
        f'  SUBSYSTEM=="usb", ATTRS{{idVendor}}=="{vid:04x}", '
        f'ATTRS{{idProduct}}=="{pid:04x}", MODE="0666"\n'
        "then run: sudo udevadm control --reload-rules && sudo udevadm trigger\n"
        "and re-plug the device. libusb must be installed "
        "(apt install libusb-1.0-0 / dnf install libusb1)."
    )


def _check_ids(vid: int, pid: int, interface: Optional[int]) -> None:
    if not 0 <= vid <= 0xFFFF:
        raise ValueError(f"VID must fit in 16 bits, got {vid:#x}")
    if not 0 <= pid <= 0xFFFF:
        raise ValueError(f"PID must fit in 16 bits, got {pid:#x}")
    if interface is not None and not 0 <= interface <= 0xFF:
        raise ValueError(f"interface index must fit in 8 bits, got {interface}")


# =========================================================================
# Interface ownership
# =========================================================================

class InterfaceClaim:
    """Exclusive ownership of one interface of one physical device.

    Live claims are tracked per (bus, address, interface) so a second
    session in this process fails fast; the OS-level claim covers other
    processes.  ``release()`` is idempotent.
    """

    _live: set[tuple] = set()
    _lock = threading.Lock()

    def __init__(self, transport: UsbTransport, interface: int, key: tuple):
        self.transport = transport
        self.interface = interface
        self.key = key
        self._released = False

    @classmethod
    def acquire(cls, transport: UsbTransport, interface: int,
                device_key: tuple) -> InterfaceClaim:
        key = (*device_key, interface)
        with cls._lock:
            if key in cls._live:
                raise InterfaceClaimFailedError(
                    interface, "already claimed by another session in this process")
            try:
                transport.claim_interface(interface)
            except usb.core.USBError as e:
                raise InterfaceClaimFailedError(interface, str(e)) from e
            cls._live.add(key)
        log.debug("Claimed interface %d (%s)", interface, key)
        return cls(transport, interface, key)

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        with self._lock:
            self._live.discard(self.key)
        try:
            self.transport.release_interface(self.interface)
        except usb.core.USBError as e:
            log.warning("Releasing interface %d failed: %s", self.interface, e)
        log.debug("Released interface %d", self.interface)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.release()


# =========================================================================
# Session
# =========================================================================

class Show2Device:
    """An open, claimed Show2 display with resolved bulk endpoints.

    Build one with ``Show2Device.open()`` (or ``find_device`` /
    ``find_device_with_interface``).  Close it with ``close()`` or a
    ``with`` block; closing releases the interface and the handle.
    """

    def __init__(self, descriptor: DeviceDescriptor, config_descriptor: Any,
                 transport: UsbTransport, claim: InterfaceClaim,
                 io_in: Endpoint, io_out: Endpoint):
        self.descriptor = descriptor
        self.config_descriptor = config_descriptor
        self.transport = transport
        self.claim = claim
        self.io_in = io_in
        self.io_out = io_out
        self._closed = False

    @property
    def interface(self) -> int:
        return self.claim.interface

    @property
    def closed(self) -> bool:
        return self._closed

    @classmethod
    def open(cls, vid: int, pid: int, interface: Optional[int] = None, *,
             devices: Optional[Iterable[Any]] = None,
             transport_factory: Callable[[Any], UsbTransport] = PyUsbTransport,
             ) -> Show2Device:
        """Match, open and claim a device.

        Args:
            vid: USB vendor ID.
            pid: USB product ID.
            interface: Interface index to claim.  When None the device
                must expose exactly one interface.
            devices: Devices to search (defaults to all attached).
            transport_factory: Wraps the matched device in a transport.

        Raises:
            DeviceNotFoundError, ConfigDescriptorUnavailableError,
            OpenFailedError, AmbiguousInterfaceError,
            InterfaceClaimFailedError, EndpointsNotFoundError
        """
        _check_ids(vid, pid, interface)

        device, descriptor = match_device_vid_pid(vid, pid, devices)
        transport = transport_factory(device)

        try:
            config_descriptor = transport.active_configuration()
        except (usb.core.USBError, NotImplementedError, IndexError) as e:
            raise ConfigDescriptorUnavailableError(vid, pid, str(e)) from e

        try:
            transport.open()
        except (usb.core.USBError, NotImplementedError) as e:
            raise OpenFailedError(vid, pid, open_guidance(vid, pid), str(e)) from e

        try:
            if interface is None:
                num_interfaces = config_descriptor.bNumInterfaces
                if num_interfaces != 1:
                    raise AmbiguousInterfaceError(num_interfaces)
                interface = 0

            claim = InterfaceClaim.acquire(
                transport, interface, (descriptor.bus, descriptor.address))
            try:
                io_in, io_out = resolve_endpoints(config_descriptor, interface)
            except Exception:
                claim.release()
                raise
        except Exception:
            transport.close()
            raise

        log.info("Opened Show2 %s interface %d (read %s, write %s)",
                 descriptor.vid_pid, interface, io_in, io_out)
        return cls(descriptor, config_descriptor, transport, claim, io_in, io_out)

    # -- I/O -------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise ContractViolation("Show2 session is closed")

    def write(self, data: bytes, timeout: int = DEFAULT_TIMEOUT_MS) -> int:
        """Bulk write to the OUT endpoint.  Returns bytes transferred."""
        self._check_open()
        return self.transport.write(self.io_out.address, data, timeout)

    def read(self, length: int, timeout: int = DEFAULT_TIMEOUT_MS) -> bytes:
        """Bulk read from the IN endpoint."""
        self._check_open()
        return self.transport.read(self.io_in.address, length, timeout)

    def into_packet(self, payload: Union[str, bytes, bytearray, memoryview]):
        """Build a handshake transaction for *payload* on this session."""
        from .packet import Show2Packet
        return Show2Packet(payload, self)

    # -- Lifecycle -------------------------------------------------------

    def close(self) -> None:
        """Release the interface and close the handle."""
        if self._closed:
            return
        self._closed = True
        try:
            self.claim.release()
        finally:
            self.transport.close()
        log.info("Closed Show2 %s", self.descriptor.vid_pid)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def product_string(self) -> str:
        """Read the product string (one request against the handle)."""
        self._check_open()
        return self.transport.product_string()

    def __repr__(self) -> str:
        if self._closed:
            connection = "<closed>"
        else:
            connection = self._connection_name()
        return (
            f"OdroidShow-2(protocol='USB {self.descriptor.usb_version}', "
            f"vid=0x{self.descriptor.vendor_id:04x}, "
            f"pid=0x{self.descriptor.product_id:04x}, "
            f"connection={connection}, ...)"
        )

    def _connection_name(self) -> str:
        try:
            return repr(self.product_string())
        except (usb.core.USBError, ValueError, RuntimeError) as e:
            log.warning("Could not read product string: %s", e)
            return f"<unavailable: {e}>"


def find_device(vid: int, pid: int, **kwargs) -> Show2Device:
    """Open the single-interface Show2 device with this VID/PID."""
    return Show2Device.open(vid, pid, None, **kwargs)


def find_device_with_interface(vid: int, pid: int, interface: Optional[int],
                               **kwargs) -> Show2Device:
    """Open the Show2 device with this VID/PID on a chosen interface."""
    return Show2Device.open(vid, pid, interface, **kwargs)
