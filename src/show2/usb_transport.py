"""
USB bulk transport layer for Show2 devices.

The ``UsbTransport`` ABC abstracts the raw USB I/O so that:
  • Tests can inject a fake transport (no real hardware needed).
  • ``PyUsbTransport`` provides real USB via pyusb (libusb backend).

Linux dependencies:
  • pyusb:  ``pip install pyusb``  (needs libusb1 — ``apt install libusb-1.0-0``)

Timeouts are integer milliseconds throughout, matching pyusb.  Reads and
writes let pyusb's ``USBError`` / ``USBTimeoutError`` propagate; callers
decide whether a failure is transient.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import usb.core
import usb.util

log = logging.getLogger(__name__)

# Default timeout (ms)
DEFAULT_TIMEOUT_MS = 500


class UsbTransport(ABC):
    """Abstract USB bulk transport — mockable for testing."""

    @abstractmethod
    def open(self) -> None:
        """Open an OS-level handle to the device."""

    @abstractmethod
    def close(self) -> None:
        """Release every claimed interface and close the handle."""

    @abstractmethod
    def active_configuration(self) -> Any:
        """Return the active configuration descriptor."""

    @abstractmethod
    def claim_interface(self, interface: int) -> None:
        """Claim *interface* exclusively on the open handle."""

    @abstractmethod
    def release_interface(self, interface: int) -> None:
        """Release a previously claimed interface."""

    @abstractmethod
    def write(self, endpoint: int, data: bytes, timeout: int = DEFAULT_TIMEOUT_MS) -> int:
        """Bulk write to endpoint.  Returns bytes transferred."""

    @abstractmethod
    def read(self, endpoint: int, length: int, timeout: int = DEFAULT_TIMEOUT_MS) -> bytes:
        """Bulk read from endpoint.  Returns data read."""

    @abstractmethod
    def product_string(self) -> str:
        """Read the device's product string from the open handle."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the device is currently open."""

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()


class PyUsbTransport(UsbTransport):
    """Real USB transport using pyusb (libusb backend).

    Wraps one already-enumerated ``usb.core.Device``:
    1. Read the configuration descriptor (cached, no open needed)
    2. Open the handle
    3. Detach any kernel driver and claim the interface
    4. Bulk read/write to endpoints

    Requires: ``pip install pyusb`` + ``apt install libusb-1.0-0``
    """

    def __init__(self, device: usb.core.Device):
        self._device = device
        self._claimed: set[int] = set()
        self._is_open = False

    @property
    def device(self) -> usb.core.Device:
        return self._device

    def active_configuration(self):
        """Return the active configuration descriptor.

        Single-configuration devices (nearly all of them) are answered
        from the descriptors libusb cached at enumeration, so this works
        before the device can be opened.
        """
        if self._device.bNumConfigurations == 1:
            return self._device[0]
        return self._device.get_active_configuration()

    def open(self) -> None:
        """Open the device handle.

        pyusb opens lazily on first I/O.  GET_CONFIGURATION is the
        cheapest request that forces the open, so missing permissions or
        a missing driver binding fail here.
        """
        if self._is_open:
            return
        self._device.get_active_configuration()
        self._is_open = True
        log.debug("Opened %04x:%04x (bus %s, address %s)",
                  self._device.idVendor, self._device.idProduct,
                  self._device.bus, self._device.address)

    def claim_interface(self, interface: int) -> None:
        """Detach a kernel driver if one is bound, then claim.

        ``is_kernel_driver_active`` is unsupported off Linux; there is
        nothing to detach in that case.
        """
        if not self._is_open:
            raise RuntimeError("Transport not open")
        try:
            if self._device.is_kernel_driver_active(interface):
                self._device.detach_kernel_driver(interface)
                log.debug("Detached kernel driver from interface %d", interface)
        except NotImplementedError:
            pass
        usb.util.claim_interface(self._device, interface)
        self._claimed.add(interface)

    def release_interface(self, interface: int) -> None:
        if interface not in self._claimed:
            return
        self._claimed.discard(interface)
        usb.util.release_interface(self._device, interface)

    def close(self) -> None:
        """Release claimed interfaces and dispose pyusb resources."""
        for interface in sorted(self._claimed):
            try:
                usb.util.release_interface(self._device, interface)
            except usb.core.USBError as e:
                log.warning("Releasing interface %d failed: %s", interface, e)
        self._claimed.clear()
        if self._is_open:
            usb.util.dispose_resources(self._device)
            self._is_open = False
            log.debug("Closed %04x:%04x",
                      self._device.idVendor, self._device.idProduct)

    def write(self, endpoint: int, data: bytes, timeout: int = DEFAULT_TIMEOUT_MS) -> int:
        if not self._is_open:
            raise RuntimeError("Transport not open")
        return self._device.write(endpoint, data, timeout=timeout)

    def read(self, endpoint: int, length: int, timeout: int = DEFAULT_TIMEOUT_MS) -> bytes:
        if not self._is_open:
            raise RuntimeError("Transport not open")
        return bytes(self._device.read(endpoint, length, timeout=timeout))

    def product_string(self) -> str:
        if not self._is_open:
            raise RuntimeError("Transport not open")
        if not self._device.iProduct:
            return ""
        return usb.util.get_string(self._device, self._device.iProduct) or ""

    @property
    def is_open(self) -> bool:
        return self._is_open
