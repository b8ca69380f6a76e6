"""
USB device matching and diagnostics listing.

``match_device_vid_pid`` walks the attached devices and returns the
first one whose descriptor carries the requested VID/PID.  It only
reads descriptors libusb cached at enumeration; no device state changes.

``debug_devices`` produces one lsusb-style line per device that can be
opened, for bug reports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import usb.core

from .errors import DeviceNotFoundError
from .usb_transport import PyUsbTransport, UsbTransport

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceDescriptor:
    """Snapshot of the device descriptor fields the driver uses."""
    vendor_id: int
    product_id: int
    bcd_usb: int = 0
    bus: Optional[int] = None
    address: Optional[int] = None
    product_index: int = 0   # iProduct string descriptor index

    @classmethod
    def from_usb(cls, dev: Any) -> DeviceDescriptor:
        return cls(
            vendor_id=dev.idVendor,
            product_id=dev.idProduct,
            bcd_usb=getattr(dev, 'bcdUSB', 0),
            bus=getattr(dev, 'bus', None),
            address=getattr(dev, 'address', None),
            product_index=getattr(dev, 'iProduct', 0) or 0,
        )

    @property
    def usb_version(self) -> str:
        """``bcdUSB`` as ``major.minor.sub`` (0x0210 → ``2.1.0``)."""
        bcd = self.bcd_usb
        major = ((bcd >> 12) & 0xF) * 10 + ((bcd >> 8) & 0xF)
        return f"{major}.{(bcd >> 4) & 0xF}.{bcd & 0xF}"

    @property
    def vid_pid(self) -> str:
        return f"{self.vendor_id:04x}:{self.product_id:04x}"


def _all_devices() -> Iterable[Any]:
    return usb.core.find(find_all=True)


def match_device_vid_pid(vid: int, pid: int,
                         devices: Optional[Iterable[Any]] = None
                         ) -> tuple[Any, DeviceDescriptor]:
    """Return ``(device, descriptor)`` for the first VID/PID match.

    Args:
        vid: USB vendor ID.
        pid: USB product ID.
        devices: Devices to search.  Defaults to everything pyusb
            enumerates.

    Raises:
        DeviceNotFoundError: If no device matches.
    """
    if devices is None:
        devices = _all_devices()

    for dev in devices:
        desc = DeviceDescriptor.from_usb(dev)
        if desc.vendor_id == vid and desc.product_id == pid:
            log.debug("Matched %s on bus %s address %s",
                      desc.vid_pid, desc.bus, desc.address)
            return dev, desc

    raise DeviceNotFoundError(vid, pid)


def _interface_numbers(config_descriptor: Any) -> list[int]:
    """Distinct interface numbers (alternate settings collapsed), in order."""
    numbers: list[int] = []
    for intf in config_descriptor.interfaces():
        if intf.bInterfaceNumber not in numbers:
            numbers.append(intf.bInterfaceNumber)
    return numbers


def format_device_line(desc: DeviceDescriptor, interfaces: list[int], name: str) -> str:
    """``Bus 001 Device 004 ID 10c4:ea60 Interfaces = [0] 'CP2102'``"""
    return (
        f"Bus {desc.bus or 0:03d} Device {desc.address or 0:03d} "
        f"ID {desc.vid_pid} Interfaces = {interfaces} {name!r}"
    )


def debug_devices(devices: Optional[Iterable[Any]] = None,
                  transport_factory: Callable[[Any], UsbTransport] = PyUsbTransport,
                  ) -> list[str]:
    """Describe every attached device that can be opened.

    Devices whose configuration cannot be read or that refuse to open
    (no permission, no driver) are skipped.
    """
    if devices is None:
        devices = _all_devices()

    result = []
    for dev in devices:
        desc = DeviceDescriptor.from_usb(dev)
        transport = transport_factory(dev)
        try:
            config = transport.active_configuration()
            interfaces = _interface_numbers(config)
        except (usb.core.USBError, NotImplementedError, IndexError) as e:
            log.debug("Skipping %s: no config descriptor (%s)", desc.vid_pid, e)
            continue

        try:
            transport.open()
        except (usb.core.USBError, NotImplementedError) as e:
            log.debug("Skipping %s: open failed (%s)", desc.vid_pid, e)
            continue

        try:
            name = transport.product_string()
        except (usb.core.USBError, ValueError) as e:
            log.debug("No product string for %s: %s", desc.vid_pid, e)
            name = ""
        finally:
            transport.close()

        result.append(format_device_line(desc, interfaces, name))

    return result
