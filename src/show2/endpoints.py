"""
Bulk endpoint resolution.

Scans a configuration descriptor (as returned by pyusb) for the bulk IN
and bulk OUT endpoints of one interface.  No I/O happens here; the scan
runs over descriptors libusb already retrieved.

pyusb lists every alternate setting as its own ``Interface`` object, so
interfaces are first grouped by ``bInterfaceNumber`` and the *index*
picks a group.  Within the group, every alternate setting and endpoint
is visited in descriptor order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import usb.util

from .errors import EndpointsNotFoundError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Endpoint:
    """One direction of one interface alternate setting."""
    config: int     # bConfigurationValue
    iface: int      # bInterfaceNumber
    setting: int    # bAlternateSetting
    address: int    # bEndpointAddress (bit 7 = direction)

    @property
    def is_in(self) -> bool:
        return usb.util.endpoint_direction(self.address) == usb.util.ENDPOINT_IN

    def __str__(self) -> str:
        direction = "IN" if self.is_in else "OUT"
        return (f"EP 0x{self.address:02x} {direction} "
                f"(config {self.config}, interface {self.iface}, alt {self.setting})")


def _interface_groups(config_descriptor: Any) -> list[list[Any]]:
    """Group alternate settings by interface number, in descriptor order."""
    groups: dict[int, list[Any]] = {}
    for intf in config_descriptor.interfaces():
        groups.setdefault(intf.bInterfaceNumber, []).append(intf)
    return list(groups.values())


def _scan(config_descriptor: Any,
          interface_index: int) -> tuple[Optional[Endpoint], Optional[Endpoint]]:
    """Return the first bulk IN and first bulk OUT endpoint (either may be None)."""
    groups = _interface_groups(config_descriptor)
    if not 0 <= interface_index < len(groups):
        log.debug("Interface index %d out of range (%d interfaces)",
                  interface_index, len(groups))
        return None, None

    read: Optional[Endpoint] = None
    write: Optional[Endpoint] = None
    bulk_seen = 0

    for intf in groups[interface_index]:
        for ep in intf.endpoints():
            if usb.util.endpoint_type(ep.bmAttributes) != usb.util.ENDPOINT_TYPE_BULK:
                continue
            bulk_seen += 1
            e = Endpoint(
                config=config_descriptor.bConfigurationValue,
                iface=intf.bInterfaceNumber,
                setting=intf.bAlternateSetting,
                address=ep.bEndpointAddress,
            )
            if e.is_in:
                if read is None:
                    read = e
            elif write is None:
                write = e

    log.debug("Interface index %d: %d bulk endpoints, read=%s, write=%s",
              interface_index, bulk_seen, read, write)
    return read, write


def resolve_endpoints(config_descriptor: Any,
                      interface_index: int) -> tuple[Endpoint, Endpoint]:
    """Return ``(read, write)`` bulk endpoints of the *n*-th interface.

    The first bulk IN endpoint becomes the read endpoint and the first
    bulk OUT endpoint the write endpoint.  Control, interrupt and
    isochronous endpoints are skipped.

    Raises:
        EndpointsNotFoundError: If either direction is missing.
    """
    read, write = _scan(config_descriptor, interface_index)
    if read is None or write is None:
        raise EndpointsNotFoundError(
            interface_index, has_in=read is not None, has_out=write is not None,
        )
    return read, write
