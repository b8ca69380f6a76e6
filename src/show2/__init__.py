"""
Show2 - host-side driver for the ODROID-SHOW2 USB display

Binds to the display over USB bulk transfers and drives its
request/acknowledge handshake up to "ready to send".

Usage:
    # As a library
    from show2 import find_device
    with find_device(0x10C4, 0xEA60) as show:
        show.into_packet("Lorem Ipsum").start_transaction(500)

    # Command line
    show2 list                 # List openable USB devices
    show2 info                 # Describe the display
    show2 handshake "text"     # Run the handshake
"""

from show2.__version__ import __version__
from show2.device_matcher import DeviceDescriptor, debug_devices, match_device_vid_pid
from show2.device_session import (
    InterfaceClaim,
    Show2Device,
    find_device,
    find_device_with_interface,
)
from show2.endpoints import Endpoint, resolve_endpoints
from show2.errors import (
    AmbiguousInterfaceError,
    ConfigDescriptorUnavailableError,
    ContractViolation,
    DeviceNotFoundError,
    EndpointsNotFoundError,
    HandshakeTimeoutError,
    InterfaceClaimFailedError,
    OpenFailedError,
    PayloadTooLargeError,
    ProtocolError,
    Show2Error,
    TransportError,
)
from show2.packet import ACKNOWLEDGE_BYTE, PacketState, Show2Packet
from show2.usb_transport import PyUsbTransport, UsbTransport

__all__ = [
    # Version
    "__version__",
    # Session
    "find_device",
    "find_device_with_interface",
    "Show2Device",
    "InterfaceClaim",
    # Matching / endpoints
    "match_device_vid_pid",
    "debug_devices",
    "DeviceDescriptor",
    "Endpoint",
    "resolve_endpoints",
    # Handshake
    "Show2Packet",
    "PacketState",
    "ACKNOWLEDGE_BYTE",
    # Transport
    "UsbTransport",
    "PyUsbTransport",
    # Errors
    "Show2Error",
    "DeviceNotFoundError",
    "ConfigDescriptorUnavailableError",
    "OpenFailedError",
    "AmbiguousInterfaceError",
    "InterfaceClaimFailedError",
    "EndpointsNotFoundError",
    "PayloadTooLargeError",
    "ProtocolError",
    "HandshakeTimeoutError",
    "TransportError",
    "ContractViolation",
]
