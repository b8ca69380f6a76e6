"""Shared fakes: USB devices, descriptors and a scripted transport.

No real USB hardware required — descriptors are plain objects exposing
the pyusb attribute names, and ``FakeTransport`` implements
``UsbTransport`` with recorded writes and scripted reads.
"""

from collections import deque

import pytest
import usb.core

from show2.device_session import InterfaceClaim
from show2.usb_transport import UsbTransport

BULK = 0x02
INTERRUPT = 0x03
ISOCHRONOUS = 0x01

VID = 0x10C4
PID = 0xEA60


# =========================================================================
# Descriptor fakes
# =========================================================================

class FakeEndpoint:
    def __init__(self, address, attributes=BULK):
        self.bEndpointAddress = address
        self.bmAttributes = attributes


class FakeInterface:
    def __init__(self, number, endpoints=(), alt=0):
        self.bInterfaceNumber = number
        self.bAlternateSetting = alt
        self._endpoints = list(endpoints)

    def endpoints(self):
        return tuple(self._endpoints)


class FakeConfig:
    def __init__(self, interfaces=(), value=1):
        self.bConfigurationValue = value
        self._interfaces = list(interfaces)

    @property
    def bNumInterfaces(self):
        return len({i.bInterfaceNumber for i in self._interfaces})

    def interfaces(self):
        return tuple(self._interfaces)


class FakeUsbDevice:
    """Stands in for ``usb.core.Device`` (descriptor fields only)."""

    def __init__(self, vid=VID, pid=PID, bus=1, address=4, bcd_usb=0x0200,
                 config=None, product="CP2102 USB to UART Bridge Controller",
                 open_error=None):
        self.idVendor = vid
        self.idProduct = pid
        self.bus = bus
        self.address = address
        self.bcdUSB = bcd_usb
        self.iProduct = 2
        self.config = config if config is not None else single_interface_config()
        self.product = product
        self.open_error = open_error


def single_interface_config():
    """One interface with bulk IN 0x81 and bulk OUT 0x01."""
    return FakeConfig([
        FakeInterface(0, [FakeEndpoint(0x81), FakeEndpoint(0x01)]),
    ])


def two_interface_config():
    """Interface 0: 0x81/0x01, interface 1: 0x82/0x02 (all bulk)."""
    return FakeConfig([
        FakeInterface(0, [FakeEndpoint(0x81), FakeEndpoint(0x01)]),
        FakeInterface(1, [FakeEndpoint(0x82), FakeEndpoint(0x02)]),
    ])


# =========================================================================
# Transport fake
# =========================================================================

class FakeTransport(UsbTransport):
    """Scripted transport.

    ``reads`` holds what successive ``read()`` calls return: bytes are
    returned, exception instances are raised.  When empty, reads time out.
    """

    def __init__(self, device=None):
        self.device = device or FakeUsbDevice()
        self.writes = []
        self.read_calls = []
        self.reads = deque()
        self.write_result = None
        self.write_error = None
        self.claim_error = None
        self.claimed = set()
        self.closed = False
        self._is_open = False

    def open(self):
        if self.device.open_error is not None:
            raise self.device.open_error
        self._is_open = True

    def close(self):
        self.claimed.clear()
        self._is_open = False
        self.closed = True

    def active_configuration(self):
        config = self.device.config
        if isinstance(config, Exception):
            raise config
        return config

    def claim_interface(self, interface):
        if self.claim_error is not None:
            raise self.claim_error
        self.claimed.add(interface)

    def release_interface(self, interface):
        self.claimed.discard(interface)

    def write(self, endpoint, data, timeout=500):
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((endpoint, bytes(data), timeout))
        return len(data) if self.write_result is None else self.write_result

    def read(self, endpoint, length, timeout=500):
        self.read_calls.append((endpoint, length, timeout))
        if not self.reads:
            raise usb.core.USBTimeoutError("Operation timed out", errno=110)
        item = self.reads.popleft()
        if isinstance(item, Exception):
            raise item
        return item

    def product_string(self):
        if isinstance(self.device.product, Exception):
            raise self.device.product
        return self.device.product

    @property
    def is_open(self):
        return self._is_open


class TransportRecorder:
    """transport_factory that remembers every transport it built."""

    def __init__(self, **attrs):
        self.attrs = attrs
        self.built = []

    def __call__(self, device):
        t = FakeTransport(device)
        for name, value in self.attrs.items():
            setattr(t, name, value)
        self.built.append(t)
        return t

    @property
    def last(self):
        return self.built[-1]


@pytest.fixture(autouse=True)
def _clear_live_claims():
    """Each test starts with no interface claims registered."""
    InterfaceClaim._live.clear()
    yield
    InterfaceClaim._live.clear()


@pytest.fixture
def recorder():
    return TransportRecorder()


@pytest.fixture
def show(recorder):
    """An open session on the default single-interface fake device."""
    from show2.device_session import find_device

    dev = find_device(VID, PID, devices=[FakeUsbDevice()], transport_factory=recorder)
    yield dev
    dev.close()
