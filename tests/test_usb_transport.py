"""
Tests for usb_transport — the pyusb-backed bulk transport.

Tests cover:
- Configuration descriptor lookup (cached vs. queried)
- Open (forced pyusb open, idempotent)
- Interface claim with kernel driver detach
- Bulk read/write passthrough and not-open guards
- Close / resource cleanup
- Product string
"""

import unittest
from unittest.mock import MagicMock, call, patch

import usb.core

from conftest import single_interface_config

from show2.device_session import InterfaceClaim, find_device
from show2.errors import OpenFailedError
from show2.usb_transport import DEFAULT_TIMEOUT_MS, PyUsbTransport, UsbTransport


def _make_device(num_configs=1):
    dev = MagicMock()
    dev.idVendor = 0x10C4
    dev.idProduct = 0xEA60
    dev.bNumConfigurations = num_configs
    dev.iProduct = 2
    dev.is_kernel_driver_active.return_value = False
    return dev


def _open_transport(dev=None):
    t = PyUsbTransport(dev or _make_device())
    t.open()
    return t


class TestUsbTransportAbc(unittest.TestCase):

    def test_is_abstract(self):
        with self.assertRaises(TypeError):
            UsbTransport()

    def test_pyusb_transport_is_a_transport(self):
        self.assertIsInstance(PyUsbTransport(_make_device()), UsbTransport)


class TestActiveConfiguration(unittest.TestCase):

    def test_single_config_uses_cached_descriptor(self):
        dev = _make_device(num_configs=1)
        cfg = MagicMock()
        dev.__getitem__.return_value = cfg

        t = PyUsbTransport(dev)

        self.assertIs(t.active_configuration(), cfg)
        dev.__getitem__.assert_called_once_with(0)
        dev.get_active_configuration.assert_not_called()
        dev.get_active_configuration.assert_not_called()

    def test_multi_config_queries_device(self):
        dev = _make_device(num_configs=2)
        cfg = MagicMock()
        dev.get_active_configuration.return_value = cfg

        self.assertIs(PyUsbTransport(dev).active_configuration(), cfg)

    def test_query_error_propagates(self):
        dev = _make_device(num_configs=2)
        dev.get_active_configuration.side_effect = usb.core.USBError("Access denied", errno=13)
        with self.assertRaises(usb.core.USBError):
            PyUsbTransport(dev).active_configuration()


class TestOpen(unittest.TestCase):

    def test_open_forces_handle_with_get_configuration(self):
        dev = _make_device()
        t = PyUsbTransport(dev)
        self.assertFalse(t.is_open)

        t.open()

        dev.get_active_configuration.assert_called_once_with()
        self.assertTrue(t.is_open)

    def test_open_twice_opens_once(self):
        dev = _make_device()
        t = _open_transport(dev)
        t.open()
        dev.get_active_configuration.assert_called_once_with()

    def test_open_error_propagates(self):
        dev = _make_device()
        dev.get_active_configuration.side_effect = usb.core.USBError("Access denied", errno=13)
        t = PyUsbTransport(dev)
        with self.assertRaises(usb.core.USBError):
            t.open()
        self.assertFalse(t.is_open)

    def test_context_manager(self):
        dev = _make_device()
        with patch("show2.usb_transport.usb.util") as mock_util:
            with PyUsbTransport(dev) as t:
                self.assertTrue(t.is_open)
            mock_util.dispose_resources.assert_called_once_with(dev)
        self.assertFalse(t.is_open)


@patch("show2.usb_transport.usb.util")
class TestClaim(unittest.TestCase):

    def test_claim(self, mock_util):
        dev = _make_device()
        t = _open_transport(dev)

        t.claim_interface(0)

        mock_util.claim_interface.assert_called_once_with(dev, 0)
        dev.detach_kernel_driver.assert_not_called()

    def test_detaches_kernel_driver(self, mock_util):
        dev = _make_device()
        dev.is_kernel_driver_active.return_value = True
        t = _open_transport(dev)

        t.claim_interface(1)

        dev.detach_kernel_driver.assert_called_once_with(1)
        mock_util.claim_interface.assert_called_once_with(dev, 1)

    def test_kernel_driver_query_unsupported(self, mock_util):
        dev = _make_device()
        dev.is_kernel_driver_active.side_effect = NotImplementedError
        t = _open_transport(dev)

        t.claim_interface(0)

        mock_util.claim_interface.assert_called_once_with(dev, 0)

    def test_claim_busy_propagates(self, mock_util):
        mock_util.claim_interface.side_effect = usb.core.USBError("Resource busy", errno=16)
        t = _open_transport()
        with self.assertRaises(usb.core.USBError):
            t.claim_interface(0)

    def test_claim_requires_open(self, mock_util):
        t = PyUsbTransport(_make_device())
        with self.assertRaises(RuntimeError):
            t.claim_interface(0)
        mock_util.claim_interface.assert_not_called()

    def test_release_only_claimed(self, mock_util):
        dev = _make_device()
        t = _open_transport(dev)
        t.release_interface(0)
        mock_util.release_interface.assert_not_called()

        t.claim_interface(0)
        t.release_interface(0)
        mock_util.release_interface.assert_called_once_with(dev, 0)


@patch("show2.usb_transport.usb.util")
class TestClose(unittest.TestCase):

    def test_close_releases_and_disposes(self, mock_util):
        dev = _make_device()
        t = _open_transport(dev)
        t.claim_interface(1)
        t.claim_interface(0)

        t.close()

        self.assertEqual(mock_util.release_interface.call_args_list,
                         [call(dev, 0), call(dev, 1)])
        mock_util.dispose_resources.assert_called_once_with(dev)
        self.assertFalse(t.is_open)

    def test_close_survives_release_error(self, mock_util):
        mock_util.release_interface.side_effect = usb.core.USBError("No such device", errno=19)
        dev = _make_device()
        t = _open_transport(dev)
        t.claim_interface(0)

        t.close()

        mock_util.dispose_resources.assert_called_once_with(dev)

    def test_close_noop_when_not_open(self, mock_util):
        t = PyUsbTransport(_make_device())
        t.close()
        mock_util.dispose_resources.assert_not_called()

    def test_close_twice(self, mock_util):
        t = _open_transport()
        t.close()
        t.close()
        mock_util.dispose_resources.assert_called_once()


class TestBulkIo(unittest.TestCase):

    def test_write(self):
        dev = _make_device()
        dev.write.return_value = 1
        t = _open_transport(dev)

        self.assertEqual(t.write(0x01, b"\x06", 250), 1)
        dev.write.assert_called_once_with(0x01, b"\x06", timeout=250)

    def test_read_returns_bytes(self):
        dev = _make_device()
        dev.read.return_value = bytearray(b"\x06")
        t = _open_transport(dev)

        data = t.read(0x81, 1, 10)

        self.assertEqual(data, b"\x06")
        self.assertIsInstance(data, bytes)
        dev.read.assert_called_once_with(0x81, 1, timeout=10)

    def test_default_timeout(self):
        dev = _make_device()
        dev.read.return_value = b""
        _open_transport(dev).read(0x81, 1)
        dev.read.assert_called_once_with(0x81, 1, timeout=DEFAULT_TIMEOUT_MS)

    def test_read_timeout_propagates(self):
        dev = _make_device()
        dev.read.side_effect = usb.core.USBTimeoutError("Operation timed out", errno=110)
        with self.assertRaises(usb.core.USBTimeoutError):
            _open_transport(dev).read(0x81, 1, 10)

    def test_io_requires_open(self):
        t = PyUsbTransport(_make_device())
        with self.assertRaises(RuntimeError):
            t.write(0x01, b"\x06")
        with self.assertRaises(RuntimeError):
            t.read(0x81, 1)


class TestProductString(unittest.TestCase):

    @patch("show2.usb_transport.usb.util.get_string", return_value="ODROID-SHOW2")
    def test_reads_iproduct(self, mock_get_string):
        dev = _make_device()
        self.assertEqual(_open_transport(dev).product_string(), "ODROID-SHOW2")
        mock_get_string.assert_called_once_with(dev, 2)

    @patch("show2.usb_transport.usb.util.get_string")
    def test_no_product_index(self, mock_get_string):
        dev = _make_device()
        dev.iProduct = 0
        self.assertEqual(_open_transport(dev).product_string(), "")
        mock_get_string.assert_not_called()

    @patch("show2.usb_transport.usb.util.get_string", return_value=None)
    def test_none_becomes_empty(self, mock_get_string):
        self.assertEqual(_open_transport().product_string(), "")

    @patch("show2.usb_transport.usb.util.get_string")
    def test_requires_open(self, mock_get_string):
        with self.assertRaises(RuntimeError):
            PyUsbTransport(_make_device()).product_string()
        mock_get_string.assert_not_called()

    @patch("show2.usb_transport.usb.util.dispose_resources")
    @patch("show2.usb_transport.usb.util.get_string")
    def test_closed_transport_is_not_reopened(self, mock_get_string, mock_dispose):
        t = _open_transport()
        t.close()
        with self.assertRaises(RuntimeError):
            t.product_string()
        mock_get_string.assert_not_called()
        self.assertFalse(t.is_open)


@patch("usb.util.get_string", return_value="CP2102")
@patch("usb.util.dispose_resources")
@patch("usb.util.release_interface")
@patch("usb.util.claim_interface")
class TestSessionOverPyUsb(unittest.TestCase):
    """Show2Device driving the real transport over a mocked pyusb device."""

    def setUp(self):
        InterfaceClaim._live.clear()
        self.dev = _make_device()
        self.dev.bus = 1
        self.dev.address = 4
        self.dev.bcdUSB = 0x0200
        self.dev.__getitem__.return_value = single_interface_config()

    def tearDown(self):
        InterfaceClaim._live.clear()

    def test_repr_while_open_reads_product(self, mock_claim, mock_release,
                                           mock_dispose, mock_get_string):
        with find_device(0x10C4, 0xEA60, devices=[self.dev]) as show:
            self.assertIn("connection='CP2102'", repr(show))
        mock_get_string.assert_called_once_with(self.dev, 2)

    def test_repr_after_close_leaves_handle_closed(self, mock_claim, mock_release,
                                                   mock_dispose, mock_get_string):
        show = find_device(0x10C4, 0xEA60, devices=[self.dev])
        show.close()

        text = repr(show)

        self.assertIn("connection=<closed>", text)
        mock_get_string.assert_not_called()
        self.assertFalse(show.transport.is_open)
        mock_dispose.assert_called_once_with(self.dev)

    def test_unconfigured_device_fails_at_open(self, mock_claim, mock_release,
                                               mock_dispose, mock_get_string):
        self.dev.get_active_configuration.side_effect = usb.core.USBError(
            "Configuration not set")
        with self.assertRaises(OpenFailedError) as cm:
            find_device(0x10C4, 0xEA60, devices=[self.dev])
        self.assertIn("Configuration not set", str(cm.exception))
        mock_claim.assert_not_called()
        self.assertEqual(InterfaceClaim._live, set())


if __name__ == '__main__':
    unittest.main()
