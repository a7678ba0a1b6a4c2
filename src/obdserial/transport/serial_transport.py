"""
Implements a transport over a serial port using pyserial.
"""

import logging
import threading

import serial
from serial import SerialException
from serial.tools import list_ports

from obdserial.transport.base import Transport, tobytes

logger = logging.getLogger(__name__)


class SerialReaderLoop:
    """
    Opens the serial port on a daemon thread, then reads from it until stopped.
    The port is closed when the thread exits.
    """

    def __init__(self, transport):
        self.transport = transport
        self.stop_event = threading.Event()
        self.background_thread = None

    def start(self):
        if self.background_thread is None:
            t = threading.Thread(target=self._run, name="obd-serial %s" % self.transport.address, daemon=True)
            self.background_thread = t
            t.start()

    def running(self):
        return not self.stop_event.is_set()

    def _run(self):
        transport = self.transport
        try:
            if transport._open_port():
                while self.running():
                    try:
                        transport._read(self.stop_event)
                    except Exception as e:
                        transport.logger.exception("unexpected error reading %s: %s" % (transport.address, e))
                        self.stop_event.wait(transport.read_error_pause)
        finally:
            transport._close_port()
            transport.logger.debug("reader for %s exiting" % transport.address)

    def stop(self):
        """ signals the thread to exit, and waits for it unless called from the thread itself. """
        self.stop_event.set()
        thread = self.background_thread
        self.background_thread = None
        if thread and thread is not threading.current_thread():
            thread.join()


class SerialTransport(Transport):
    """
    A transport that communicates via a serial link.

    The options are passed as keyword arguments to `serial.Serial`, e.g. `baudrate` and `timeout`.
    A read timeout should be given so that close() does not have to wait for data to arrive
    on platforms where a pending read cannot be cancelled.
    """

    read_error_pause = 0.5      # seconds to wait after a failed read before trying again

    def __init__(self, address, options, serial_factory=serial.Serial, log=logger):
        super().__init__(address, options)
        self._serial_factory = serial_factory
        self._serial = None
        self._loop = None
        self.logger = log

    @property
    def is_open(self) -> bool:
        ser = self._serial
        return ser is not None and ser.is_open

    def open(self):
        if self._loop is None:
            self._loop = SerialReaderLoop(self)
            self._loop.start()

    def write(self, payload):
        ser = self._serial
        if ser is None:
            raise SerialException("serial port %s is not open" % self.address)
        ser.write(tobytes(payload))

    def close(self):
        loop = self._loop
        self._loop = None
        if loop is None:
            return
        loop.stop_event.set()
        ser = self._serial
        if ser is not None and hasattr(ser, 'cancel_read'):
            ser.cancel_read()
        loop.stop()

    def _open_port(self):
        """
        :return: True if the serial port was opened.
        """
        try:
            self._serial = self._serial_factory(self.address, **self.options)
        except Exception as e:
            self.logger.error("error opening serial port %s: %s" % (self.address, e))
            self.errors.fire(e)
            return False
        self.logger.info("opened serial port %s" % self.address)
        self.opened.fire()
        return True

    def _read(self, stop_event):
        ser = self._serial
        if ser is None:
            stop_event.set()
            return
        try:
            chunk = ser.read(ser.in_waiting or 1)
        except SerialException as e:
            if stop_event.is_set():
                return
            self.logger.error("error reading serial port %s: %s" % (self.address, e))
            self.errors.fire(e)
            stop_event.wait(self.read_error_pause)
            return
        if chunk:
            self.data.fire(chunk)

    def _close_port(self):
        ser = self._serial
        self._serial = None
        if ser is not None:
            ser.close()
            self.logger.info("closed serial port %s" % self.address)


def serial_ports():
    """
    Returns a generator for all available serial port device names.
    """
    for port in list_ports.comports():
        yield port.device
