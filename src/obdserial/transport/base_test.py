import unittest
from unittest.mock import Mock

from hamcrest import assert_that, is_, calling, raises, instance_of, equal_to

from obdserial.support.events import EventSource
from obdserial.transport.base import Transport, tobytes


class FakeTransport(Transport):
    """
    A transport that records what is done to it. Tests decide when and how it signals.
    """
    instances = []

    def __init__(self, address, options):
        super().__init__(address, options)
        self.open_calls = 0
        self.written = []
        self.closed = False
        self._open = False
        FakeTransport.instances.append(self)

    @classmethod
    def reset_instances(cls):
        cls.instances = []

    @property
    def is_open(self):
        return self._open

    def open(self):
        self.open_calls += 1

    def write(self, payload):
        self.written.append(tobytes(payload))

    def close(self):
        self.closed = True
        self._open = False

    def emit_opened(self):
        self._open = True
        self.opened.fire()

    def emit_error(self, error):
        self.errors.fire(error)

    def emit_data(self, payload):
        self.data.fire(payload)


class TransportTest(unittest.TestCase):
    def test_constructor(self):
        options = {'baudrate': 38400}
        sut = Transport('/dev/ttyUSB0', options)
        assert_that(sut.address, is_('/dev/ttyUSB0'))
        assert_that(sut.options, is_(equal_to(options)))
        assert_that(sut.opened, is_(instance_of(EventSource)))
        assert_that(sut.data, is_(instance_of(EventSource)))
        assert_that(sut.errors, is_(instance_of(EventSource)))

    def test_options_are_copied(self):
        options = {'baudrate': 38400}
        sut = Transport('/dev/ttyUSB0', options)
        options['baudrate'] = 9600
        assert_that(sut.options['baudrate'], is_(38400))

    def test_abstract_methods(self):
        sut = Transport('/dev/ttyUSB0', {})
        assert_that(calling(sut.open), raises(NotImplementedError))
        assert_that(calling(sut.write).with_args(b'ATZ'), raises(NotImplementedError))
        assert_that(calling(sut.close), raises(NotImplementedError))
        assert_that(calling(getattr).with_args(sut, 'is_open'), raises(NotImplementedError))

    def test_repr(self):
        assert_that(repr(Transport('dev/x', {})), is_("Transport('dev/x')"))

    def test_tobytes(self):
        assert_that(tobytes("010C"), is_(b"010C"))
        assert_that(tobytes(b"010C"), is_(b"010C"))


class FakeTransportTest(unittest.TestCase):
    def setUp(self):
        FakeTransport.reset_instances()

    def test_records_instances(self):
        sut = FakeTransport('dev/x', {})
        assert_that(FakeTransport.instances, is_([sut]))

    def test_signals(self):
        sut = FakeTransport('dev/x', {})
        opened, data, errors = Mock(), Mock(), Mock()
        sut.opened += opened
        sut.data += data
        sut.errors += errors
        error = IOError("fake error")
        sut.emit_opened()
        sut.emit_data(b'41 0C')
        sut.emit_error(error)
        opened.assert_called_once_with()
        data.assert_called_once_with(b'41 0C')
        errors.assert_called_once_with(error)
        assert_that(sut.is_open, is_(True))
        sut.close()
        assert_that(sut.is_open, is_(False))
