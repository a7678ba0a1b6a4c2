import os
import shutil
import tempfile
import threading
import unittest
from unittest.mock import Mock, patch

from hamcrest import assert_that, is_, calling, raises

from obdserial.broker import ConnectionBroker, BrokerState
from obdserial.monitor import init_commands_configurer, monitor, log_data
from obdserial.transport.base_test import FakeTransport


class OpeningTransport(FakeTransport):
    def open(self):
        super().open()
        self.emit_opened()


class FailingTransport(FakeTransport):
    def open(self):
        super().open()
        self.emit_error(IOError("could not open port /dev/ttyUSB0"))


class InitCommandsConfigurerTest(unittest.TestCase):
    def test_writes_commands_and_completes(self):
        conn = Mock()
        future = init_commands_configurer(['ATZ', 'ATE0'])(conn)
        assert_that(future.result(0), is_(None))
        assert_that([c[0][0] for c in conn.write.call_args_list], is_(['ATZ\r', 'ATE0\r']))

    def test_no_commands(self):
        conn = Mock()
        assert_that(init_commands_configurer([])(conn).done(), is_(True))
        conn.write.assert_not_called()

    def test_write_failure_fails_future(self):
        conn = Mock()
        error = IOError("write timeout")
        conn.write.side_effect = error
        future = init_commands_configurer(['ATZ'])(conn)
        assert_that(future.exception(0), is_(error))


class MonitorTest(unittest.TestCase):
    def setUp(self):
        FakeTransport.reset_instances()
        self.dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.dir)
        with open(os.path.join(self.dir, 'monitor_test.cfg'), 'w') as f:
            f.write('[connection]\nserial_path = /dev/ttyUSB0\ninit_commands = ATZ, ATSP0\n')
        patcher = patch('obdserial.config.config.user_config_file',
                        return_value=os.path.join(self.dir, 'home.cfg'))
        patcher.start()
        self.addCleanup(patcher.stop)

    def run_monitor(self, transport_factory):
        broker = ConnectionBroker(transport_factory=transport_factory)
        stop = threading.Event()
        stop.set()
        status = monitor(['--config', 'monitor_test', '--dir', self.dir, '--timeout', '1'], broker, stop)
        return status, broker

    def test_monitor_connects_and_resets(self):
        status, broker = self.run_monitor(OpeningTransport)
        assert_that(status, is_(0))
        transport = FakeTransport.instances[0]
        assert_that(transport.options, is_({'baudrate': 38400, 'timeout': 1.0}))
        assert_that(transport.written, is_([b'ATZ\r', b'ATSP0\r']))
        assert_that(transport.closed, is_(True))
        assert_that(broker.state, is_(BrokerState.IDLE))

    def test_monitor_connection_failure(self):
        status, broker = self.run_monitor(FailingTransport)
        assert_that(status, is_(1))

    def test_monitor_connection_timeout(self):
        status, broker = self.run_monitor(FakeTransport)
        assert_that(status, is_(1))
        assert_that(FakeTransport.instances[0].closed, is_(True))

    def test_list_ports(self):
        with patch('obdserial.monitor.serial_ports', return_value=['/dev/ttyUSB0']), \
                patch('builtins.print') as printed:
            assert_that(monitor(['--list']), is_(0))
        printed.assert_called_once_with('/dev/ttyUSB0')

    def test_bad_arguments(self):
        assert_that(calling(monitor).with_args(['--timeout', 'soon']), raises(SystemExit))

    def test_log_data(self):
        with patch('obdserial.monitor.logger') as log:
            log_data(b'41 0C\r')
        log.info.assert_called_once()
