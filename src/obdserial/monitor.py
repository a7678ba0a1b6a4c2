"""
A helper to watch the ECU line for manual testing.

    python -m obdserial.monitor --config obdserial --dir /etc/obdserial --debug

Connects through the shared broker, sends the configured init commands and logs everything
received until interrupted.
"""
import argparse
import logging
import os
import threading
from concurrent.futures import Future, TimeoutError

from obdserial.broker import default_broker, ConnectionBrokerError
from obdserial.config.config import load_config, connection_options, init_commands
from obdserial.transport.serial_transport import serial_ports

logger = logging.getLogger(__name__)


def init_commands_configurer(commands, terminator='\r'):
    """
    Creates a configure function that writes each command to the connection.
    :param commands: the commands to send, e.g. ['ATZ', 'ATE0', 'ATSP0']
    :return: a configure function for use with a connector
    """
    def configure_fn(connection):
        future = Future()
        try:
            for command in commands:
                logger.debug("sending init command %s" % command)
                connection.write(command + terminator)
        except Exception as e:
            future.set_exception(e)
        else:
            future.set_result(None)
        return future
    return configure_fn


def log_data(payload):
    logger.info("received %r" % (payload,))


def log_error(e):
    logger.warning("line error: %s" % e)


def build_arg_parser():
    p = argparse.ArgumentParser(description="Log data received from the ECU serial line")
    p.add_argument('--config', default='obdserial', help="configuration name (default: obdserial)")
    p.add_argument('--dir', default=os.getcwd(), help="directory holding the configuration files")
    p.add_argument('--timeout', type=float, default=30.0, help="seconds to wait for the connection")
    p.add_argument('--list', action='store_true', help="list the available serial ports and exit")
    p.add_argument('--debug', action='store_true', help="log at debug level")
    return p


def setup_logging(debug):
    root = logging.getLogger('obdserial')
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)


def monitor(argv=None, broker=None, stop_event=None):
    """
    :return: the process exit status
    """
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.debug)

    if args.list:
        for port in serial_ports():
            print(port)
        return 0

    broker = broker or default_broker()
    stop_event = stop_event or threading.Event()
    config = load_config(args.config, args.dir)
    connector = broker.configure(connection_options(config))
    try:
        try:
            conn = connector(init_commands_configurer(init_commands(config))).result(args.timeout)
        except ConnectionBrokerError as e:
            logger.error("%s" % e)
            return 1
        except TimeoutError:
            logger.error("no connection after %s seconds" % args.timeout)
            return 1

        conn.data += log_data
        conn.errors += log_error
        logger.info("monitoring %s, press Ctrl-C to stop" % conn.transport.address)
        while not stop_event.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        broker.reset()
    return 0


if __name__ == '__main__':
    raise SystemExit(monitor())
