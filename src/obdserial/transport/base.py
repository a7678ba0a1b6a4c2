from abc import abstractmethod

from obdserial.support.events import EventSource


class Transport:
    """
    A transport is the physical line to the ECU, addressed by a path and configured by transport-specific
    options.

    Constructing a transport touches no hardware. Calling open() starts opening the line asynchronously;
    the outcome is signalled exactly once, either by firing `opened` with no arguments or by firing `errors`
    with the exception that prevented the line from opening.

    Once opened, `data` fires with each chunk of bytes received and `errors` with each error reported by
    the line.
    """

    def __init__(self, address, options):
        """
        :param address: the address of the line, such as a serial device path.
        :param options: a mapping of transport-specific options.
        """
        self.address = address
        self.options = dict(options)
        self.opened = EventSource('opened')
        self.data = EventSource('data')
        self.errors = EventSource('errors')

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """ determines if the line is currently open. """
        raise NotImplementedError

    @abstractmethod
    def open(self):
        """
        Starts opening the line. The result is signalled via the `opened` or `errors` events,
        possibly on another thread.
        """
        raise NotImplementedError

    @abstractmethod
    def write(self, payload):
        """
        Writes bytes to the line. Strings are encoded as ASCII.
        """
        raise NotImplementedError

    @abstractmethod
    def close(self):
        """
        Releases the line. Closing a transport that is not open does nothing.
        """
        raise NotImplementedError

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.address)


def tobytes(arg):
    """
    Converts a string to bytes
    >>> tobytes("ATZ")
    b'ATZ'
    >>> tobytes(b"ATZ")
    b'ATZ'
    """
    if isinstance(arg, str):
        arg = bytes(arg, encoding='ascii')
    return arg
