import logging

logger = logging.getLogger(__name__)


class EventSource(object):
    """
    An ordered list of handlers that are invoked when the event is fired.

    A handler that raises is logged and skipped, so one misbehaving listener
    cannot prevent the remaining listeners from seeing the event.
    """

    def __init__(self, name=None, log=logger):
        self.name = name
        self._handlers = []
        self.logger = log

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def add(self, handler):
        self._handlers.append(handler)
        return self

    def remove(self, handler):
        if handler in self._handlers:
            self._handlers.remove(handler)
        return self

    def clear(self):
        del self._handlers[:]

    def handlers(self):
        return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        # iterate over a copy, handlers may unsubscribe themselves
        for handler in self.handlers():
            try:
                handler(*args, **kwargs)
            except Exception as e:
                self.logger.exception("handler %s for event '%s' raised %s" % (handler, self.name, e))

    def __repr__(self):
        return "EventSource(%s, %d handlers)" % (self.name, len(self._handlers))
