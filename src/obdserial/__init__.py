"""
Shares a single serial connection to a vehicle ECU between any number of callers.
"""
from obdserial.broker import ConnectionBroker, Connection, ConnectionBrokerError, ConfigurationError, \
    EcuConnectionError, BrokerResetError, BrokerState, configure, default_broker

__all__ = ['ConnectionBroker', 'Connection', 'ConnectionBrokerError', 'ConfigurationError', 'EcuConnectionError',
           'BrokerResetError', 'BrokerState', 'configure', 'default_broker']
