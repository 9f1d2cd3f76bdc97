"""ZeroMQ transport backend."""

from .client import ZmqTransport, zmq_address
