import socket
import multiprocessing.connection

import config


def get_network_ip():
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    s.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
    s.connect(('<broadcast>', 0))
    return s.getsockname()[0]


def _authkey():
    return getattr(config, 'SERVER_AUTHKEY', b'password')


class Listener(multiprocessing.connection.Listener):
    def __init__(self, ip, port):
        multiprocessing.connection.Listener.__init__(self, address = (ip, port), authkey = _authkey())

    def fileno(self):
        return self._listener._socket.fileno()


def Client(ip, port):
    return multiprocessing.connection.Client(address = (ip, port), authkey = _authkey())
