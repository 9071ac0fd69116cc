import socket
from contextlib import closing
from typing import Any, Optional

from loguru import logger as default_logger

from core.errors import PortsExhaustedError


def validate_port(value: Any) -> Optional[int]:
    """Return ``value`` as a TCP port number, or None if it is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return None
    if not isinstance(value, int):
        return None
    if 1 <= value <= 65535:
        return value
    return None


def parse_docker_port_mapping(ports: Any) -> Optional[int]:
    """
    Extract the first bound host port from the shapes Docker hands back:
    an int or string, a ``{"80/tcp": [{"HostIp": ..., "HostPort": ...}]}``
    mapping, or a bare list of bindings.
    """
    if ports is None:
        return None
    if isinstance(ports, (int, str)):
        return validate_port(ports)
    if isinstance(ports, dict):
        for bindings in ports.values():
            port = parse_docker_port_mapping(bindings)
            if port is not None:
                return port
        return None
    if isinstance(ports, list):
        for binding in ports:
            if isinstance(binding, dict) and "HostPort" in binding:
                port = validate_port(binding["HostPort"])
                if port is not None:
                    return port
        return None
    return None


class PortManager:
    """Finds the lowest unused TCP port in an inclusive range."""

    def __init__(self, start_port: int = 3000, end_port: int = 65535, logger=None):
        if start_port > end_port:
            raise ValueError("start_port must not exceed end_port")
        self.start_port = start_port
        self.end_port = end_port
        self.logger = (logger or default_logger).bind(component="ports")

    def is_port_free(self, port: int) -> bool:
        with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
            try:
                sock.bind(("", port))
            except OSError:
                return False
            return True

    def find_free_port(self) -> int:
        for port in range(self.start_port, self.end_port + 1):
            if self.is_port_free(port):
                self.logger.debug(f"Port {port} is free")
                return port
        raise PortsExhaustedError(
            f"No free ports available in range {self.start_port}-{self.end_port}"
        )
