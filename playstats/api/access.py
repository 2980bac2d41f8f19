"""Referer allow-list gate."""

import logging
from typing import Iterable, Optional

from .errors import OriginRejected

logger = logging.getLogger(__name__)


class AccessGate:
    """Accept requests whose declared origin mentions an allowed host.

    The check is a plain substring test against each allowed host, so
    ``https://evil.example/blog-vincent.chyu.org`` is accepted too. Requests
    without a declared origin are rejected.
    """

    def __init__(self, allowed_hosts: Iterable[str]):
        """Initialize the gate.

        Args:
            allowed_hosts: Host-name substrings accepted in the declared origin
        """
        self.allowed_hosts: tuple[str, ...] = tuple(h for h in allowed_hosts if h)

    def check(self, declared_origin: Optional[str]) -> bool:
        """Return True if `declared_origin` is accepted."""
        try:
            self.verify(declared_origin)
        except OriginRejected:
            return False
        return True

    def verify(self, declared_origin: Optional[str]) -> None:
        """Raise OriginRejected unless `declared_origin` is accepted."""
        if not declared_origin:
            logger.info("Rejected request without referer")
            raise OriginRejected("missing")

        if not any(host in declared_origin for host in self.allowed_hosts):
            logger.info(f"Rejected request from referer: {declared_origin}")
            raise OriginRejected("invalid")
