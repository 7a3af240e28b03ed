"""Per-IP punishment, rate limiting and traffic accounting for a node."""

from __future__ import annotations

import ipaddress
from typing import Callable, Union

from .utils import local_timestamp

IpLike = Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]
IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

REQUEST_COUNT_WINDOW = 60
TRAFFIC_WINDOW = 900


def _ip(value: IpLike) -> IpAddress:
    return ipaddress.ip_address(value)


class Firewall:
    """Decides which peers a node talks to and which requests it serves."""

    def __init__(
        self,
        request_count_limit_per_minute: int,
        traffic_limit_per_15m: int,
        clock: Callable[[], int] = local_timestamp,
    ) -> None:
        self.request_count_limit_per_minute = request_count_limit_per_minute
        self.traffic_limit_per_15m = traffic_limit_per_15m
        self._clock = clock
        self._bad_ips: dict[IpAddress, int] = {}
        self._unresponsive_ips: dict[IpAddress, int] = {}
        self._request_count_last_reset = 0
        self._request_count: dict[IpAddress, int] = {}
        self._traffic_last_reset = 0
        self._traffic: dict[IpAddress, int] = {}

    def refresh(self) -> None:
        """Forget expired punishments and reset counters whose window has passed."""
        self._bad_ips = {
            ip: until for ip, until in self._bad_ips.items() if self.is_ip_bad(ip)
        }
        self._unresponsive_ips = {
            ip: until
            for ip, until in self._unresponsive_ips.items()
            if self.is_ip_dead(ip)
        }

        now = self._clock()
        if now - self._request_count_last_reset > REQUEST_COUNT_WINDOW:
            self._request_count.clear()
            self._request_count_last_reset = now
        if now - self._traffic_last_reset > TRAFFIC_WINDOW:
            self._traffic.clear()
            self._traffic_last_reset = now

    def add_traffic(self, ip: IpLike, amount: int) -> None:
        """Account `amount` bytes of traffic to `ip`."""
        addr = _ip(ip)
        self._traffic[addr] = self._traffic.get(addr, 0) + amount

    def punish_bad(self, ip: IpLike, secs: int) -> None:
        """Ban `ip` for `secs` more seconds, on top of any running ban."""
        addr = _ip(ip)
        now = self._clock()
        self._bad_ips[addr] = max(self._bad_ips.get(addr, 0), now) + secs

    def punish_unresponsive(self, ip: IpLike, secs: int, max_punish: int) -> None:
        """Stop contacting `ip` for `secs` more seconds, at most `max_punish` from now."""
        addr = _ip(ip)
        now = self._clock()
        extended = max(self._unresponsive_ips.get(addr, 0), now) + secs
        self._unresponsive_ips[addr] = min(extended, now + max_punish)

    def is_ip_bad(self, ip: IpLike) -> bool:
        """Whether `ip` is currently banned for bad behaviour."""
        until = self._bad_ips.get(_ip(ip))
        return until is not None and self._clock() < until

    def is_ip_dead(self, ip: IpLike) -> bool:
        """Whether `ip` is currently considered unresponsive."""
        until = self._unresponsive_ips.get(_ip(ip))
        return until is not None and self._clock() < until

    def outgoing_permitted(self, ip: IpLike) -> bool:
        """Whether the node may send requests to `ip`."""
        addr = _ip(ip)
        if addr.is_loopback:
            return True
        return not (self.is_ip_bad(addr) or self.is_ip_dead(addr))

    def incoming_permitted(self, ip: IpLike) -> bool:
        """Whether a request from `ip` may be served; counts it if so."""
        addr = _ip(ip)
        if addr.is_loopback:
            return True
        if self.is_ip_bad(addr):
            return False
        if self._traffic.get(addr, 0) > self.traffic_limit_per_15m:
            return False
        count = self._request_count.setdefault(addr, 0)
        if count > self.request_count_limit_per_minute:
            return False
        self._request_count[addr] = count + 1
        return True