"""Pre-dispatch admission checks.

Each rule maps to one policy value; a rule whose value is unset is skipped.
Rules run in a fixed order and the first failure rejects the request with a
fixed status before any handler state exists.
"""

from __future__ import annotations

import os
import re
from typing import Callable, Union

import msgspec

from .config import AppConfig
from .exceptions import AdmissionRejected
from .http import Status
from .requests import Request

LoadAverage = Callable[[], float]

SCRIPT_EXTENSION_PATTERN = re.compile(
    r"\.(?:php[3-7s]?|phtml|pl|py|rb|cgi|aspx?|jsp|cf[mc]|sh)$",
    re.IGNORECASE,
)


class Pass(msgspec.Struct, frozen=True):
    pass


class Reject(msgspec.Struct, frozen=True):
    status: int
    reason: str


AdmissionVerdict = Union[Pass, Reject]

PASS = Pass()


class AdmissionPolicy(msgspec.Struct, frozen=True):
    hosts: tuple[str, ...] = ()
    max_params: int | None = None
    require_user_agent: bool | None = None
    block_script_extensions: bool | None = None
    load_avg_ceiling: float | None = None

    @classmethod
    def from_config(cls, config: AppConfig) -> "AdmissionPolicy":
        return cls(
            hosts=tuple(config.hosts),
            max_params=config.security.max_params,
            require_user_agent=config.security.require_user_agent,
            block_script_extensions=config.security.block_script_extensions,
            load_avg_ceiling=config.load_avg_ceiling,
        )


def system_load_average() -> float:
    """Return the one-minute load average."""

    return os.getloadavg()[0]


class AdmissionGate:
    def __init__(self, policy: AdmissionPolicy, *, load_average: LoadAverage | None = None) -> None:
        self.policy = policy
        self._load_average = load_average or system_load_average
        self._hosts = frozenset(host.lower() for host in policy.hosts)

    def check(self, request: Request) -> AdmissionVerdict:
        policy = self.policy
        if self._hosts and not self._host_allowed(request.host):
            return Reject(int(Status.BAD_REQUEST), f"host not allowed: {request.host!r}")
        if policy.max_params is not None and request.param_count > policy.max_params:
            return Reject(
                int(Status.TOO_MANY_REQUESTS),
                f"too many parameters: {request.param_count} > {policy.max_params}",
            )
        if policy.require_user_agent:
            user_agent = request.header("user-agent")
            if user_agent is None or not user_agent.strip():
                return Reject(int(Status.BAD_REQUEST), "missing user agent")
        if policy.block_script_extensions and SCRIPT_EXTENSION_PATTERN.search(request.path):
            return Reject(int(Status.BAD_REQUEST), f"script extension in path: {request.path!r}")
        if policy.load_avg_ceiling is not None:
            load = self._load_average()
            if load > policy.load_avg_ceiling:
                return Reject(
                    int(Status.SERVICE_UNAVAILABLE),
                    f"load average {load:.2f} above ceiling {policy.load_avg_ceiling:.2f}",
                )
        return PASS

    def enforce(self, request: Request) -> None:
        """Raise :class:`AdmissionRejected` instead of returning a rejection."""

        verdict = self.check(request)
        if isinstance(verdict, Reject):
            raise AdmissionRejected(verdict.status, verdict.reason)

    def _host_allowed(self, host: str | None) -> bool:
        if host is None or not host.strip():
            return False
        candidate = host.strip().lower()
        if candidate in self._hosts:
            return True
        hostname, sep, port = candidate.rpartition(":")
        if sep and port.isdigit():
            return hostname in self._hosts
        return False


__all__ = [
    "PASS",
    "AdmissionGate",
    "AdmissionPolicy",
    "AdmissionVerdict",
    "Pass",
    "Reject",
    "SCRIPT_EXTENSION_PATTERN",
    "system_load_average",
]
