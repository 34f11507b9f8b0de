from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
import socket
import sys
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

import psutil

from flashwrt.config import ScanningConfig
from flashwrt.errors import ProbeError, SSHConnectionError
from flashwrt.models import BoardInfo, DeviceOrigin, DeviceProbe, DeviceStatus

from .connection import ConnectionManager
from .subnet import expand_subnet, gateway_positions, validate_ranges

logger = logging.getLogger(__name__)

SSH_PORT = 22

_IPV4 = r"(\d{1,3}(?:\.\d{1,3}){3})"
_ROUTE_PATTERNS = (
    re.compile(rf"^default\s+via\s+{_IPV4}", re.MULTILINE),
    re.compile(rf"^\s*gateway:\s*{_IPV4}", re.MULTILINE),
    re.compile(rf"^\s*0\.0\.0\.0\s+0\.0\.0\.0\s+{_IPV4}", re.MULTILINE),
)


@dataclass(frozen=True)
class GatewayCandidate:
    ip: str
    source: str  # "route" or "interface"

    @property
    def from_route(self) -> bool:
        return self.source == "route"


PortChecker = Callable[[str, int, float], Awaitable[bool]]
GatewayFinder = Callable[[], Awaitable[list[GatewayCandidate]]]


async def check_ssh_port(
    ip: str, port: int = SSH_PORT, timeout: float = 0.5
) -> bool:
    """Raw TCP connect to *port*; any refusal or timeout means closed."""
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(ip, port), timeout=timeout
        )
    except (TimeoutError, OSError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


def interface_gateway_candidates() -> list[str]:
    """Conventional router positions on every up, non-loopback IPv4 subnet."""
    candidates: list[str] = []
    stats = psutil.net_if_stats()
    for interface, addrs in psutil.net_if_addrs().items():
        if interface in stats and not stats[interface].isup:
            continue
        for addr in addrs:
            if addr.family != socket.AF_INET or not addr.netmask:
                continue
            try:
                iface = ipaddress.IPv4Interface(f"{addr.address}/{addr.netmask}")
            except ValueError:
                continue
            if iface.ip.is_loopback or iface.ip.is_link_local:
                continue
            for ip in gateway_positions(iface.network):
                if ip != str(iface.ip):
                    candidates.append(ip)
    return candidates


def route_command() -> list[str]:
    if sys.platform.startswith("win"):
        return ["route", "print", "-4", "0.0.0.0"]
    if sys.platform == "darwin":
        return ["route", "-n", "get", "default"]
    return ["ip", "-4", "route", "show", "default"]


def parse_default_routes(output: str) -> list[str]:
    gateways: list[str] = []
    for pattern in _ROUTE_PATTERNS:
        for match in pattern.finditer(output):
            ip = match.group(1)
            try:
                ipaddress.IPv4Address(ip)
            except ValueError:
                continue
            if ip not in gateways:
                gateways.append(ip)
    return gateways


async def default_route_gateways() -> list[str]:
    command = route_command()
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await proc.communicate()
    except OSError as exc:
        logger.debug("Cannot run %s: %s", command[0], exc)
        return []
    return parse_default_routes(stdout.decode(errors="replace"))


async def detect_gateway_candidates() -> list[GatewayCandidate]:
    """Explicit default gateways first, then interface heuristics, de-duplicated."""
    found: dict[str, GatewayCandidate] = {}
    for ip in await default_route_gateways():
        found.setdefault(ip, GatewayCandidate(ip, "route"))
    try:
        interface_ips = interface_gateway_candidates()
    except (OSError, RuntimeError) as exc:
        logger.warning("Cannot enumerate network interfaces: %s", exc)
        interface_ips = []
    for ip in interface_ips:
        found.setdefault(ip, GatewayCandidate(ip, "interface"))
    logger.debug("Gateway candidates: %s", ", ".join(found) or "none")
    return list(found.values())


class NetworkDiscoverer:
    """Find flashable routers without knowing their address.

    Gateway heuristics run first, then every configured subnet is swept.
    Addresses are probed concurrently, but each address runs its probe and
    enrichment in sequence, so no two operations touch the same router.
    """

    def __init__(
        self,
        connections: ConnectionManager,
        config: ScanningConfig | None = None,
        *,
        port_checker: PortChecker = check_ssh_port,
        gateway_finder: GatewayFinder = detect_gateway_candidates,
        ssh_port: int = SSH_PORT,
    ) -> None:
        self._connections = connections
        self._config = config or ScanningConfig()
        self._port_checker = port_checker
        self._gateway_finder = gateway_finder
        self._ssh_port = ssh_port

    async def scan(self) -> list[DeviceProbe]:
        # Reject bad ranges before touching the network.
        validate_ranges(self._config.subnet_ranges)

        results: list[DeviceProbe] = []
        seen: set[str] = set()

        if self._config.include_gateways:
            gateways = await self._find_gateways()
            seen.update(candidate.ip for candidate in gateways)
            results.extend(await self._probe_gateways(gateways))

        sweep: list[str] = []
        for cidr in self._config.subnet_ranges:
            for ip in expand_subnet(cidr):
                if ip not in seen:
                    seen.add(ip)
                    sweep.append(ip)

        logger.info(
            "Sweeping %d address(es) in %d range(s)",
            len(sweep),
            len(self._config.subnet_ranges),
        )
        found = await self._probe_many(sweep, DeviceOrigin.SUBNET)
        found.sort(key=lambda probe: ipaddress.IPv4Address(probe.ip))
        results.extend(found)

        logger.info(
            "Scan complete: %d device(s), %d with SSH",
            len(results),
            sum(1 for probe in results if probe.ssh_reachable),
        )
        return results

    async def check_device(self, ip: str) -> DeviceProbe | None:
        """Probe and identify a single, user supplied address."""
        try:
            ipaddress.IPv4Address(ip)
        except ValueError:
            logger.warning("Not an IPv4 address: %r", ip)
            return None
        try:
            return await self.probe(ip, DeviceOrigin.MANUAL)
        except (ProbeError, SSHConnectionError, OSError) as exc:
            logger.warning("Checking %s failed: %s", ip, exc)
            return None

    async def probe(self, ip: str, origin: DeviceOrigin) -> DeviceProbe | None:
        """Port check plus enrichment; ``None`` when SSH is not reachable."""
        logger.debug("Checking %s", ip)
        try:
            ssh_open = await self._port_checker(
                ip, self._ssh_port, self._config.probe_timeout
            )
        except OSError as exc:
            raise ProbeError(f"Port check of {ip} failed: {exc}") from exc
        if not ssh_open:
            return None

        logger.info("Found device with SSH enabled: %s", ip)
        board = await self.enrich(ip)
        return DeviceProbe(
            ip=ip,
            ssh_reachable=True,
            origin=origin,
            status=DeviceStatus.READY,
            is_openwrt=bool(board and board.is_openwrt),
            board=board,
        )

    async def enrich(self, ip: str) -> BoardInfo | None:
        """Log in with the empty password and identify the board.

        Failure only loses the board details; the device is still listed.
        """
        attempt = await self._connections.connect(ip, "")
        if not attempt.success:
            logger.debug("Cannot log in to %s: %s", ip, attempt.error)
            return None
        try:
            return await self._connections.get_board_info(ip)
        finally:
            await self._connections.close_connection(ip)

    async def _find_gateways(self) -> list[GatewayCandidate]:
        try:
            return await self._gateway_finder()
        except (OSError, RuntimeError) as exc:
            logger.warning("Gateway detection failed: %s", exc)
            return []

    async def _probe_gateways(
        self, gateways: list[GatewayCandidate]
    ) -> list[DeviceProbe]:
        probes = await self._probe_many(
            [candidate.ip for candidate in gateways], DeviceOrigin.GATEWAY
        )
        by_ip = {probe.ip: probe for probe in probes}

        results: list[DeviceProbe] = []
        for candidate in gateways:
            probe = by_ip.get(candidate.ip)
            if probe is not None:
                results.append(probe)
            elif candidate.from_route:
                results.append(
                    DeviceProbe(
                        ip=candidate.ip,
                        ssh_reachable=False,
                        origin=DeviceOrigin.GATEWAY,
                        status=DeviceStatus.NO_SSH,
                    )
                )
        return results

    async def _probe_many(
        self, ips: Iterable[str], origin: DeviceOrigin
    ) -> list[DeviceProbe]:
        semaphore = asyncio.Semaphore(self._config.parallel_probes)

        async def _bounded(ip: str) -> DeviceProbe | None:
            async with semaphore:
                return await self.probe(ip, origin)

        addresses = list(ips)
        results = await asyncio.gather(
            *(_bounded(ip) for ip in addresses), return_exceptions=True
        )

        probes: list[DeviceProbe] = []
        for ip, result in zip(addresses, results, strict=True):
            if isinstance(result, DeviceProbe):
                probes.append(result)
            elif isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.debug("Probe of %s failed: %s", ip, result)
        return probes
