from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Redactor:
    """Mask addresses and names in scan output meant for bug reports."""

    enabled: bool = True
    _host_map: dict[str, int] = field(default_factory=dict)

    def redact_ip(self, ip: str) -> str:
        if not self.enabled:
            return ip
        parts = ip.split(".")
        if len(parts) == 4 and all(part.isdigit() for part in parts):
            return f"x.x.x.{parts[3]}"
        return ip

    def redact_hostname(self, hostname: str) -> str:
        if not self.enabled or not hostname:
            return hostname
        counter = self._host_map.setdefault(hostname, len(self._host_map) + 1)
        return f"router-{counter:02d}"

    def redact_version(self, version: str | None) -> str:
        if version is None:
            return ""
        if not self.enabled or "." not in version:
            return version
        major = version.split(".", 1)[0]
        return f"{major}.x"
