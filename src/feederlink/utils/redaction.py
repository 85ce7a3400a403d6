from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Redactor:
    enabled: bool = True

    def redact_address(self, address: str) -> str:
        if not self.enabled:
            return address
        host, sep, port = address.partition(":")
        parts = host.split(".")
        if len(parts) == 4 and all(part.isdigit() for part in parts):
            return f"x.x.x.{parts[3]}{sep}{port}"
        return address

    def redact_name(self, name: str) -> str:
        if not self.enabled or len(name) <= 2:
            return name
        return f"{name[0]}{'*' * (len(name) - 2)}{name[-1]}"
