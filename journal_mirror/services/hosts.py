#!/usr/bin/env python3
"""Host identities and reachability events."""

import re
from dataclasses import dataclass

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


@dataclass(frozen=True, order=True)
class HostIdentity:
    """Stable identity of a fleet member across reconnects.

    A name is unique within its namespace, so both are needed to make the
    identity (and the local journal file name) unique.
    """

    namespace: str
    name: str

    def __post_init__(self):
        for field_name in ("namespace", "name"):
            value = getattr(self, field_name)
            if not value or not _NAME_PATTERN.match(value) or value in (".", ".."):
                raise ValueError(f"Invalid host {field_name}: {value!r}")

    def journal_filename(self) -> str:
        return f"{self.namespace}-{self.name}.log"

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ReachabilityEvent:
    """A host's network address became known or changed."""

    host: HostIdentity
    address: str
    port: int = 22
