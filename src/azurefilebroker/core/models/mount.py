"""Broker-wide mount option policy.

Allowed options may be set per binding. Defaults apply when a binding does
not set them. A default for an option that is not allowed is forced: it is
always applied and cannot be overridden.
"""

from azurefilebroker.core.errors import InvalidMountOptionsError


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class MountOptions:
    def __init__(
        self,
        allowed: list[str] | None = None,
        options: dict[str, str] | None = None,
        forced: dict[str, str] | None = None,
    ) -> None:
        self.allowed = list(allowed or [])
        self.options = dict(options or {})
        self.forced = dict(forced or {})

    @classmethod
    def from_strings(cls, allowed_options: str, default_options: str) -> "MountOptions":
        """Build from "a,b,c" allowed names and "key:value,..." defaults."""
        mount = cls(allowed=_split(allowed_options))
        for entry in _split(default_options):
            key, sep, value = entry.partition(":")
            key = key.strip()
            if not sep or not key:
                raise InvalidMountOptionsError(f"Invalid default option: {entry!r}")
            if key in mount.allowed:
                mount.options[key] = value.strip()
            else:
                mount.forced[key] = value.strip()
        return mount

    def copy(self) -> "MountOptions":
        return MountOptions(self.allowed, self.options, self.forced)

    def set_entries(self, entries: dict[str, str]) -> None:
        """Apply per-binding options; every key must be allowed."""
        not_allowed = sorted(key for key in entries if key not in self.allowed)
        if not_allowed:
            raise InvalidMountOptionsError(f"Not allowed options: {', '.join(not_allowed)}")
        self.options.update(entries)

    def make_config(self) -> dict[str, str]:
        config = dict(self.options)
        config.update(self.forced)
        return config
