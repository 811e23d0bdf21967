from enum import Enum


class Arch(str, Enum):
    AMD64 = 'amd64'
    ARM64 = 'arm64'

    @property
    def canonical(self) -> str:
        """Architecture string used in package repository URLs."""
        return _CANONICAL[self]

    @classmethod
    def from_string(cls, value: str) -> 'Arch':
        """Accept either the short or the canonical spelling."""
        value = value.lower()
        for arch, canonical in _CANONICAL.items():
            if value in (arch.value, canonical):
                return arch
        raise ValueError(f"Unsupported architecture: {value}")

    def __str__(self) -> str:
        return self.value


_CANONICAL = {
    Arch.AMD64: 'x86_64',
    Arch.ARM64: 'aarch64',
}
