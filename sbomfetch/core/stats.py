import time
from dataclasses import dataclass
from dataclasses import field
from dataclasses import fields


@dataclass
class ResolveStats:
    """Counters for one resolution run."""
    locators: int = 0
    cloned: int = 0
    checked_out: int = 0
    downloaded: int = 0
    cache_hits: int = 0
    extracted: int = 0
    sboms: int = 0
    skipped: int = 0
    unhandled: int = 0
    malformed: int = 0
    start_time: float = field(default_factory=time.time)

    def inc(self, counter: str, count: int = 1):
        setattr(self, counter, getattr(self, counter) + count)

    def as_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != 'start_time'}

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time
