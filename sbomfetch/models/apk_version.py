"""Ordering of apk package versions (`1.2.3a_rc1-r4`)."""
import re
from functools import total_ordering

_VERSION_RE = re.compile(
    r'^(?P<numbers>\d+(?:\.\d+)*)'
    r'(?P<letter>[a-z])?'
    r'(?P<suffixes>(?:_[a-z]+\d*)*)'
    r'(?:~(?P<hash>[0-9a-f]+))?'
    r'(?:-r(?P<release>\d+))?$',
)
_SUFFIX_RE = re.compile(r'_([a-z]+)(\d*)')

# Pre-release suffixes sort below a plain version, post-release ones above
SUFFIX_ORDER = {
    'alpha': 0,
    'beta': 1,
    'pre': 2,
    'rc': 3,
    '': 4,
    'cvs': 5,
    'svn': 6,
    'git': 7,
    'hg': 8,
    'p': 9,
}


@total_ordering
class ApkVersion:
    def __init__(self, value: str):
        self.value = value
        self.key = self._key(value)

    @staticmethod
    def _key(value: str) -> tuple:
        match = _VERSION_RE.match(value)
        if not match:
            # Unparseable versions sort below every valid one
            return (0, value)

        numbers = tuple(int(n) for n in match.group('numbers').split('.'))
        letter = ord(match.group('letter')) if match.group('letter') else 0
        suffixes = tuple(
            (SUFFIX_ORDER.get(name, -1), int(num or 0))
            for name, num in _SUFFIX_RE.findall(match.group('suffixes'))
        ) or ((SUFFIX_ORDER[''], 0),)
        release = int(match.group('release') or 0)
        return (1, numbers, letter, suffixes, release)

    @property
    def is_valid(self) -> bool:
        return self.key[0] == 1

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ApkVersion):
            return NotImplemented
        return self.key == other.key

    def __lt__(self, other: 'ApkVersion') -> bool:
        return self.key < other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"ApkVersion({self.value!r})"

    def __str__(self) -> str:
        return self.value
