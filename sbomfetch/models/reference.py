"""Package-URL locators and their parsed form."""
import re
from urllib.parse import quote
from urllib.parse import unquote

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from sbomfetch.core.exceptions import MalformedLocator

SCHEME = 'pkg'
TYPE_RE = re.compile(r'^[a-z][a-z0-9.+-]*$')
QUALIFIER_KEY_RE = re.compile(r'^[a-z][a-z0-9._-]*$')

# Characters left unencoded when rebuilding a locator
_SEGMENT_SAFE = "!$'()*+,;:=-._~"
_VALUE_SAFE = "!$'()*+,;:/@-._~"


class Checksum(BaseModel):
    algorithm: str
    digest: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def parse(cls, value: str, locator: str = '') -> 'Checksum':
        """Split `<algorithm>:<hex-digest>`."""
        algorithm, sep, digest = value.strip().partition(':')
        if not sep or not algorithm or not digest:
            raise MalformedLocator(
                locator or value, f"checksum {value!r} is not <algorithm>:<digest>",
            )
        algorithm = algorithm.lower()
        if algorithm.startswith('sha-'):
            algorithm = 'sha' + algorithm[4:]
        return cls(algorithm=algorithm, digest=digest.lower())

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.digest}"


def split_checksums(value: str, locator: str = '') -> list[Checksum]:
    """A checksum qualifier may list several comma-separated checksums."""
    return [Checksum.parse(item, locator) for item in value.split(',') if item.strip()]


class Reference(BaseModel):
    """A parsed package locator (package-URL)."""
    type: str
    namespace: str | None = None
    name: str
    version: str | None = None
    qualifiers: dict[str, str] = Field(default_factory=dict)
    subpath: str | None = None
    raw: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def parse(cls, locator: str) -> 'Reference':
        """
        Parse `pkg:type/namespace/name@version?qualifiers#subpath`.

        Qualifier values are percent-decoded one by one, so a value may
        itself be a percent-encoded URL.

        Raises:
            MalformedLocator if the string does not follow the grammar
        """
        if not isinstance(locator, str) or not locator.strip():
            raise MalformedLocator(str(locator), 'empty locator')
        raw = locator.strip()

        scheme, sep, remainder = raw.partition(':')
        if not sep or scheme.lower() != SCHEME:
            raise MalformedLocator(raw, f"scheme must be '{SCHEME}:'")
        remainder = remainder.lstrip('/')

        # Subpath and qualifiers are cut off before the path, so '@' or '/'
        # inside them never reach the version split below
        remainder, _, subpath = remainder.partition('#')
        remainder, _, query = remainder.partition('?')

        pkg_type, sep, path = remainder.partition('/')
        pkg_type = pkg_type.lower()
        if not sep or not TYPE_RE.match(pkg_type):
            raise MalformedLocator(raw, f"invalid type {pkg_type!r}")

        path = path.strip('/')
        version = None
        last_slash = path.rfind('/')
        # Only an '@' in the last segment separates the version
        at = path.rfind('@')
        if at > last_slash:
            path, version = path[:at], unquote(path[at + 1:])
            if not version:
                raise MalformedLocator(raw, 'empty version after @')

        segments = [unquote(s) for s in path.split('/') if s]
        if not segments:
            raise MalformedLocator(raw, 'missing name')
        name = segments[-1]
        namespace = '/'.join(segments[:-1]) or None

        qualifiers = cls._parse_qualifiers(raw, query)

        subpath_segments = [
            unquote(s) for s in subpath.strip('/').split('/')
            if s and s not in ('.', '..')
        ]

        # A malformed checksum makes the whole locator malformed
        checksum_value = qualifiers.get('checksum') or qualifiers.get('checksums')
        if checksum_value:
            split_checksums(checksum_value, raw)

        return cls(
            type=pkg_type,
            namespace=namespace,
            name=name,
            version=version,
            qualifiers=qualifiers,
            subpath='/'.join(subpath_segments) or None,
            raw=raw,
        )

    @staticmethod
    def _parse_qualifiers(raw: str, query: str) -> dict[str, str]:
        qualifiers: dict[str, str] = {}
        if not query:
            return qualifiers
        for pair in query.split('&'):
            if not pair:
                continue
            key, sep, value = pair.partition('=')
            key = key.lower()
            if not sep or not QUALIFIER_KEY_RE.match(key):
                raise MalformedLocator(raw, f"invalid qualifier {pair!r}")
            if key in qualifiers:
                raise MalformedLocator(raw, f"duplicate qualifier {key!r}")
            # Empty values are treated as absent
            value = unquote(value)
            if value:
                qualifiers[key] = value
        return qualifiers

    @property
    def checksums(self) -> list[Checksum]:
        value = self.qualifiers.get('checksum') or self.qualifiers.get('checksums')
        if not value:
            return []
        return split_checksums(value, self.raw)

    @property
    def checksum(self) -> Checksum | None:
        checksums = self.checksums
        return checksums[0] if checksums else None

    @property
    def vcs_url(self) -> str | None:
        return self.qualifiers.get('vcs_url')

    @property
    def download_url(self) -> str | None:
        return self.qualifiers.get('download_url')

    @property
    def arch(self) -> str | None:
        return self.qualifiers.get('arch')

    @property
    def full_name(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name

    def to_string(self) -> str:
        """Re-encode the reference as a locator."""
        parts = [f"{SCHEME}:{self.type}/"]
        if self.namespace:
            parts.append(
                '/'.join(quote(s, safe=_SEGMENT_SAFE) for s in self.namespace.split('/')) + '/',
            )
        parts.append(quote(self.name, safe=_SEGMENT_SAFE))
        if self.version:
            parts.append('@' + quote(self.version, safe=_SEGMENT_SAFE))
        if self.qualifiers:
            parts.append(
                '?' + '&'.join(
                    f"{key}={quote(value, safe=_VALUE_SAFE)}"
                    for key, value in self.qualifiers.items()
                ),
            )
        if self.subpath:
            parts.append('#' + '/'.join(quote(s, safe=_SEGMENT_SAFE) for s in self.subpath.split('/')))
        return ''.join(parts)

    def __str__(self) -> str:
        return self.raw
