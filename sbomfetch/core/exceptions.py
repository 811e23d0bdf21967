"""Error taxonomy for sbomfetch."""


class SbomFetchError(Exception):
    """Base class for all resolver errors."""


class MalformedLocator(SbomFetchError):
    """A locator string does not follow the package-URL grammar."""

    def __init__(self, locator: str, reason: str):
        self.locator = locator
        self.reason = reason
        super().__init__(f"Malformed locator {locator!r}: {reason}")


class ChecksumMismatch(SbomFetchError):
    def __init__(self, path: str, algorithm: str, expected: str, actual: str):
        self.path = path
        self.algorithm = algorithm
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {path}: "
            f"expected {algorithm}:{expected}, got {algorithm}:{actual}",
        )


class UnsupportedChecksumAlgorithm(SbomFetchError):
    def __init__(self, algorithm: str):
        self.algorithm = algorithm
        super().__init__(f"Unsupported checksum algorithm: {algorithm!r}")


class UnresolvedPackageURL(SbomFetchError):
    """No artifact URL could be determined for a package reference."""


class VcsError(SbomFetchError):
    """Clone or checkout failed."""


class DownloadError(SbomFetchError):
    pass


class ArchiveError(SbomFetchError):
    pass


class AttestationError(SbomFetchError):
    pass


class MissingToolError(SbomFetchError):
    def __init__(self, tools: list[str]):
        self.tools = tools
        super().__init__(f"Required tool(s) not found in PATH: {', '.join(tools)}")
