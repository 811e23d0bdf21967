import pytest

from sbomfetch.core.exceptions import MalformedLocator
from sbomfetch.models.reference import Checksum
from sbomfetch.models.reference import Reference


def test_parse_github_locator():
    ref = Reference.parse('pkg:github/foo/bar@abc123#build')
    assert ref.type == 'github'
    assert ref.namespace == 'foo'
    assert ref.name == 'bar'
    assert ref.version == 'abc123'
    assert ref.subpath == 'build'
    assert ref.qualifiers == {}
    assert ref.raw == 'pkg:github/foo/bar@abc123#build'


def test_parse_generic_download_locator():
    digest = 'a' * 64
    ref = Reference.parse(
        f'pkg:generic/zlib?download_url=https://zlib.net/zlib-1.3.tar.gz&checksum=sha256:{digest}',
    )
    assert ref.type == 'generic'
    assert ref.namespace is None
    assert ref.name == 'zlib'
    assert ref.version is None
    assert ref.download_url == 'https://zlib.net/zlib-1.3.tar.gz'
    assert ref.checksum == Checksum(algorithm='sha256', digest=digest)


def test_qualifier_values_are_decoded_independently():
    ref = Reference.parse(
        'pkg:generic/foo@1.0?download_url=https%3A%2F%2Fexample.com%2Ffoo.tgz%3Fa%3D1%26b%3D2&arch=x86_64',
    )
    assert ref.download_url == 'https://example.com/foo.tgz?a=1&b=2'
    assert ref.arch == 'x86_64'


def test_qualifier_order_does_not_matter():
    a = Reference.parse('pkg:apk/wolfi/foo@1.0-r0?arch=x86_64&distro=wolfi')
    b = Reference.parse('pkg:apk/wolfi/foo@1.0-r0?distro=wolfi&arch=x86_64')
    assert a.qualifiers == b.qualifiers
    assert a.arch == b.arch == 'x86_64'


def test_type_and_qualifier_keys_are_lowercased():
    ref = Reference.parse('pkg:GitHub/foo/bar@abc?Private=true')
    assert ref.type == 'github'
    assert ref.qualifiers == {'private': 'true'}


def test_checksum_is_split_and_normalised():
    ref = Reference.parse('pkg:generic/foo?checksum=SHA-256:ABCDEF,sha1:0123')
    assert [str(c) for c in ref.checksums] == ['sha256:abcdef', 'sha1:0123']
    assert ref.checksum.algorithm == 'sha256'
    assert ref.checksum.digest == 'abcdef'


def test_vcs_url_with_pin_is_kept_verbatim():
    ref = Reference.parse(
        'pkg:generic/foo@1.0?vcs_url=git%2Bhttps%3A%2F%2Fgithub.com%2Ffoo%2Fbar%40abc123',
    )
    assert ref.vcs_url == 'git+https://github.com/foo/bar@abc123'


def test_nested_namespace_and_encoded_name():
    ref = Reference.parse('pkg:npm/%40angular/core@16.0.0')
    assert ref.namespace == '@angular'
    assert ref.name == 'core'
    assert ref.full_name == '@angular/core'


@pytest.mark.parametrize(
    'locator', [
        '',
        'not-a-purl',
        'http://example.com/foo',
        'pkg:',
        'pkg:github',
        'pkg:/foo',
        'pkg:1type/foo',
        'pkg:generic/@1.0',
        'pkg:generic/foo@',
        'pkg:generic/foo?checksum=sha256',
        'pkg:generic/foo?checksum=:abc',
        'pkg:generic/foo?arch=x86_64&arch=aarch64',
        'pkg:generic/foo?novalue',
    ],
)
def test_malformed_locators(locator):
    with pytest.raises(MalformedLocator):
        Reference.parse(locator)


@pytest.mark.parametrize(
    'locator', [
        'pkg:github/foo/bar@abc123#build',
        'pkg:npm/%40angular/core@16.0.0',
        'pkg:generic/zlib?download_url=https://zlib.net/zlib-1.3.tar.gz&checksum=sha256:abcd',
        'pkg:generic/foo@1.0?download_url=https%3A%2F%2Fexample.com%2Ffoo.tgz%3Fa%3D1%26b%3D2',
        'pkg:apk/wolfi/foo@1.0_rc1-r0?arch=aarch64',
    ],
)
def test_to_string_round_trips(locator):
    ref = Reference.parse(locator)
    again = Reference.parse(ref.to_string())
    assert again.model_dump(exclude={'raw'}) == ref.model_dump(exclude={'raw'})


def test_reference_is_immutable():
    ref = Reference.parse('pkg:github/foo/bar@abc123')
    with pytest.raises(Exception):
        ref.version = 'other'
