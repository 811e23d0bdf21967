from dataclasses import replace
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from sbomfetch.models.reference import Reference
from sbomfetch.services.dispatcher import Dispatcher
from sbomfetch.services.dispatcher import is_private
from sbomfetch.services.dispatcher import Strategy


def make_dispatcher(context, stats=None):
    return Dispatcher(context, MagicMock(), MagicMock(), MagicMock(), stats)


@pytest.mark.parametrize('locator, strategy', [
    ('pkg:github/foo/bar@abc123', Strategy.VCS),
    ('pkg:generic/bar@1.0?vcs_url=git%2Bhttps%3A%2F%2Fgitlab.com%2Ffoo%2Fbar%40abc', Strategy.VCS),
    ('pkg:generic/zlib?download_url=https://zlib.net/zlib-1.3.tar.gz', Strategy.DOWNLOAD),
    ('pkg:apk/wolfi/glibc@2.39-r5', Strategy.PACKAGE_SBOM),
    ('pkg:apk/alpine/musl@1.2.4-r2', Strategy.UNHANDLED),
    ('pkg:github/bar@abc123', Strategy.UNHANDLED),
    ('pkg:github/foo/bar-private@abc123', Strategy.SKIP),
    ('pkg:github/foo/bar@abc123?private=true', Strategy.SKIP),
    ('pkg:oci/nginx@sha256%3Aabc', Strategy.SKIP),
    ('pkg:generic/bar@1.0', Strategy.UNHANDLED),
    ('pkg:pypi/requests@2.31.0', Strategy.UNHANDLED),
])
def test_classify_unprivileged(context, locator, strategy):
    assert make_dispatcher(context).classify(Reference.parse(locator)).strategy is strategy


@pytest.mark.parametrize('locator, strategy', [
    ('pkg:github/foo/bar-private@abc123', Strategy.VCS),
    ('pkg:github/foo/bar@abc123?private=yes', Strategy.VCS),
    ('pkg:oci/nginx@sha256%3Aabc', Strategy.IMAGE),
])
def test_classify_privileged(context, locator, strategy):
    dispatcher = make_dispatcher(replace(context, privileged=True))
    assert dispatcher.classify(Reference.parse(locator)).strategy is strategy


def test_vcs_url_beats_download_url(context):
    ref = Reference.parse(
        'pkg:generic/bar?download_url=https://example.com/bar.tgz'
        '&vcs_url=git%2Bhttps%3A%2F%2Fexample.com%2Fbar',
    )
    assert make_dispatcher(context).classify(ref).strategy is Strategy.VCS


def test_is_private():
    assert is_private(Reference.parse('pkg:github/foo/secret-private'))
    assert is_private(Reference.parse('pkg:github/foo/bar?private=1'))
    assert not is_private(Reference.parse('pkg:github/foo/bar?private=false'))


def test_dispatch_runs_exactly_one_service(context, stats):
    dispatcher = make_dispatcher(context, stats)
    ref = Reference.parse('pkg:github/foo/bar@abc123')

    assert dispatcher.dispatch(ref) is None

    dispatcher.git_service.checkout_reference.assert_called_once_with(ref)
    dispatcher.download_service.fetch_reference.assert_not_called()
    dispatcher.apk_service.fetch_sbom.assert_not_called()


def test_dispatch_returns_derived_sbom(context):
    dispatcher = make_dispatcher(context)
    derived = Path('/work/sboms/glibc-2.39-r5.spdx.json')
    active = Path('/work/sboms/image.spdx.json')
    dispatcher.apk_service.fetch_sbom.return_value = derived
    ref = Reference.parse('pkg:apk/wolfi/glibc@2.39-r5')

    assert dispatcher.dispatch(ref, active_sbom=active) == derived
    dispatcher.apk_service.fetch_sbom.assert_called_once_with(ref, active_sbom=active)


def test_dispatch_counts_skips_and_unhandled(context, stats):
    dispatcher = make_dispatcher(context, stats)

    dispatcher.dispatch(Reference.parse('pkg:oci/nginx@sha256%3Aabc'))
    dispatcher.dispatch(Reference.parse('pkg:npm/left-pad@1.3.0'))

    assert stats.skipped == 1
    assert stats.unhandled == 1
    dispatcher.git_service.checkout_reference.assert_not_called()
    dispatcher.download_service.fetch_reference.assert_not_called()


def test_dispatch_image_is_not_implemented(context, stats):
    dispatcher = make_dispatcher(replace(context, privileged=True), stats)
    assert dispatcher.dispatch(Reference.parse('pkg:oci/nginx@sha256%3Aabc')) is None
    assert stats.unhandled == 1
