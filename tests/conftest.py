import io
import tarfile

import pytest

from sbomfetch.core.config import ResolutionContext
from sbomfetch.core.stats import ResolveStats
from sbomfetch.core.workarea import WorkArea


@pytest.fixture
def context(tmp_path):
    return ResolutionContext(work_dir=tmp_path / 'sources')


@pytest.fixture
def work_area(context):
    return WorkArea(context.work_dir)


@pytest.fixture
def stats():
    return ResolveStats()


def make_tar_gz(files: dict[str, bytes]) -> bytes:
    """Build a gzipped tarball in memory from {member name: content}."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode='w:gz') as tf:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tf.addfile(info, io.BytesIO(content))
    return buffer.getvalue()
