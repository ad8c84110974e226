import numpy as np
import pytest

from cloud_colorization.domain.model import PointCloud


@pytest.fixture
def write_text(tmp_path):
    """Write a text file under tmp_path and return its path."""
    def _write(name: str, content: str):
        path = tmp_path / name
        path.write_text(content)
        return path
    return _write


@pytest.fixture
def single_colored_point():
    return PointCloud.from_arrays(
        np.array([[0.0, 0.0, 0.5]]),
        np.array([[10, 20, 30]], dtype=np.uint8),
    ).freeze()


@pytest.fixture
def origin_target():
    return PointCloud.from_arrays(np.array([[0.0, 0.0, 0.0]])).freeze()
