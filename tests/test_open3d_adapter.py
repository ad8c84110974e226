import numpy as np
import pytest

pytest.importorskip("open3d")

from cloud_colorization.domain.model import ColorizedCloud, PointCloud  # noqa: E402
from cloud_colorization.infrastructure.filesystem import FilesystemCloudSource  # noqa: E402
from cloud_colorization.infrastructure.kdtree import KdTreeIndex  # noqa: E402
from cloud_colorization.infrastructure.open3d_adapter import (  # noqa: E402
    FlannIndex,
    export_colorized_cloud,
    read_open3d_cloud,
)
from exceptions.exceptions import StepPreconditionError  # noqa: E402
from pcdtools.synthetic import color_by_height, generate_wall_scan  # noqa: E402


@pytest.fixture
def colorized():
    points = generate_wall_scan(6, 5, spacing=0.25)
    result = ColorizedCloud(points)
    result.colors[:] = color_by_height(points)
    result.matched[:] = True
    return result


@pytest.mark.parametrize("suffix", [".ply", ".pcd"])
def test_export_then_load_as_colored_source(colorized, tmp_path, suffix):
    path = tmp_path / f"colorized{suffix}"
    export_colorized_cloud(colorized, path)
    cloud = FilesystemCloudSource().load_colored(paths=[path])
    assert len(cloud) == len(colorized)
    np.testing.assert_allclose(cloud.points, colorized.points, atol=1e-6)
    np.testing.assert_array_equal(cloud.colors, colorized.colors)


def test_export_rejects_text_extension(colorized, tmp_path):
    with pytest.raises(StepPreconditionError) as exc:
        export_colorized_cloud(colorized, tmp_path / "out.pts")
    assert exc.value.code == "UNSUPPORTED_FORMAT"


def test_missing_binary_source(tmp_path):
    with pytest.raises(StepPreconditionError) as exc:
        read_open3d_cloud(tmp_path / "missing.ply", PointCloud(has_color=True))
    assert exc.value.code == "SOURCE_NOT_READABLE"


def test_flann_agrees_with_kdtree():
    rng = np.random.default_rng(21)
    points = rng.uniform(-5.0, 5.0, size=(1500, 3))
    flann = FlannIndex(points)
    tree = KdTreeIndex(points)
    assert len(flann) == len(tree) == 1500
    for q in rng.uniform(-5.0, 5.0, size=(200, 3)):
        assert flann.nearest(q).sq_distance == pytest.approx(tree.nearest(q).sq_distance)


def test_empty_flann_index():
    assert FlannIndex(np.empty((0, 3))).nearest([0.0, 0.0, 0.0]) is None
