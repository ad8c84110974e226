import numpy as np
import pytest

from cloud_colorization.domain.model import ColorizedCloud, PointCloud
from cloud_colorization.infrastructure.filesystem import FilesystemCloudSource, FilesystemResultSink
from cloud_colorization.infrastructure.pts_io import (
    ColumnLayout,
    format_result_lines,
    read_pts,
    write_pts_result,
)
from exceptions.exceptions import StepPreconditionError
from pcdtools.synthetic import write_pts


@pytest.mark.parametrize(
    "tokens, has_color, dummies",
    [(3, False, 0), (4, False, 1), (5, False, 2), (6, True, 0), (7, True, 1), (9, True, 3)],
)
def test_layout_inference(tokens, has_color, dummies):
    layout = ColumnLayout.infer(tokens)
    assert layout.has_color is has_color
    assert layout.dummy_count == dummies


def test_layout_needs_three_columns():
    with pytest.raises(ValueError):
        ColumnLayout.infer(2)


def test_three_columns_load_without_color(write_text):
    path = write_text("laser.pts", "1 2 3\n4 5 6\n")
    cloud = PointCloud(has_color=False)
    stats = read_pts(path, cloud)
    assert stats.loaded == 2
    assert stats.layout.has_color is False
    assert cloud.colors is None
    assert cloud.points.tolist() == [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]


def test_six_columns_load_with_color(write_text):
    path = write_text("kinect.pts", "1 2 3 10 20 30\n4 5 6 40 50 60\n")
    cloud = PointCloud(has_color=True)
    read_pts(path, cloud)
    assert cloud.colors.tolist() == [[10, 20, 30], [40, 50, 60]]


def test_dummy_columns_are_dropped(write_text):
    path = write_text("kinect.pts", "1.5 2.5 3.5 0.7 99 10 20 30\n")
    cloud = PointCloud(has_color=True)
    stats = read_pts(path, cloud)
    assert stats.layout.dummy_count == 2
    assert cloud.points.tolist() == [[1.5, 2.5, 3.5]]
    assert cloud.colors.tolist() == [[10, 20, 30]]


def test_dummy_columns_without_color(write_text):
    path = write_text("laser.pts", "1 2 3 0.25\n4 5 6 0.75\n")
    cloud = PointCloud(has_color=False)
    stats = read_pts(path, cloud)
    assert stats.layout.dummy_count == 1
    assert cloud.points[:, 2].tolist() == [3.0, 6.0]


def test_malformed_records_are_skipped(write_text):
    content = (
        "1 2 3 10 20 30\n"
        "foo 2 3 10 20 30\n"      # bad coordinate
        "1 2\n"                   # short record
        "4 5 6 40 50 60\n"
        "7 8 9 10 20 300\n"       # channel out of range
        "nan 8 9 10 20 30\n"      # not finite
        "7 8 9 10 20"             # truncated last line
    )
    path = write_text("kinect.pts", content)
    cloud = PointCloud(has_color=True)
    stats = read_pts(path, cloud)
    assert stats.loaded == 2
    assert stats.skipped == 5
    assert cloud.points[:, 0].tolist() == [1.0, 4.0]


def test_header_and_blank_lines_are_ignored(write_text):
    path = write_text("scan.pts", "\n2\n1 2 3 10 20 30\n\n4 5 6 40 50 60\n")
    cloud = PointCloud(has_color=True)
    stats = read_pts(path, cloud)
    assert stats.loaded == 2
    assert stats.skipped == 0


def test_float_channels_are_accepted_when_integral(write_text):
    path = write_text("kinect.pts", "1 2 3 255.0 0 12\n1 2 3 1.5 0 12\n")
    cloud = PointCloud(has_color=True)
    stats = read_pts(path, cloud)
    assert cloud.colors.tolist() == [[255, 0, 12]]
    assert stats.skipped == 1


def test_colored_destination_rejects_uncolored_source(write_text):
    path = write_text("laser.pts", "1 2 3\n")
    with pytest.raises(StepPreconditionError) as exc:
        read_pts(path, PointCloud(has_color=True))
    assert exc.value.code == "SOURCE_WITHOUT_COLOR"


def test_target_drops_source_colors(write_text):
    path = write_text("laser.pts", "1 2 3 10 20 30\n")
    cloud = PointCloud(has_color=False)
    read_pts(path, cloud)
    assert len(cloud) == 1
    assert cloud.colors is None


def test_missing_source_is_fatal(tmp_path):
    with pytest.raises(StepPreconditionError) as exc:
        read_pts(tmp_path / "nope.pts", PointCloud(has_color=False))
    assert exc.value.code == "SOURCE_NOT_READABLE"


def test_empty_source_gives_empty_cloud(write_text):
    path = write_text("empty.pts", "")
    cloud = PointCloud(has_color=True)
    stats = read_pts(path, cloud)
    assert stats.layout is None
    assert len(cloud) == 0


def test_source_truncates_to_exact_size(tmp_path):
    points = np.arange(30, dtype=float).reshape(10, 3)
    path = write_pts(tmp_path / "laser.pts", points)
    source = FilesystemCloudSource(growth_chunk=4)
    cloud = source.load_target(path=path)
    assert len(cloud) == 10
    assert cloud.capacity == 10
    np.testing.assert_array_equal(cloud.points, points)


def test_colored_sources_are_concatenated_in_order(tmp_path):
    a = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
    b = np.array([[5.0, 5.0, 5.0]])
    path_a = write_pts(tmp_path / "a.pts", a, np.array([[1, 1, 1], [2, 2, 2]]))
    path_b = write_pts(tmp_path / "b.pts", b, np.array([[3, 3, 3]]), dummy_columns=2)
    source = FilesystemCloudSource()
    cloud = source.load_colored(paths=[path_a, path_b])
    assert cloud.points.tolist() == [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [5.0, 5.0, 5.0]]
    assert cloud.colors[:, 0].tolist() == [1, 2, 3]
    assert [s.loaded for s in source.stats] == [2, 1]


def _result(points, sq, matched, colors):
    result = ColorizedCloud(np.asarray(points, dtype=float))
    result.sq_distances[:] = sq
    result.matched[:] = matched
    result.colors[:] = colors
    return result


def test_compact_output_lines():
    result = _result(
        [[0.0, 0.0, 0.0], [1.5, -2.0, 1234567.125]],
        [0.25, 3.0],
        [True, False],
        [[10, 20, 30], [0, 0, 0]],
    )
    assert list(format_result_lines(result)) == [
        "0 0 0 0.25 1 10 20 30\n",
        "1.5 -2 1234567.125 3 0 0 0 0\n",
    ]


def test_fixed_output_lines():
    result = _result([[0.0, 0.0, 0.0]], [0.25], [True], [[10, 20, 30]])
    line = next(format_result_lines(result, "fixed"))
    assert line == "   0.000000    0.000000    0.000000       0.250000 1  10  20  30\n"
    assert line.split() == ["0.000000", "0.000000", "0.000000", "0.250000", "1", "10", "20", "30"]


def test_write_result_replaces_output_atomically(tmp_path):
    out = tmp_path / "out.pts"
    out.write_text("stale\n")
    result = _result([[0.0, 0.0, 0.0]], [0.25], [True], [[10, 20, 30]])
    write_pts_result(result, out)
    assert out.read_text() == "0 0 0 0.25 1 10 20 30\n"
    assert not (tmp_path / "out.pts.part").exists()


def test_unwritable_output_is_fatal(tmp_path):
    result = _result([[0.0, 0.0, 0.0]], [0.25], [True], [[10, 20, 30]])
    with pytest.raises(StepPreconditionError) as exc:
        write_pts_result(result, tmp_path / "missing_dir" / "out.pts")
    assert exc.value.code == "OUTPUT_NOT_WRITABLE"


def test_unknown_float_format(tmp_path):
    result = _result([[0.0, 0.0, 0.0]], [0.25], [True], [[10, 20, 30]])
    with pytest.raises(ValueError):
        write_pts_result(result, tmp_path / "out.pts", float_format="scientific")
    assert not (tmp_path / "out.pts").exists()


def test_failed_export_leaves_no_main_output(tmp_path, monkeypatch):
    import cloud_colorization.infrastructure.filesystem as filesystem

    def _fail(result, path):
        raise StepPreconditionError("OUTPUT_NOT_WRITABLE", "disk full")

    monkeypatch.setattr(filesystem, "export_colorized_cloud", _fail)
    out = tmp_path / "out.pts"
    sink = FilesystemResultSink(export_cloud=tmp_path / "colorized.ply")
    with pytest.raises(StepPreconditionError):
        sink.write(result=_result([[0.0, 0.0, 0.0]], [0.25], [True], [[10, 20, 30]]), path=out)
    assert not out.exists()


def test_failed_main_output_removes_export(tmp_path, monkeypatch):
    import cloud_colorization.infrastructure.filesystem as filesystem

    monkeypatch.setattr(filesystem, "export_colorized_cloud", lambda result, path: path.write_text("ply\n"))
    export = tmp_path / "colorized.ply"
    sink = FilesystemResultSink(export_cloud=export)
    with pytest.raises(StepPreconditionError):
        sink.write(
            result=_result([[0.0, 0.0, 0.0]], [0.25], [True], [[10, 20, 30]]),
            path=tmp_path / "missing_dir" / "out.pts",
        )
    assert not export.exists()
