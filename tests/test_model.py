import math

import numpy as np
import pytest

from cloud_colorization.domain.model import (
    BLACK,
    Color,
    ColorizationSettings,
    ColorizedCloud,
    NO_NEIGHBOR_SQ_DISTANCE,
    PointCloud,
    PointRecord,
)


def test_color_from_hex():
    assert Color.from_hex("ff8000") == Color(255, 128, 0)
    assert Color.from_hex("#0a0b0c").as_tuple() == (10, 11, 12)
    assert Color.from_hex("0x000001") == Color(0, 0, 1)
    assert Color.from_hex("0") == BLACK


@pytest.mark.parametrize("bad", ["", "zz", "1234567", "#"])
def test_color_from_hex_rejects_garbage(bad):
    with pytest.raises(ValueError):
        Color.from_hex(bad)


def test_color_channel_range():
    with pytest.raises(ValueError):
        Color(256, 0, 0)
    with pytest.raises(ValueError):
        Color(0, -1, 0)


def test_point_cloud_grows_in_chunks_and_shrinks():
    cloud = PointCloud(has_color=False, growth_chunk=4)
    for i in range(5):
        cloud.append(float(i), 0.0, 0.0)
    assert len(cloud) == 5
    assert cloud.capacity == 8
    cloud.shrink_to_fit()
    assert cloud.capacity == 5
    assert cloud.points[:, 0].tolist() == [0.0, 1.0, 2.0, 3.0, 4.0]


def test_extend_reserves_whole_chunks():
    cloud = PointCloud(has_color=False, growth_chunk=10)
    cloud.extend(np.zeros((25, 3)))
    assert len(cloud) == 25
    assert cloud.capacity == 30


def test_colored_cloud_requires_colors():
    cloud = PointCloud(has_color=True)
    with pytest.raises(ValueError):
        cloud.append(1.0, 2.0, 3.0)
    with pytest.raises(ValueError):
        cloud.extend(np.zeros((2, 3)))
    with pytest.raises(ValueError):
        cloud.extend(np.zeros((2, 3)), np.zeros((3, 3), dtype=np.uint8))


def test_uncolored_cloud_has_no_colors():
    cloud = PointCloud.from_arrays(np.array([[1.0, 2.0, 3.0]]))
    assert cloud.colors is None
    assert cloud[0] == PointRecord(1.0, 2.0, 3.0, None)


def test_records_keep_insertion_order_and_color():
    cloud = PointCloud(has_color=True, growth_chunk=2)
    cloud.append(1.0, 2.0, 3.0, (1, 2, 3))
    cloud.append(4.0, 5.0, 6.0, (4, 5, 6))
    cloud.append(7.0, 8.0, 9.0, (7, 8, 9))
    records = list(cloud)
    assert [r.x for r in records] == [1.0, 4.0, 7.0]
    assert records[-1].color == Color(7, 8, 9)
    assert cloud[-1] == records[-1]
    with pytest.raises(IndexError):
        cloud[3]


def test_frozen_cloud_is_read_only():
    cloud = PointCloud.from_arrays(np.zeros((3, 3)), np.zeros((3, 3), dtype=np.uint8))
    cloud.freeze()
    assert cloud.frozen
    assert not cloud.points.flags.writeable
    assert not cloud.colors.flags.writeable
    with pytest.raises(RuntimeError):
        cloud.append(0.0, 0.0, 0.0, (0, 0, 0))


def test_settings_square_the_distance():
    assert ColorizationSettings.from_max_distance(2.0).max_sq_distance == 4.0
    assert math.isinf(ColorizationSettings.from_max_distance(None).max_sq_distance)
    assert ColorizationSettings().default_color == BLACK


@pytest.mark.parametrize(
    "kwargs",
    [{"max_sq_distance": -1.0}, {"workers": 0}, {"chunk_size": 0}],
)
def test_settings_validation(kwargs):
    with pytest.raises(ValueError):
        ColorizationSettings(**kwargs)


def test_colorized_cloud_defaults_to_unmatched():
    result = ColorizedCloud(np.array([[1.0, 2.0, 3.0]]))
    record = result[0]
    assert record.sq_distance == NO_NEIGHBOR_SQ_DISTANCE
    assert record.matched is False
    assert record.color == BLACK
    assert result.matched_count == 0
