import numpy as np
import pytest


def test_center_of_mass_uses_geometry():
    from delayed_pipeline.geometry import PhysicalGeometry
    from delayed_pipeline.helpers import physical_center_of_mass
    data = np.zeros((4, 4, 4))
    data[1, 2, 3] = 1
    data[3, 2, 3] = 1
    geom = PhysicalGeometry(origin=(1, 2, 3), spacing=(2, 1, 1),
                            direction=[[0, -1, 0], [0, 0, 1], [1, 0, 0]])
    got = physical_center_of_mass(data, geom)
    assert np.allclose(got, geom.index_to_point([2, 2, 3]))
    with pytest.raises(ValueError):
        physical_center_of_mass(np.zeros((3, 3)), PhysicalGeometry.identity(2))


def test_chunk_bounds_cover_range():
    from delayed_pipeline.helpers import chunk_bounds
    for length, num in [(10, 3), (7, 7), (3, 10), (1, 4), (100, 6)]:
        bounds = chunk_bounds(length, num)
        assert bounds[0][0] == 0
        assert bounds[-1][1] == length
        assert all(a < b for a, b in bounds)
        assert all(b == c for (_, b), (c, _) in zip(bounds, bounds[1:]))
        assert len(bounds) == min(length, num)


def test_pyramid_test_volume_layout():
    from delayed_pipeline.demo import pyramid_test_volume
    src = pyramid_test_volume(size=(20, 22, 8))
    src.update_output_information()
    geom = src.output.geometry
    assert src.output.shape == (20, 22, 8)
    assert geom.spacing.tolist() == [0.5, 2.7, 7.5]
    # The ball near the center is the brightest structure
    data = src.finalize()
    assert data.max() == 400
    assert data.dtype == np.float32


def test_demo_pipeline_is_deterministic():
    from delayed_pipeline.demo import demo_pipeline
    a = demo_pipeline(rng=1).finalize()
    b = demo_pipeline(rng=1).finalize()
    assert np.all(a == b)
    assert a.shape == (16, 16)
