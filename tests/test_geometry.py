import numpy as np
import pytest


def test_index_point_roundtrip_with_permuted_direction():
    from delayed_pipeline.geometry import PhysicalGeometry
    direction = [[0, -1, 0], [0, 0, 1], [1, 0, 0]]
    geom = PhysicalGeometry(origin=(-32.0, -178.2, -180.0),
                            spacing=(0.5, 2.7, 7.5), direction=direction)
    rng = np.random.RandomState(0)
    index = rng.rand(20, 3) * 100
    points = geom.index_to_point(index)
    assert points.shape == (20, 3)
    assert np.allclose(geom.point_to_index(points), index)


def test_index_to_point_single_vector():
    from delayed_pipeline.geometry import PhysicalGeometry
    geom = PhysicalGeometry(origin=(1, 1), spacing=(2, 3))
    assert np.allclose(geom.index_to_point([1, 2]), [3, 7])


def test_invalid_geometry():
    from delayed_pipeline.geometry import PhysicalGeometry
    with pytest.raises(ValueError):
        PhysicalGeometry(spacing=(1, 0))
    with pytest.raises(ValueError):
        PhysicalGeometry(spacing=(1, -1))
    with pytest.raises(ValueError):
        PhysicalGeometry(direction=[[1, 0], [2, 0]])
    with pytest.raises(ValueError):
        PhysicalGeometry()


def test_region_center_and_copy():
    from delayed_pipeline.geometry import PhysicalGeometry
    from delayed_pipeline.region import Region
    geom = PhysicalGeometry(origin=(0, 10), spacing=(1, 2))
    center = geom.region_center(Region((0, 0), (5, 4)))
    assert np.allclose(center, [2.0, 13.0])

    other = geom.copy()
    assert other.is_close(geom)
    other.origin[0] = 5
    assert not other.is_close(geom)


def test_coerce():
    from delayed_pipeline.geometry import PhysicalGeometry
    ident = PhysicalGeometry.coerce(None, dimension=3)
    assert ident.is_close(PhysicalGeometry.identity(3))
    geom = PhysicalGeometry.coerce({'spacing': [2, 2]})
    assert geom.dimension == 2
    assert PhysicalGeometry.coerce(geom) is geom
    with pytest.raises(TypeError):
        PhysicalGeometry.coerce('nope')
