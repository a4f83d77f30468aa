import pytest


def test_region_basic_properties():
    from delayed_pipeline.region import Region
    region = Region((1, 2, 3), (4, 5, 6))
    assert region.dimension == 3
    assert region.upper == (5, 7, 9)
    assert region.numel == 120
    assert not region.is_empty()
    assert Region((0, 0), (3, 0)).is_empty()


def test_negative_size_is_rejected():
    from delayed_pipeline.region import Region
    with pytest.raises(ValueError):
        Region((0, 0), (3, -1))
    with pytest.raises(ValueError):
        Region((0, 0), (3,))


def test_zero_dimensional_region_is_an_aggregate():
    from delayed_pipeline.region import Region
    region = Region((), ())
    assert not region.is_empty()
    assert region.numel == 1
    assert region.contains(Region((), ()))
    assert region.to_slices() == ()


def test_contains_is_elementwise():
    from delayed_pipeline.region import Region
    outer = Region((0, 0), (10, 10))
    assert outer.contains(outer)
    assert outer.contains(Region((2, 3), (8, 7)))
    assert not outer.contains(Region((2, 3), (9, 7)))
    assert not outer.contains(Region((-1, 0), (1, 1)))
    # empty regions are contained anywhere
    assert outer.contains(Region((100, 100), (0, 5)))


def test_intersection_and_union():
    from delayed_pipeline.region import Region
    a = Region((0, 0), (10, 10))
    b = Region((5, -5), (10, 10))
    assert a.intersection(b) == Region((5, 0), (5, 5))
    assert a.crop(b) == a.intersection(b)
    assert a.union(b) == Region((0, -5), (15, 15))
    assert a.intersects(b)

    far = Region((20, 20), (3, 3))
    assert a.intersection(far).is_empty()
    assert not a.intersects(far)
    assert a.union(Region((50, 50), (0, 0))) == a


def test_pad_and_shift():
    from delayed_pipeline.region import Region
    region = Region((4, 4), (2, 3))
    assert region.pad(1) == Region((3, 3), (4, 5))
    assert region.pad((0, 2)) == Region((4, 2), (2, 7))
    assert region.shift((-4, 1)) == Region((0, 5), (2, 3))
    with pytest.raises(ValueError):
        region.pad((1, 2, 3))


def test_slices_roundtrip_relative_to_buffer():
    import numpy as np
    from delayed_pipeline.region import Region
    data = np.arange(100).reshape(10, 10)
    buffered = Region((3, 2), (5, 6))
    block = data[buffered.to_slices()]
    sub = Region((4, 4), (2, 2))
    assert np.all(block[sub.to_slices(relative_to=buffered)] == data[sub.to_slices()])
    assert Region.from_slices(sub.to_slices()) == sub


def test_coerce_variants():
    from delayed_pipeline.region import Region
    expected = Region((1, 2), (3, 4))
    assert Region.coerce(expected) is expected
    assert Region.coerce({'index': [1, 2], 'size': [3, 4]}) == expected
    assert Region.coerce(((1, 2), (3, 4))) == expected
    assert Region.coerce((slice(1, 4), slice(2, 6))) == expected
    with pytest.raises(TypeError):
        Region.coerce(3)


def test_regions_are_hashable_and_comparable():
    from delayed_pipeline.region import Region
    a = Region((0, 1), (2, 3))
    b = Region([0, 1], [2, 3])
    assert a == b
    assert len({a, b}) == 1
    assert a != Region((0, 1), (2, 4))


def test_mismatched_dimensions_raise():
    from delayed_pipeline.region import Region
    with pytest.raises(ValueError):
        Region((0, 0), (1, 1)).contains(Region((0,), (1,)))


def test_continuous_bounds_cover_endpoints():
    from delayed_pipeline.region import Region
    region = Region.from_continuous_bounds([1.0, 2.5], [3.0, 2.5])
    assert region == Region((1, 2), (3, 2))
    # Values within floating point noise of an integer snap to it
    region = Region.from_continuous_bounds([2.0000000001], [4.9999999999])
    assert region == Region((2,), (4,))
