import numpy as np
import pytest


def _small_volume():
    from delayed_pipeline.demo import pyramid_test_volume
    return pyramid_test_volume(size=(32, 33, 12))


def test_level_layout_follows_schedule():
    from delayed_pipeline.pyramid import MultiResolutionPyramid
    src = _small_volume()
    pyramid = MultiResolutionPyramid(src, num_levels=4, starting_factors=[8, 4, 2])
    pyramid.update_output_information()
    in_geom = src.output.geometry
    in_region = src.output.largest_possible_region
    assert [out.shape for out in pyramid.outputs] == [
        (4, 8, 6), (8, 16, 12), (16, 33, 12), (32, 33, 12)]
    for factors, out in zip(pyramid.schedule, pyramid.outputs):
        assert np.allclose(out.geometry.spacing, in_geom.spacing * factors)
        assert np.allclose(out.geometry.direction, in_geom.direction)
        assert np.allclose(out.geometry.region_center(out.largest_possible_region),
                           in_geom.region_center(in_region))
    assert pyramid.output is pyramid.level_output(0)


def test_default_levels():
    from delayed_pipeline.pyramid import MultiResolutionPyramid
    from delayed_pipeline.stages import ImageSource
    pyramid = MultiResolutionPyramid(ImageSource(np.zeros((8, 8))))
    assert pyramid.num_levels == 2
    assert pyramid.schedule.tolist() == [[2, 2], [1, 1]]
    explicit = MultiResolutionPyramid(ImageSource(np.zeros((8, 8))),
                                      schedule=[[4, 2], [2, 2], [1, 1]])
    assert explicit.num_levels == 3
    assert len(explicit.outputs) == 3


def test_finest_level_reproduces_input():
    from delayed_pipeline.pyramid import MultiResolutionPyramid
    src = _small_volume()
    pyramid = MultiResolutionPyramid(src, num_levels=3)
    finest = pyramid.level_output(2)
    data = finest.finalize()
    assert np.allclose(data, src.data, atol=1e-3)
    # Requesting all of the finest level fills every level
    for out in pyramid.outputs:
        assert out.buffered_region == out.largest_possible_region


def test_subregion_matches_full_computation():
    from delayed_pipeline.pyramid import MultiResolutionPyramid
    from delayed_pipeline.region import Region
    full_pyramid = MultiResolutionPyramid(_small_volume(), num_levels=3)
    full_pyramid.level_output(2).update()

    part_pyramid = MultiResolutionPyramid(_small_volume(), num_levels=3)
    region = Region((3, 2, 1), (4, 5, 3))
    part = part_pyramid.level_output(1).finalize(region)
    full = full_pyramid.level_output(1).buffer
    assert np.allclose(part, full[region.to_slices()], atol=1e-5)

    # Every level received the corresponding part of the request
    coarse = part_pyramid.level_output(0)
    assert not coarse.buffered_region.is_empty()
    assert np.allclose(
        coarse.get_region_data(coarse.buffered_region),
        full_pyramid.level_output(0).get_region_data(coarse.buffered_region),
        atol=1e-5)


def test_center_of_mass_is_preserved():
    from delayed_pipeline.demo import gaussian_blob
    from delayed_pipeline.helpers import physical_center_of_mass
    from delayed_pipeline.pyramid import MultiResolutionPyramid
    spacing = np.array([0.5, 2.0])
    src = gaussian_blob((64, 48), spacing=spacing)
    pyramid = MultiResolutionPyramid(src, num_levels=3)
    pyramid.level_output(2).update()
    expected = physical_center_of_mass(src.finalize(), src.output.geometry)
    tolerance = 1e-3 * np.linalg.norm(spacing)
    for out in pyramid.outputs:
        got = physical_center_of_mass(out.buffer, out.geometry)
        assert np.allclose(got, expected, atol=tolerance)


def test_component_axes_are_resampled_independently():
    from delayed_pipeline.pyramid import MultiResolutionPyramid
    from delayed_pipeline.stages import ImageSource
    data = np.zeros((16, 16, 2))
    data[..., 0] = 1
    data[..., 1] = 5
    pyramid = MultiResolutionPyramid(ImageSource(data, dimension=2), num_levels=2)
    coarse = pyramid.level_output(0).finalize()
    assert coarse.shape == (8, 8, 2)
    assert np.allclose(coarse[..., 0], 1)
    assert np.allclose(coarse[..., 1], 5)


def test_schedule_changes_are_validated():
    from delayed_pipeline.exceptions import InvalidScheduleError
    from delayed_pipeline.pyramid import MultiResolutionPyramid
    src = _small_volume()
    pyramid = MultiResolutionPyramid(src, num_levels=2)
    with pytest.raises(InvalidScheduleError):
        pyramid.set_schedule([[4, 4, 4], [2, 2, 2], [1, 1, 1]])
    assert pyramid.schedule.tolist() == [[2, 2, 2], [1, 1, 1]]

    pyramid.set_schedule([[3, 3, 1], [1, 1, 1]])
    pyramid.update_output_information()
    assert pyramid.level_output(0).shape == (10, 11, 12)


def test_changing_levels_updates_outputs():
    from delayed_pipeline.pyramid import MultiResolutionPyramid
    src = _small_volume()
    pyramid = MultiResolutionPyramid(src, num_levels=2)
    first = pyramid.level_output(0)
    first.update()
    executions = pyramid.num_executions

    pyramid.set_num_levels(3)
    assert len(pyramid.outputs) == 3
    assert pyramid.level_output(0) is first
    first.update()
    assert pyramid.num_executions == executions + 1
    assert first.shape == (8, 8, 3)

    pyramid.set_params(starting_factors=[2, 2, 1])
    pyramid.update_output_information()
    assert first.shape == (16, 16, 12)
    with pytest.raises(KeyError):
        pyramid.set_params(sigma=2)


def test_cached_levels_are_not_recomputed():
    from delayed_pipeline.executor import PipelineExecutor
    from delayed_pipeline.pyramid import MultiResolutionPyramid
    pyramid = MultiResolutionPyramid(_small_volume(), num_levels=3)
    executor = PipelineExecutor()
    executor.request_output(pyramid.level_output(2))
    for level in range(3):
        executor.request_output(pyramid.level_output(level))
        assert executor.executed == []
    assert pyramid.num_executions == 1
