import numpy as np
import pytest


def test_image_source_information_and_components():
    from delayed_pipeline.stages import ImageSource
    data = np.zeros((5, 6, 2), dtype=np.uint8)
    src = ImageSource(data, spacing=(2, 3), origin=(1, 1), dimension=2)
    src.update_output_information()
    assert src.output.shape == (5, 6)
    assert src.output.geometry.spacing.tolist() == [2.0, 3.0]
    assert src.dimension == 2
    with pytest.raises(ValueError):
        ImageSource(np.zeros((4, 4)), dimension=3)


def test_image_source_set_data_marks_modified():
    from delayed_pipeline.stages import ImageSource
    src = ImageSource(np.zeros((4, 4)))
    assert np.all(src.finalize() == 0)
    src.set_data(np.ones((3, 5)))
    result = src.finalize()
    assert result.shape == (3, 5)
    assert np.all(result == 1)
    with pytest.raises(ValueError):
        src.set_data(np.ones(3))


def test_functor_threaded_chunks_match_serial():
    from delayed_pipeline.stages import FunctorStage, ImageSource
    from delayed_pipeline.region import Region
    data = np.random.RandomState(0).rand(23, 7)
    src = ImageSource(data)
    serial = FunctorStage(src, np.square)
    threaded = FunctorStage(src, np.square, num_workers=4)
    region = Region((3, 1), (17, 5))
    assert np.allclose(serial.finalize(region), threaded.finalize(region))
    assert np.allclose(threaded.finalize(region), data[3:20, 1:6] ** 2)


@pytest.mark.parametrize('kind', ['mean', 'median', 'gaussian'])
def test_neighborhood_subregion_matches_full_filter(kind):
    from scipy import ndimage
    from delayed_pipeline.stages import ImageSource, NeighborhoodStage
    from delayed_pipeline.region import Region
    data = np.random.RandomState(1).rand(20, 24)
    radius = 2
    if kind == 'mean':
        full = ndimage.uniform_filter(data, size=5, mode='nearest')
    elif kind == 'median':
        full = ndimage.median_filter(data, size=5, mode='nearest')
    else:
        full = ndimage.gaussian_filter(data, sigma=radius / 3.0, truncate=3.0,
                                       mode='nearest')
    stage = NeighborhoodStage(ImageSource(data), radius=radius, kind=kind)
    # Interior and border touching regions
    for region in [Region((5, 6), (4, 7)), Region((0, 0), (3, 3)),
                   Region((17, 20), (3, 4))]:
        part = stage.finalize(region)
        assert np.allclose(part, full[region.to_slices()])


def test_neighborhood_requests_padded_input():
    from delayed_pipeline.stages import FunctorStage, ImageSource, NeighborhoodStage
    from delayed_pipeline.region import Region
    src = ImageSource(np.zeros((30, 30)))
    mid = FunctorStage(src, np.abs)
    stage = NeighborhoodStage(mid, radius=(1, 3))
    stage.update(Region((10, 10), (5, 5)))
    assert mid.output.buffered_region == Region((9, 7), (7, 11))
    stage.update(Region((0, 28), (2, 2)))
    assert mid.output.buffered_region == Region((0, 25), (3, 5))


def test_neighborhood_rejects_bad_parameters():
    from delayed_pipeline.stages import ImageSource, NeighborhoodStage
    src = ImageSource(np.zeros((4, 4)))
    with pytest.raises(KeyError):
        NeighborhoodStage(src, kind='bilateral')
    with pytest.raises(ValueError):
        NeighborhoodStage(src, radius=-1)
    with pytest.raises(ValueError):
        NeighborhoodStage(src, radius=1.5)


def test_region_of_interest_crops_and_places():
    from delayed_pipeline.stages import ImageSource, RegionOfInterest
    from delayed_pipeline.region import Region
    data = np.arange(100).reshape(10, 10)
    src = ImageSource(data, spacing=(2, 3), origin=(1, 1))
    roi = RegionOfInterest(src, Region((7, -2), (5, 6)))
    result = roi.finalize()
    assert roi.output.shape == (3, 4)
    assert np.all(result == data[7:10, 0:4])
    assert roi.output.geometry.origin.tolist() == [15.0, 1.0]
    # Only the cropped part of the input was requested
    assert src.output.requested_region == Region((7, 0), (3, 4))


def test_region_of_interest_without_overlap_raises():
    from delayed_pipeline.exceptions import InsufficientInputError
    from delayed_pipeline.stages import ImageSource, RegionOfInterest
    from delayed_pipeline.region import Region
    src = ImageSource(np.zeros((10, 10)))
    roi = RegionOfInterest(src, Region((20, 20), (3, 3)))
    with pytest.raises(InsufficientInputError) as info:
        roi.update()
    assert info.value.stage is roi


def test_set_params_rejects_unknown_keys():
    from delayed_pipeline.stages import ImageSource, NeighborhoodStage
    stage = NeighborhoodStage(ImageSource(np.zeros((4, 4))))
    with pytest.raises(KeyError):
        stage.set_params(sigma=3)


def test_graph_introspection(capsys):
    from delayed_pipeline.demo import demo_pipeline
    final = demo_pipeline(rng=0)
    graph = final.as_graph()
    assert graph.number_of_nodes() == 4
    types = sorted(data['type'] for _, data in graph.nodes(data=True))
    assert types == ['FunctorStage', 'ImageSource', 'NeighborhoodStage',
                     'RegionOfInterest']
    leafs = list(final.leafs())
    assert len(leafs) == 1
    assert leafs[0].__class__.__name__ == 'ImageSource'

    nesting = final.nesting()
    assert nesting['type'] == 'RegionOfInterest'
    assert nesting['children'][0]['meta']['func'] == 'sqrt'

    final.print_graph(rich=False)
    captured = capsys.readouterr()
    assert 'NeighborhoodStage' in captured.out


def test_neighborhood_set_params_is_validated():
    from delayed_pipeline.stages import ImageSource, NeighborhoodStage
    stage = NeighborhoodStage(ImageSource(np.zeros((6, 6))), radius=1)
    before = stage.modified_time
    with pytest.raises(KeyError):
        stage.set_params(kind='bogus')
    with pytest.raises(ValueError):
        stage.set_params(radius=-2)
    with pytest.raises(ValueError):
        stage.set_params(kind='median', radius=0.5)
    assert stage.meta['kind'] == 'mean'
    assert stage.meta['radius'] == 1
    assert stage.modified_time == before

    stage.set_params(kind='median', radius=2)
    assert stage.finalize().shape == (6, 6)


def test_region_of_interest_set_params_coerces_region():
    from delayed_pipeline.region import Region
    from delayed_pipeline.stages import ImageSource, RegionOfInterest
    data = np.arange(64).reshape(8, 8)
    roi = RegionOfInterest(ImageSource(data), Region((0, 0), (2, 2)))
    roi.finalize()
    roi.set_params(region=((1, 1), (3, 3)))
    assert isinstance(roi.meta['region'], Region)
    assert np.all(roi.finalize() == data[1:4, 1:4])
    with pytest.raises(TypeError):
        roi.set_params(region=5)
