import numpy as np
import pytest


def test_stripe_texture_features():
    from delayed_pipeline.stages import ImageSource
    from delayed_pipeline.statistics import CooccurrenceMatrix
    from delayed_pipeline.statistics import HistogramToTextureFeatures
    stripes = np.tile([0, 0, 1, 1], (8, 2)).astype(float)
    glcm = CooccurrenceMatrix(ImageSource(stripes), offsets=[(0, 1)], num_bins=2,
                              pixel_range=(0, 1))
    texture = HistogramToTextureFeatures(glcm)
    features = texture.features
    assert np.isclose(features['Energy'], 25 / 98)
    assert np.isclose(features['Inertia'], 3 / 7)
    assert np.isclose(features['InverseDifferenceMoment'], 11 / 14)
    assert np.isclose(features['Correlation'], 1 / 7)
    assert np.isclose(features['ClusterShade'], 0)
    assert np.isclose(features['ClusterProminence'], 4 / 7)
    g = np.array([[32, 24], [24, 32]]) / 112
    assert np.isclose(features['Entropy'], -(g * np.log2(g)).sum())
    with pytest.raises(KeyError):
        texture.get_feature('Contrast')


def test_histogram_is_symmetric_with_default_offsets():
    from delayed_pipeline.stages import ImageSource
    from delayed_pipeline.statistics import CooccurrenceMatrix
    data = np.random.RandomState(0).randint(0, 255, size=(16, 12))
    glcm = CooccurrenceMatrix(ImageSource(data), num_bins=4)
    hist = glcm.finalize()
    assert hist.shape == (4, 4)
    assert np.all(hist == hist.T)
    # Two unit offsets, each pair counted in both directions
    assert hist.sum() == 2 * ((15 * 12) + (16 * 11))
    assert glcm.output.dimension == 0


def test_values_outside_pixel_range_are_ignored():
    from delayed_pipeline.stages import ImageSource
    from delayed_pipeline.statistics import CooccurrenceMatrix
    data = np.array([[0.0, 5.0, 10.0]])
    glcm = CooccurrenceMatrix(ImageSource(data), num_bins=2, pixel_range=(0, 5))
    assert glcm.finalize().tolist() == [[0.0, 1.0], [1.0, 0.0]]


def test_constant_image_features():
    from delayed_pipeline.stages import ImageSource
    from delayed_pipeline.statistics import CooccurrenceMatrix
    from delayed_pipeline.statistics import HistogramToTextureFeatures
    glcm = CooccurrenceMatrix(ImageSource(np.full((6, 6), 3.0)), num_bins=8)
    features = HistogramToTextureFeatures(glcm).features
    assert features['Energy'] == 1.0
    assert features['Entropy'] == 0.0
    assert features['Inertia'] == 0.0
    assert features['Correlation'] == 0.0
    assert features['InverseDifferenceMoment'] == 1.0


def test_empty_histogram_warns():
    from delayed_pipeline.stages import ImageSource
    from delayed_pipeline.statistics import FEATURE_NAMES
    from delayed_pipeline.statistics import HistogramToTextureFeatures
    texture = HistogramToTextureFeatures(ImageSource(np.zeros((4, 4))))
    with pytest.warns(UserWarning):
        values = texture.finalize()
    assert values.shape == (len(FEATURE_NAMES),)
    assert np.all(values == 0)


def test_features_follow_input_changes():
    from delayed_pipeline.stages import ImageSource
    from delayed_pipeline.statistics import CooccurrenceMatrix
    from delayed_pipeline.statistics import HistogramToTextureFeatures
    src = ImageSource(np.tile([0, 1], (6, 3)).astype(float))
    texture = HistogramToTextureFeatures(
        CooccurrenceMatrix(src, offsets=[(0, 1)], num_bins=2, pixel_range=(0, 1)))
    assert texture.get_feature('Inertia') == 1.0
    src.set_data(np.ones((6, 6)))
    assert texture.get_feature('Inertia') == 0.0


def test_unit_offsets():
    from delayed_pipeline.statistics import unit_offsets
    assert unit_offsets(1) == [(1,)]
    offsets = unit_offsets(3)
    assert len(offsets) == 13
    assert len(set(offsets)) == 13
    for off in offsets:
        assert tuple(-v for v in off) not in offsets
