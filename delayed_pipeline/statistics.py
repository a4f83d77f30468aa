"""
Grey level co-occurrence statistics.

Both stages are aggregations: they need their whole input and produce a
zero dimensional output, whose single "voxel" holds the histogram or the
feature vector.

Example:
    >>> from delayed_pipeline.statistics import *  # NOQA
    >>> from delayed_pipeline.stages import ImageSource
    >>> import numpy as np
    >>> stripes = np.tile([0, 0, 1, 1], (8, 2)).astype(float)
    >>> src = ImageSource(stripes)
    >>> glcm = CooccurrenceMatrix(src, offsets=[(0, 1)], num_bins=2,
    >>>                           pixel_range=(0, 1))
    >>> glcm.finalize().tolist()
    [[32.0, 24.0], [24.0, 32.0]]
    >>> texture = HistogramToTextureFeatures(glcm)
    >>> round(texture.get_feature('Inertia'), 4)
    0.4286
    >>> sorted(texture.features) == sorted(FEATURE_NAMES)
    True
"""
import warnings
import itertools as it
import numpy as np
from delayed_pipeline.geometry import PhysicalGeometry
from delayed_pipeline.region import Region
from delayed_pipeline.stage_base import USE_SLOTS
from delayed_pipeline.stage_base import UnaryStage

FEATURE_NAMES = (
    'Energy',
    'Entropy',
    'Correlation',
    'InverseDifferenceMoment',
    'Inertia',
    'ClusterShade',
    'ClusterProminence',
    'HaralickCorrelation',
)


class _AggregateStage(UnaryStage):
    """
    Shared propagation for stages that summarize their whole input into a
    zero dimensional output.
    """
    if USE_SLOTS:
        __slots__ = ()

    def __init__(self, input):
        super().__init__(input, dimension=0)

    def __nice__(self):
        return '{}'.format(self.input.shape)

    def generate_output_information(self):
        self.output.set_information(Region((), ()), PhysicalGeometry.identity(0))

    def generate_input_requested_region(self):
        inp = self.input
        inp.requested_region = inp.largest_possible_region


class CooccurrenceMatrix(_AggregateStage):
    """
    Symmetric grey level co-occurrence histogram of an image.

    Voxel values are quantized into ``num_bins`` equal bins over
    ``pixel_range``. Voxels outside the range are ignored. For every offset
    ``d`` and every voxel pair ``(p, p + d)`` inside the image, both
    ``(bin(p), bin(p + d))`` and ``(bin(p + d), bin(p))`` are counted.

    Args:
        input (ProcessingStage | DataContainer): scalar image
        offsets (None | List[Tuple[int, ...]]):
            pair offsets in index space. Defaults to a unit step along
            every axis.
        num_bins (int): histogram bins per axis
        pixel_range (None | Tuple[float, float]):
            value range to quantize. Defaults to the extrema of the input.
    """
    if USE_SLOTS:
        __slots__ = ()

    def __init__(self, input, offsets=None, num_bins=8, pixel_range=None):
        super().__init__(input)
        dimension = self.input.dimension
        if offsets is None:
            offsets = [tuple(int(a == b) for b in range(dimension))
                       for a in range(dimension)]
        offsets = [tuple(int(v) for v in off) for off in offsets]
        for off in offsets:
            if len(off) != dimension:
                raise ValueError('offset {} does not have {} components'.format(
                    off, dimension))
        if int(num_bins) < 1:
            raise ValueError('num_bins must be positive')
        self.meta['offsets'] = offsets
        self.meta['num_bins'] = int(num_bins)
        self.meta['pixel_range'] = pixel_range

    def quantize(self, data):
        """
        Returns:
            ndarray: bin indexes, -1 for voxels outside the pixel range
        """
        num_bins = self.meta['num_bins']
        pixel_range = self.meta['pixel_range']
        data = np.asarray(data, dtype=float)
        if pixel_range is None:
            low, high = float(np.nanmin(data)), float(np.nanmax(data))
        else:
            low, high = map(float, pixel_range)
        if high <= low:
            bins = np.zeros(data.shape, dtype=np.int64)
        else:
            scaled = (data - low) / (high - low) * num_bins
            bins = np.minimum(np.floor(scaled), num_bins - 1).astype(np.int64)
        inside = (data >= low) & (data <= high)
        bins[~inside] = -1
        return bins

    def generate_data(self):
        num_bins = self.meta['num_bins']
        bins = self.quantize(self.input_data())
        hist = np.zeros((num_bins, num_bins), dtype=float)
        offsets = self.meta['offsets']
        for idx, off in enumerate(offsets, start=1):
            first = []
            second = []
            for delta, dim_len in zip(off, bins.shape):
                if delta >= 0:
                    first.append(slice(0, max(dim_len - delta, 0)))
                    second.append(slice(delta, dim_len))
                else:
                    first.append(slice(-delta, dim_len))
                    second.append(slice(0, max(dim_len + delta, 0)))
            a = bins[tuple(first)].ravel()
            b = bins[tuple(second)].ravel()
            valid = (a >= 0) & (b >= 0)
            a, b = a[valid], b[valid]
            np.add.at(hist, (a, b), 1)
            np.add.at(hist, (b, a), 1)
            self.update_progress(idx / len(offsets))
        self.output.set_buffer(self.output.requested_region, hist)


class HistogramToTextureFeatures(_AggregateStage):
    """
    Texture features of a co-occurrence histogram.

    The histogram is normalized to sum to one, giving ``g(i, j)``. With
    ``mu = sum(i * g)`` and ``sigma2 = sum((i - mu) ** 2 * g)``:

        * Energy: ``sum(g ** 2)``
        * Entropy: ``-sum(g * log2(g))`` over nonzero cells
        * Correlation: ``sum((i - mu) * (j - mu) * g) / sigma2``
        * InverseDifferenceMoment: ``sum(g / (1 + (i - j) ** 2))``
        * Inertia: ``sum((i - j) ** 2 * g)``
        * ClusterShade: ``sum(((i - mu) + (j - mu)) ** 3 * g)``
        * ClusterProminence: ``sum(((i - mu) + (j - mu)) ** 4 * g)``
        * HaralickCorrelation: ``(sum(i * j * g) - mu_t ** 2) / sigma_t ** 2``
          where ``mu_t`` and ``sigma_t ** 2`` are the mean and variance of the
          row sums.

    Correlations with a zero denominator are reported as 0. The output buffer
    holds the features in the order of :data:`FEATURE_NAMES`.

    Args:
        input (CooccurrenceMatrix | DataContainer): a square histogram
    """
    if USE_SLOTS:
        __slots__ = ()

    def generate_data(self):
        hist = np.asarray(self.input_data(), dtype=float)
        if hist.ndim != 2 or hist.shape[0] != hist.shape[1]:
            raise ValueError('expected a square histogram, got shape {}'.format(hist.shape))
        total = hist.sum()
        if total <= 0:
            warnings.warn('co-occurrence histogram is empty, texture features are zero')
            values = np.zeros(len(FEATURE_NAMES))
        else:
            values = _texture_features(hist / total)
        self.update_progress(1.0)
        self.output.set_buffer(self.output.requested_region, values)

    @property
    def features(self):
        """
        Update and return every feature.

        Returns:
            Dict[str, float]
        """
        values = self.finalize()
        return dict(zip(FEATURE_NAMES, map(float, values)))

    def get_feature(self, name):
        """
        Args:
            name (str): one of :data:`FEATURE_NAMES`

        Returns:
            float
        """
        if name not in FEATURE_NAMES:
            raise KeyError('Unknown texture feature {!r}'.format(name))
        return self.features[name]


def _texture_features(g):
    n = len(g)
    i, j = np.meshgrid(np.arange(n), np.arange(n), indexing='ij')
    mu = (i * g).sum()
    sigma2 = (((i - mu) ** 2) * g).sum()

    energy = (g ** 2).sum()
    nonzero = g[g > 0]
    entropy = -(nonzero * np.log2(nonzero)).sum()
    correlation = _safe_div((((i - mu) * (j - mu)) * g).sum(), sigma2)
    idm = (g / (1.0 + (i - j) ** 2)).sum()
    inertia = (((i - j) ** 2) * g).sum()
    spread = (i - mu) + (j - mu)
    shade = ((spread ** 3) * g).sum()
    prominence = ((spread ** 4) * g).sum()

    marginal = g.sum(axis=1)
    mu_t = marginal.mean()
    sigma2_t = marginal.var()
    haralick = _safe_div((i * j * g).sum() - mu_t ** 2, sigma2_t)

    return np.array([energy, entropy, correlation, idm, inertia, shade,
                     prominence, haralick])


def _safe_div(num, den):
    if den <= 0:
        return 0.0
    return num / den


def unit_offsets(dimension):
    """
    All offsets with entries in ``{-1, 0, 1}`` whose first nonzero entry is
    positive, i.e. one offset per undirected neighbor direction.

    Example:
        >>> from delayed_pipeline.statistics import unit_offsets
        >>> unit_offsets(2)
        [(0, 1), (1, -1), (1, 0), (1, 1)]
    """
    offsets = []
    for off in it.product([-1, 0, 1], repeat=dimension):
        nonzero = [v for v in off if v != 0]
        if nonzero and nonzero[0] > 0:
            offsets.append(off)
    return offsets
