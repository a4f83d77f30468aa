"""
Demo data and pipelines for doctests, tests and the command line.
"""
import kwarray
import numpy as np

# Default volume used to exercise multi-resolution pyramids: the axes do not
# share a size or a spacing and a permuted direction maps index axes to
# different physical axes.
PYRAMID_VOLUME_SIZE = (128, 132, 48)
PYRAMID_VOLUME_SPACING = (0.5, 2.7, 7.5)
PYRAMID_VOLUME_DIRECTION = ((0, -1, 0),
                            (0, 0, 1),
                            (1, 0, 0))


def pyramid_test_volume(size=PYRAMID_VOLUME_SIZE,
                        spacing=PYRAMID_VOLUME_SPACING,
                        direction=PYRAMID_VOLUME_DIRECTION):
    """
    A 3D volume with a broad gaussian, an off center bright ball and a
    linear ramp near the borders, centered on the physical origin.

    Args:
        size (Tuple[int, int, int]):
        spacing (Tuple[float, float, float]):
        direction (None | ArrayLike):

    Returns:
        ImageSource

    Example:
        >>> from delayed_pipeline.demo import *  # NOQA
        >>> src = pyramid_test_volume(size=(32, 33, 12))
        >>> data = src.finalize()
        >>> data.shape, data.dtype
        ((32, 33, 12), dtype('float32'))
        >>> float(data.max())
        400.0
    """
    from delayed_pipeline.stages import ImageSource
    size = np.asarray(size)
    spacing = np.asarray(spacing, dtype=float)
    center = size / 2.0
    x, y, z = np.indices(tuple(size), dtype=float) - center[:, None, None, None]

    value = 200.0 * np.exp(-(x * x + y * y + z * z) / (50.0 ** 2))
    x, y = x - 8, y + 3
    r = np.sqrt(x * x + y * y + z * z)
    ramp = 2 * (np.abs(x) + 0.8 * np.abs(y) + 0.5 * np.abs(z))
    value = np.where(r > 35, ramp, value)
    value = np.where(r < 4, 400.0, value)

    origin = -0.5 * size * spacing
    return ImageSource(value.astype(np.float32), spacing=spacing,
                       origin=origin, direction=direction)


def gaussian_blob(shape=(64, 64), sigma=None, spacing=None):
    """
    A gaussian centered on the middle of the index grid, symmetric about that
    center on every axis.

    Returns:
        ImageSource

    Example:
        >>> from delayed_pipeline.demo import *  # NOQA
        >>> data = gaussian_blob((5, 7)).finalize()
        >>> assert data.argmax() == np.ravel_multi_index((2, 3), (5, 7))
    """
    from delayed_pipeline.stages import ImageSource
    shape = tuple(shape)
    if sigma is None:
        sigma = min(shape) / 6.0
    center = (np.asarray(shape) - 1) / 2.0
    grids = np.indices(shape, dtype=float)
    dist2 = sum((g - c) ** 2 for g, c in zip(grids, center))
    data = np.exp(-dist2 / (2 * sigma ** 2))
    return ImageSource(data, spacing=spacing)


def random_image(shape=(32, 32), rng=None):
    """
    Uniform random floats in ``[0, 1)``.

    Returns:
        ImageSource
    """
    from delayed_pipeline.stages import ImageSource
    rng = kwarray.ensure_rng(rng)
    return ImageSource(rng.rand(*shape))


def demo_pipeline(rng=None):
    """
    A small chain: random noise, a gaussian smoothing, a square root and a
    region of interest at the end.

    Returns:
        ProcessingStage

    Example:
        >>> from delayed_pipeline.demo import *  # NOQA
        >>> final = demo_pipeline(rng=0)
        >>> final.print_graph(rich=False)
        >>> data = final.finalize()
        >>> data.shape
        (16, 16)
    """
    from delayed_pipeline.stages import FunctorStage
    from delayed_pipeline.stages import NeighborhoodStage
    from delayed_pipeline.stages import RegionOfInterest
    from delayed_pipeline.region import Region
    src = random_image((48, 48), rng=rng)
    smooth = NeighborhoodStage(src, radius=2, kind='gaussian')
    scaled = FunctorStage(smooth, func=np.sqrt)
    final = RegionOfInterest(scaled, Region((8, 8), (16, 16)))
    return final
