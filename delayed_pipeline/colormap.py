"""
Per-voxel scalar to RGB functors.

These are plain callables meant to be wrapped in a
:class:`delayed_pipeline.stages.FunctorStage`, so they inherit its shape
preserving region propagation.

Example:
    >>> from delayed_pipeline.colormap import *  # NOQA
    >>> from delayed_pipeline.stages import ImageSource, FunctorStage
    >>> import numpy as np
    >>> data = np.linspace(0, 100, 12).reshape(3, 4)
    >>> src = ImageSource(data)
    >>> colored = FunctorStage(src, RedColormapFunctor(minimum=0, maximum=100))
    >>> rgb = colored.finalize()
    >>> rgb.shape, rgb.dtype
    ((3, 4, 3), dtype('uint8'))
    >>> rgb[-1, -1].tolist()
    [255, 0, 0]
    >>> assert rgb[..., 1:].max() == 0
"""
import kwarray
import numpy as np


class ColormapFunctor:
    """
    Base class for colormaps.

    The input is first rescaled from ``[minimum, maximum]`` to ``[0, 1]``
    (values outside are clipped), then :func:`map_unit` turns it into float
    RGB in ``[0, 1]``, which is finally scaled to ``uint8``.

    A fixed range keeps the mapping independent of which region is being
    computed. Use :func:`set_extrema_from` to take the range from data.

    Args:
        minimum (float): input value mapped to 0
        maximum (float): input value mapped to 1
    """

    def __init__(self, minimum=0.0, maximum=255.0):
        self.minimum = float(minimum)
        self.maximum = float(maximum)

    def __repr__(self):
        return '<{}(minimum={}, maximum={})>'.format(
            self.__class__.__name__, self.minimum, self.maximum)

    def __json__(self):
        return {'type': self.__class__.__name__, 'minimum': self.minimum,
                'maximum': self.maximum}

    def set_extrema_from(self, data):
        """
        Use the range of an array as the input range.

        Args:
            data (ArrayLike):

        Returns:
            ColormapFunctor: self
        """
        data = np.asarray(data)
        self.minimum = float(np.nanmin(data))
        self.maximum = float(np.nanmax(data))
        return self

    def rescale(self, data):
        """
        Map the input range to ``[0, 1]``.

        Args:
            data (ArrayLike):

        Returns:
            ndarray: float array with the same shape as ``data``

        Example:
            >>> from delayed_pipeline.colormap import *  # NOQA
            >>> self = ColormapFunctor(minimum=10, maximum=20)
            >>> self.rescale([0, 10, 15, 20, 30]).tolist()
            [0.0, 0.0, 0.5, 1.0, 1.0]
        """
        data = np.array(data, dtype=float)
        if self.maximum <= self.minimum:
            return np.zeros_like(data)
        unit = kwarray.normalize(data, mode='linear', min_val=self.minimum,
                                 max_val=self.maximum)
        return np.clip(unit, 0.0, 1.0)

    def map_unit(self, unit):
        """
        Args:
            unit (ndarray): values in ``[0, 1]``

        Returns:
            ndarray: float RGB in ``[0, 1]`` with a trailing axis of size 3
        """
        raise NotImplementedError

    def __call__(self, data):
        rgb = self.map_unit(self.rescale(data))
        return np.round(np.clip(rgb, 0, 1) * 255).astype(np.uint8)


class RedColormapFunctor(ColormapFunctor):
    """
    Maps ``v`` to ``(v, 0, 0)``.
    """

    def map_unit(self, unit):
        zeros = np.zeros_like(unit)
        return np.stack([unit, zeros, zeros], axis=-1)


class GreyColormapFunctor(ColormapFunctor):
    """
    Maps ``v`` to ``(v, v, v)``.

    Example:
        >>> from delayed_pipeline.colormap import *  # NOQA
        >>> GreyColormapFunctor(0, 2)([[0, 1, 2]]).tolist()
        [[[0, 0, 0], [128, 128, 128], [255, 255, 255]]]
    """

    def map_unit(self, unit):
        return np.stack([unit, unit, unit], axis=-1)
