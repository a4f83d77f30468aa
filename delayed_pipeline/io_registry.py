"""
File formats as pluggable codecs.

Codecs are looked up in a process-wide :class:`CodecRegistry`. Readers are
found by the leading bytes of a file first and by extension second, writers by
extension. Registration order does not matter and registering a codec with an
existing name replaces it.

Example:
    >>> from delayed_pipeline.io_registry import *  # NOQA
    >>> from delayed_pipeline.stages import ImageSource
    >>> import numpy as np
    >>> import ubelt as ub
    >>> _ = register_required_codecs()
    >>> dpath = ub.Path.appdir('delayed_pipeline/tests/io_registry').ensuredir()
    >>> fpath = dpath / 'volume.npz'
    >>> data = np.arange(24, dtype=np.float32).reshape(2, 3, 4)
    >>> src = ImageSource(data, spacing=(1, 2, 3), origin=(-1, 0, 1))
    >>> _ = ImageFileWriter(src, fpath).write()
    >>> reader = ImageFileReader(fpath)
    >>> reader.codec.name
    'npz'
    >>> part = reader.finalize(Region((1, 0, 2), (1, 3, 2)))
    >>> assert np.all(part == data[1:2, :, 2:4])
    >>> reader.output.geometry.spacing.tolist()
    [1.0, 2.0, 3.0]
"""
import logging
import os
import warnings
import kwarray
import kwimage
import numpy as np
import ubelt as ub
from delayed_pipeline.exceptions import UnknownFormatError
from delayed_pipeline.geometry import PhysicalGeometry
from delayed_pipeline.region import Region
from delayed_pipeline.stage_base import USE_SLOTS
from delayed_pipeline.stage_base import SourceStage
from delayed_pipeline.stage_base import UnaryStage

logger = logging.getLogger(__name__)

# Number of leading bytes read when sniffing a file
HEADER_SIZE = 16


class ImageCodec:
    """
    Base class for codecs.

    Subclasses set :attr:`name`, :attr:`extensions` and optionally
    :attr:`signatures`, and implement the read and / or write methods.
    """
    name = None
    extensions = ()
    signatures = ()

    def __repr__(self):
        return '<{}({})>'.format(self.__class__.__name__, self.name)

    def matches_signature(self, header):
        """
        Args:
            header (bytes): leading bytes of a file

        Returns:
            bool
        """
        return any(header.startswith(sig) for sig in self.signatures)

    def matches_extension(self, fpath):
        return os.fspath(fpath).lower().endswith(tuple(self.extensions))

    def read_information(self, fpath):
        """
        Read the array layout without reading voxel data.

        Returns:
            Dict: with keys ``shape`` (full array shape, including component
                axes), ``dimension`` (number of index axes) and ``geometry``
                (:class:`PhysicalGeometry`).
        """
        raise NotImplementedError

    def read_region(self, fpath, region):
        """
        Read the voxels of a region.

        Returns:
            ndarray: with leading shape ``region.size``
        """
        raise NotImplementedError

    def write(self, fpath, data, geometry=None):
        raise NotImplementedError


class NumpyCodec(ImageCodec):
    """
    Numpy ``.npy`` files. Regions are read through a memory map, so only the
    requested voxels are loaded. The format does not store geometry.
    """
    name = 'npy'
    extensions = ('.npy',)
    signatures = (b'\x93NUMPY',)

    def read_information(self, fpath):
        arr = np.load(fpath, mmap_mode='r')
        return {
            'shape': arr.shape,
            'dimension': arr.ndim,
            'geometry': PhysicalGeometry.identity(arr.ndim),
        }

    def read_region(self, fpath, region):
        arr = np.load(fpath, mmap_mode='r')
        return np.array(arr[region.to_slices()])

    def write(self, fpath, data, geometry=None):
        if geometry is not None and not geometry.is_close(
                PhysicalGeometry.identity(geometry.dimension)):
            warnings.warn('npy files do not store geometry, writing {} '
                          'without it'.format(fpath))
        np.save(fpath, np.asarray(data))


class NumpyArchiveCodec(ImageCodec):
    """
    Numpy ``.npz`` archives holding ``data`` and the geometry arrays
    ``origin``, ``spacing`` and ``direction``.
    """
    name = 'npz'
    extensions = ('.npz',)
    signatures = (b'PK\x03\x04',)

    def read_information(self, fpath):
        with np.load(fpath) as archive:
            keys = set(archive.files)
            shape = archive['data'].shape
            geom_parts = {key: archive[key] for key in ['origin', 'spacing', 'direction']
                          if key in keys}
        dimension = len(geom_parts['spacing']) if 'spacing' in geom_parts else len(shape)
        geometry = PhysicalGeometry(dimension=dimension, **geom_parts)
        return {'shape': shape, 'dimension': dimension, 'geometry': geometry}

    def read_region(self, fpath, region):
        with np.load(fpath) as archive:
            return np.array(archive['data'][region.to_slices()])

    def write(self, fpath, data, geometry=None):
        data = np.asarray(data)
        if geometry is None:
            geometry = PhysicalGeometry.identity(data.ndim)
        with open(fpath, 'wb') as file:
            np.savez(file, data=data, origin=geometry.origin,
                     spacing=geometry.spacing, direction=geometry.direction)


class RasterCodec(ImageCodec):
    """
    Common 2D raster formats through :mod:`kwimage`. Images have two index
    axes, multi-channel images have a trailing component axis. These formats
    do not store geometry.
    """
    name = 'raster'
    extensions = ('.png', '.jpg', '.jpeg', '.tif', '.tiff', '.bmp')
    signatures = (
        b'\x89PNG\r\n\x1a\n',
        b'\xff\xd8\xff',
        b'II*\x00',
        b'MM\x00*',
        b'BM',
    )

    def _load(self, fpath):
        imdata = kwarray.atleast_nd(kwimage.imread(os.fspath(fpath)), 3)
        if imdata.shape[2] == 1:
            imdata = imdata[..., 0]
        return imdata

    def read_information(self, fpath):
        # TODO: read only the header once the decoders expose it
        shape = self._load(fpath).shape
        return {
            'shape': shape,
            'dimension': 2,
            'geometry': PhysicalGeometry.identity(2),
        }

    def read_region(self, fpath, region):
        return self._load(fpath)[region.to_slices()]

    def write(self, fpath, data, geometry=None):
        data = np.asarray(data)
        if data.ndim not in {2, 3}:
            raise ValueError('raster formats hold 2D images, got shape {}'.format(data.shape))
        # OpenCV wants a writable contiguous array
        data = np.array(data)
        kwimage.imwrite(os.fspath(fpath), data)


class CodecRegistry:
    """
    A mapping from codec name to codec.

    Example:
        >>> from delayed_pipeline.io_registry import *  # NOQA
        >>> registry = CodecRegistry()
        >>> _ = registry.register(NumpyCodec())
        >>> registry.find_writer('foo.npy').name
        'npy'
        >>> import pytest
        >>> with pytest.raises(UnknownFormatError):
        >>>     registry.find_writer('foo.png')
    """

    def __init__(self):
        self._codecs = {}

    def __repr__(self):
        return '<{}({})>'.format(self.__class__.__name__, sorted(self._codecs))

    def __contains__(self, name):
        return name in self._codecs

    def __len__(self):
        return len(self._codecs)

    def codecs(self):
        """
        Returns:
            List[ImageCodec]: registered codecs, sorted by name
        """
        return [self._codecs[key] for key in sorted(self._codecs)]

    def register(self, codec):
        """
        Args:
            codec (ImageCodec): replaces any codec with the same name

        Returns:
            ImageCodec
        """
        if not codec.name:
            raise ValueError('codecs must have a name')
        self._codecs[codec.name] = codec
        return codec

    def unregister(self, name):
        self._codecs.pop(name)

    def find_reader(self, fpath):
        """
        Find a codec that can read a file, by its leading bytes if it exists,
        otherwise by its extension.

        Args:
            fpath (str | PathLike):

        Returns:
            ImageCodec

        Raises:
            UnknownFormatError
        """
        fpath = os.fspath(fpath)
        if os.path.isfile(fpath):
            with open(fpath, 'rb') as file:
                header = file.read(HEADER_SIZE)
            for codec in self.codecs():
                if codec.matches_signature(header):
                    return codec
        for codec in self.codecs():
            if codec.matches_extension(fpath):
                return codec
        raise UnknownFormatError('No registered codec can read {}'.format(fpath))

    def find_writer(self, fpath):
        """
        Find a codec for a file extension.

        Returns:
            ImageCodec

        Raises:
            UnknownFormatError
        """
        for codec in self.codecs():
            if codec.matches_extension(fpath):
                return codec
        raise UnknownFormatError('No registered codec can write {}'.format(
            os.fspath(fpath)))


REGISTRY = CodecRegistry()


def register_required_codecs(registry=None):
    """
    Populate a registry (the process-wide one by default) with the built-in
    codecs. Calling this more than once is harmless.

    Returns:
        CodecRegistry
    """
    if registry is None:
        registry = REGISTRY
    for codec_cls in [NumpyCodec, NumpyArchiveCodec, RasterCodec]:
        if codec_cls.name not in registry:
            registry.register(codec_cls())
    return registry


class ImageFileReader(SourceStage):
    """
    A file as the root of a pipeline.

    The codec and the number of index axes are determined when the reader is
    created. Each execution reads exactly the requested region. If the file
    is rewritten (its modification time or size changes) the next update
    treats the reader as modified, so no stale buffer is served.

    Args:
        fpath (str | PathLike): file to read
        registry (CodecRegistry | None): defaults to :data:`REGISTRY`,
            populated with the built-in codecs
    """
    if USE_SLOTS:
        __slots__ = ('codec', '_file_stamp')

    def __init__(self, fpath, registry=None):
        if registry is None:
            registry = register_required_codecs()
        fpath = ub.Path(fpath)
        codec = registry.find_reader(fpath)
        info = codec.read_information(fpath)
        super().__init__(dimension=info['dimension'])
        self.codec = codec
        self.meta['fpath'] = fpath
        self._file_stamp = None

    def __nice__(self):
        return '{}, {}'.format(self.meta['fpath'].name, self.codec.name)

    def _stat_file(self):
        stat = self.meta['fpath'].stat()
        return (stat.st_mtime_ns, stat.st_size)

    def check_external_changes(self):
        if self._file_stamp is not None and self._stat_file() != self._file_stamp:
            logger.info('%s changed on disk', self.meta['fpath'])
            self.modified()

    def generate_output_information(self):
        info = self.codec.read_information(self.meta['fpath'])
        self._file_stamp = self._stat_file()
        shape = info['shape'][:self.dimension]
        self.output.set_information(Region.from_shape(shape), info['geometry'])

    def generate_data(self):
        out = self.output
        region = out.requested_region
        logger.info('Reading %s from %s', region, self.meta['fpath'])
        data = self.codec.read_region(self.meta['fpath'], region)
        out.set_buffer(region, data)
        self.update_progress(1.0)


class ImageFileWriter(UnaryStage):
    """
    Write the whole of its input to a file.

    The output mirrors the input so a writer can sit in the middle of a
    pipeline.

    Args:
        input (ProcessingStage | DataContainer): data to write
        fpath (str | PathLike): destination, the extension picks the codec
        registry (CodecRegistry | None): defaults to :data:`REGISTRY`,
            populated with the built-in codecs
    """
    if USE_SLOTS:
        __slots__ = ('codec',)

    def __init__(self, input, fpath, registry=None):
        if registry is None:
            registry = register_required_codecs()
        super().__init__(input)
        fpath = ub.Path(fpath)
        self.codec = registry.find_writer(fpath)
        self.meta['fpath'] = fpath

    def __nice__(self):
        return '{}, {}'.format(self.meta['fpath'].name, self.codec.name)

    def write(self, executor=None):
        """
        Run the pipeline and write the file, even if nothing changed since
        the last write.

        Returns:
            ub.Path: the written file
        """
        self.modified()
        self.update(executor=executor)
        return self.meta['fpath']

    def generate_input_requested_region(self):
        inp = self.input
        inp.requested_region = inp.largest_possible_region

    def generate_data(self):
        inp = self.input
        out = self.output
        fpath = self.meta['fpath']
        data = inp.get_region_data(inp.largest_possible_region)
        logger.info('Writing %s to %s', inp.largest_possible_region, fpath)
        self.codec.write(fpath, data, inp.geometry)
        out.set_buffer(inp.largest_possible_region, data)
        self.update_progress(1.0)
