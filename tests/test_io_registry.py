import numpy as np
import pytest
import ubelt as ub


def _dpath(name):
    return ub.Path.appdir('delayed_pipeline/tests/io', name).delete().ensuredir()


def test_npy_reads_only_the_requested_region():
    from delayed_pipeline.io_registry import ImageFileReader, ImageFileWriter
    from delayed_pipeline.region import Region
    from delayed_pipeline.stages import ImageSource
    dpath = _dpath('npy_region')
    data = np.random.RandomState(0).rand(12, 10, 6)
    fpath = ImageFileWriter(ImageSource(data), dpath / 'volume.npy').write()
    assert fpath.exists()

    reader = ImageFileReader(fpath)
    assert reader.codec.name == 'npy'
    region = Region((2, 3, 1), (4, 5, 2))
    part = reader.finalize(region)
    assert np.all(part == data[region.to_slices()])
    assert reader.output.buffered_region == region
    assert reader.output.shape == (12, 10, 6)


def test_npy_warns_about_dropped_geometry():
    from delayed_pipeline.io_registry import ImageFileWriter
    from delayed_pipeline.stages import ImageSource
    dpath = _dpath('npy_geometry')
    src = ImageSource(np.zeros((4, 4)), spacing=(2, 2))
    with pytest.warns(UserWarning):
        ImageFileWriter(src, dpath / 'lossy.npy').write()


def test_npz_keeps_geometry():
    from delayed_pipeline.io_registry import ImageFileReader, ImageFileWriter
    from delayed_pipeline.stages import ImageSource
    dpath = _dpath('npz_geometry')
    direction = [[0, -1, 0], [0, 0, 1], [1, 0, 0]]
    src = ImageSource(np.ones((3, 4, 5), dtype=np.float32), spacing=(0.5, 2.7, 7.5),
                      origin=(1, 2, 3), direction=direction)
    fpath = ImageFileWriter(src, dpath / 'volume.npz').write()
    reader = ImageFileReader(fpath)
    reader.update_output_information()
    src.update_output_information()
    assert reader.output.geometry.is_close(src.output.geometry)
    assert reader.finalize().dtype == np.float32


def test_png_rgb_roundtrip():
    from delayed_pipeline.io_registry import ImageFileReader, ImageFileWriter
    from delayed_pipeline.region import Region
    from delayed_pipeline.stages import ImageSource
    dpath = _dpath('png')
    data = (np.random.RandomState(1).rand(10, 12, 3) * 255).astype(np.uint8)
    fpath = ImageFileWriter(ImageSource(data, dimension=2), dpath / 'rgb.png').write()
    reader = ImageFileReader(fpath)
    assert reader.codec.name == 'raster'
    assert reader.dimension == 2
    part = reader.finalize(Region((1, 2), (3, 4)))
    assert part.shape == (3, 4, 3)
    assert np.all(part == data[1:4, 2:6])

    gray = data[..., 0]
    fpath = ImageFileWriter(ImageSource(gray), dpath / 'gray.png').write()
    reader = ImageFileReader(fpath)
    assert np.all(reader.finalize() == gray)


def test_signature_wins_over_extension():
    from delayed_pipeline.io_registry import ImageFileReader
    dpath = _dpath('mislabeled')
    fpath = dpath / 'actually_numpy.png'
    data = np.arange(6).reshape(2, 3)
    with open(fpath, 'wb') as file:
        np.save(file, data)
    reader = ImageFileReader(fpath)
    assert reader.codec.name == 'npy'
    assert np.all(reader.finalize() == data)


def test_unknown_format():
    from delayed_pipeline.exceptions import UnknownFormatError
    from delayed_pipeline.io_registry import ImageFileReader, ImageFileWriter
    from delayed_pipeline.stages import ImageSource
    dpath = _dpath('unknown')
    fpath = dpath / 'notes.xyz'
    fpath.write_text('hello world')
    with pytest.raises(UnknownFormatError) as info:
        ImageFileReader(fpath)
    assert 'notes.xyz' in str(info.value)
    with pytest.raises(KeyError):
        ImageFileWriter(ImageSource(np.zeros((2, 2))), dpath / 'out.xyz')


def test_custom_codec_registration():
    from delayed_pipeline.io_registry import CodecRegistry, ImageCodec
    from delayed_pipeline.io_registry import ImageFileReader, register_required_codecs
    from delayed_pipeline.geometry import PhysicalGeometry

    class ConstantCodec(ImageCodec):
        name = 'const'
        extensions = ('.const',)
        signatures = (b'CONST',)

        def read_information(self, fpath):
            return {'shape': (4, 5), 'dimension': 2,
                    'geometry': PhysicalGeometry.identity(2)}

        def read_region(self, fpath, region):
            return np.full(region.size, 7)

    registry = register_required_codecs(CodecRegistry())
    assert len(registry) == 3
    assert [c.name for c in registry.codecs()] == ['npy', 'npz', 'raster']
    registry.register(ConstantCodec())
    assert 'const' in registry

    dpath = _dpath('custom')
    fpath = dpath / 'data.bin'
    fpath.write_bytes(b'CONST and some payload')
    reader = ImageFileReader(fpath, registry=registry)
    assert np.all(reader.finalize() == 7)
    assert reader.output.shape == (4, 5)

    registry.unregister('const')
    assert 'const' not in registry
    # Registering twice is harmless
    register_required_codecs(registry)
    assert len(registry) == 3


def test_reader_notices_rewritten_file():
    import os
    from delayed_pipeline.executor import PipelineExecutor
    from delayed_pipeline.io_registry import ImageFileReader
    from delayed_pipeline.stages import FunctorStage
    dpath = _dpath('rewritten')
    fpath = dpath / 'data.npy'
    np.save(fpath, np.ones((4, 5)))
    reader = ImageFileReader(fpath)
    negated = FunctorStage(reader, np.negative)
    executor = PipelineExecutor()
    assert np.all(negated.finalize(executor=executor) == -1)

    # Untouched file, nothing to do
    negated.finalize(executor=executor)
    assert executor.executed == []

    np.save(fpath, np.full((6, 5), 3.0))
    stat = fpath.stat()
    os.utime(fpath, ns=(stat.st_atime_ns, stat.st_mtime_ns + 10 ** 9))
    result = negated.finalize(executor=executor)
    assert executor.executed == [reader, negated]
    assert result.shape == (6, 5)
    assert np.all(result == -3)
