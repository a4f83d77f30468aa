"""
Build a pyramid over an anisotropic, rotated test volume and report how well
each level keeps the physical placement of the input.
"""
import numpy as np
import ubelt as ub
from delayed_pipeline.demo import pyramid_test_volume
from delayed_pipeline.helpers import physical_center_of_mass
from delayed_pipeline.pyramid import MultiResolutionPyramid
from delayed_pipeline.schedule import is_schedule_downward_divisible


def main():
    src = pyramid_test_volume()
    pyramid = MultiResolutionPyramid(src, num_levels=4, starting_factors=[8, 4, 2])
    print('schedule = {}'.format(ub.urepr(pyramid.schedule.tolist(), nl=1)))
    print('downward divisible: {}'.format(
        is_schedule_downward_divisible(pyramid.schedule)))

    # The finest level covers the whole input, so every level is filled
    pyramid.level_output(pyramid.num_levels - 1).update()

    in_geom = src.output.geometry
    in_center = in_geom.region_center(src.output.largest_possible_region)
    in_com = physical_center_of_mass(src.finalize(), in_geom)
    tolerance = 1e-3 * np.linalg.norm(in_geom.spacing)

    rows = []
    for level, out in enumerate(pyramid.outputs):
        center = out.geometry.region_center(out.largest_possible_region)
        com = physical_center_of_mass(out.buffer, out.geometry)
        rows.append({
            'level': level,
            'shape': out.shape,
            'spacing': out.geometry.spacing.tolist(),
            'center_error': float(np.linalg.norm(center - in_center)),
            'com_error': float(np.linalg.norm(com - in_com)),
        })
    print(ub.urepr(rows, nl=1, precision=4))
    print(f'center of mass tolerance={tolerance:.4f}')


if __name__ == '__main__':
    """
    CommandLine:
        python ~/code/delayed_pipeline/examples/pyramid_levels.py
    """
    main()
