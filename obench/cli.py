import sys
import logging
import argparse
from dataclasses import replace

from . import _utility, scene, tracing
from .elements import describe

__all__ = ['trace_scene', 'format_readout']


def format_readout(readout: tracing.BeamReadout) -> str:
    if readout.roc == float('inf'):
        roc = '∞'
    else:
        roc = '%.2f mm'%(readout.roc*1e3)
    return ('w %.1f µm, w0 %.1f µm, to waist %.2f mm, zR %.2f mm, ROC %s, I %.3f, psi %.1f°, chi %.1f°, AOI %.1f°, '
        '%.1f nm')%(readout.width*1e6, readout.waist*1e6, readout.distance_to_waist*1e3, readout.rayleigh_range*1e3,
        roc, readout.intensity, readout.psi_deg, readout.chi_deg, readout.aoi_deg, readout.lamb*1e9)


def trace_scene():
    parser = argparse.ArgumentParser(
        description='Trace the beams of a YAML bench scene and print the readout of every struck element. Trace '
                    'parameters are read from the trace section of obench.yml in the current or home directory, and '
                    'may be overridden here.')
    parser.add_argument('filename', help='scene file to trace')
    parser.add_argument('--max-steps', type=int, help='maximum interactions per path')
    parser.add_argument('--max-beams', type=int, help='maximum number of paths')
    parser.add_argument('--no-polarization', action='store_true', help='skip polarization samples')
    parser.add_argument('-v', '--verbose', action='store_true', help='log each interaction')
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        params = tracing.TraceParams.from_config(_utility.load_config())
        bench = scene.load_scene(args.filename)
    except (ValueError, OSError) as e:
        print(e)
        sys.exit(1)
    if args.max_steps is not None:
        params = replace(params, max_steps=args.max_steps)
    if args.max_beams is not None:
        params = replace(params, max_beams=args.max_beams)
    if args.no_polarization:
        params = replace(params, show_polarization=False)

    result = tracing.trace(bench.sources, bench.elements, params)

    print('%d paths traced.'%len(result.paths))
    for element in bench.elements:
        label = '%d %s'%(element.id, describe(element))
        readout = result.readouts.get(element.id)
        if readout is None:
            print('%s: no beam'%label)
        else:
            print('%s: %s'%(label, format_readout(readout)))
        grating_readout = result.grating_readouts.get(element.id)
        if grating_readout is not None:
            print('    alpha %.2f°'%grating_readout.alpha_deg)
            for entry in grating_readout.entries:
                print('    m=%+d: %.2f°, %.4f °/nm'%(entry.m, entry.angle_deg, entry.dispersion))
