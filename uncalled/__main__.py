"""
Command line interface: check modules and packages, print the diagnostics.
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import attr as attrs

from . import __version__
from ._analyzer.state import Project
from ._analyzer.loader import load_path
from ._lib.exceptions import ConfigError
from .checker import Checker
from .config import Config, load_default_config
from .report import Reporter


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Checks for missing calls.',
                                     prog='python3 -m uncalled',
                                     formatter_class=argparse.ArgumentDefaultsHelpFormatter)

    parser.add_argument('paths', metavar='PATH', help='path of python modules/packages to check', nargs='*')
    parser.add_argument('-c', '--config', help='configuration file to load, merged over the default configuration')
    parser.add_argument('-v', '--verbose', dest='verbosity', action='count', default=0, help='increase verbosity')
    parser.add_argument('-d', '--dependencies', type=int, default=2,
                        help='levels of imported modules to load from stubs, 0 disables it')
    parser.add_argument('--exclude', help='exclude files or directory matching the given fnmatch-like patterns',
                        nargs='+', default=[])
    parser.add_argument('--disable', help='disable the given rules', nargs='+', default=[])
    parser.add_argument('--enable', help='enable the given rules', nargs='+', default=[])
    parser.add_argument('--disable-all', help='disable all rules, except the ones given with --enable',
                        action='store_true')
    parser.add_argument('--print-config', help='print the effective configuration and exit', action='store_true')
    parser.add_argument('--format', choices=Reporter.formats, default='text', help='output format')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def effective_config(config: Optional[str], *,
                     disable: Sequence[str] = (),
                     enable: Sequence[str] = (),
                     disable_all: bool = False) -> Config:
    """
    The default configuration, merged with the configuration file and the command line switches.

    :raises ConfigError: If the configuration is invalid.
    """
    cfg = load_default_config()
    if config:
        cfg = cfg.merge(Config.load(config))
    if disable or enable or disable_all:
        cfg = attrs.evolve(cfg,
                           disable_all=disable_all or cfg.disable_all,
                           disabled=[*(n for n in cfg.disabled if n not in enable), *disable],
                           enabled=[*(n for n in cfg.enabled if n not in disable), *enable])
        cfg.validate()
    return cfg


def main(argv: Optional[List[str]] = None) -> int:
    args = _parser().parse_args(argv)
    try:
        cfg = effective_config(args.config,
                               disable=args.disable,
                               enable=args.enable,
                               disable_all=args.disable_all)
    except ConfigError as e:
        print(f'uncalled: {e}', file=sys.stderr)
        return 2

    if args.print_config:
        print(cfg.to_yaml(), end='')
        return 0

    proj = Project(verbosity=args.verbosity,
                   dependencies=args.dependencies)

    for path in args.paths:
        p = Path(path)
        if not p.exists():
            print(f'uncalled: file {path} doesn\'t exist', file=sys.stderr)
            return 2
        load_path(proj, p, exclude=args.exclude)

    proj.analyze_project()

    reporter = Reporter()
    Checker(proj.state, cfg, reporter).check_project()
    reporter.write(sys.stdout, args.format)
    return 1 if len(reporter) else 0


if __name__ == "__main__":
    sys.exit(main())
