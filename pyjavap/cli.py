#!/usr/bin/env python3
"""
Command-line interface for pyjavap - a javap-style class file disassembler.
"""

import argparse
import logging
import sys
from pathlib import Path

from .classfile import ClassFile
from .classreader import ClassPath, read_class_file
from .errors import ClassFormatError, IoFailure
from .printer import PrinterOptions, print_class_file


def _setup_logging():
    """Send debug records from the library to stderr."""
    logger = logging.getLogger()
    formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s', '%m-%d %H:%M:%S')
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)


def load_class(args) -> ClassFile:
    """Read the class named on the command line, from a path or the classpath."""
    if not args.classpath:
        return read_class_file(Path(args.target), args.max_version)

    path = Path(args.target)
    if path.suffix == ".class" and path.is_file():
        return read_class_file(path, args.max_version)

    with ClassPath(args.max_version) as classpath:
        classpath.add_paths(args.classpath)
        class_name = args.target
        if class_name.endswith(".class"):
            class_name = class_name[:-len(".class")]
        class_file = classpath.find_class(class_name)
    if class_file is None:
        raise IoFailure(f"Class not found: {args.target}")
    return class_file


def disassemble_command(args):
    """Disassemble one class and print it to stdout."""
    options = PrinterOptions(
        show_constant_pool=not args.no_constant_pool,
        show_code=not args.no_code,
        show_private=not args.public,
    )

    try:
        class_file = load_class(args)
    except ClassFormatError as e:
        print(f"Error: {e.kind}: {e}", file=sys.stderr)
        sys.exit(1)

    print_class_file(class_file, options)


def main(argv=None):
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="pyjavap",
        description="Disassemble Java class files",
    )
    parser.add_argument(
        "target",
        metavar="CLASS",
        help="Path to a .class file, or a class name with --classpath",
    )
    parser.add_argument(
        "-cp", "--classpath",
        help="Directories and jar files to search, separated by the path separator",
    )
    parser.add_argument(
        "--no-constant-pool",
        action="store_true",
        help="Do not print the constant pool",
    )
    parser.add_argument(
        "--no-code",
        action="store_true",
        help="Do not print method bytecode",
    )
    parser.add_argument(
        "--public",
        action="store_true",
        help="Hide private fields and methods",
    )
    parser.add_argument(
        "--max-version",
        type=int,
        metavar="N",
        help="Reject class files with a major version above N",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log parser progress to stderr",
    )

    args = parser.parse_args(argv)

    if args.verbose:
        _setup_logging()

    disassemble_command(args)


if __name__ == "__main__":
    main()
