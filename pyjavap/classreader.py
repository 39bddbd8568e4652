"""
Java class file reader.

Decodes a complete class file into the immutable model of ``classfile``.
"""

import logging
import os
import zipfile
from pathlib import Path
from typing import BinaryIO, Optional

from .attributes import read_attributes
from .classfile import MAGIC, MIN_MAJOR_VERSION, ClassFile, FieldInfo, MethodInfo
from .constant_pool import ConstantPool, read_constant_pool
from .cursor import ByteCursor
from .errors import (
    InvalidMagicNumber,
    IoFailure,
    MalformedData,
    UnsupportedVersion,
)

log = logging.getLogger(__name__)


class ClassReader:
    """Reads Java class files."""

    def __init__(self, data: bytes, max_major_version: Optional[int] = None):
        self.cursor = ByteCursor(data)
        self.max_major_version = max_major_version

    def _read_member(self, pool: ConstantPool, member_type: type):
        access = self.cursor.read_u2()
        name_idx = self.cursor.read_u2()
        desc_idx = self.cursor.read_u2()
        name = pool.get_utf8(name_idx)
        descriptor = pool.get_utf8(desc_idx)
        attrs = read_attributes(self.cursor, pool)

        return member_type(
            access_flags=access,
            name_index=name_idx,
            descriptor_index=desc_idx,
            name=name,
            descriptor=descriptor,
            attributes=attrs,
        )

    def _check_version(self, major: int, offset: int):
        if major < MIN_MAJOR_VERSION:
            raise UnsupportedVersion(
                f"Class file major version {major} predates version {MIN_MAJOR_VERSION}", offset
            )
        if self.max_major_version is not None and major > self.max_major_version:
            raise UnsupportedVersion(
                f"Class file major version {major} is newer than {self.max_major_version}", offset
            )

    def read(self) -> ClassFile:
        """Read the class file and return a ClassFile."""
        try:
            return self._read()
        except RecursionError as exc:
            # Attributes and annotation values nest deeper than the interpreter stack
            raise MalformedData("Attributes are nested too deeply to decode") from exc

    def _read(self) -> ClassFile:
        cursor = self.cursor

        # Magic number
        magic = cursor.read_u4()
        if magic != MAGIC:
            raise InvalidMagicNumber(f"Invalid class file magic: 0x{magic:08X}", 0)

        # Version
        minor = cursor.read_u2()
        version_offset = cursor.offset
        major = cursor.read_u2()
        self._check_version(major, version_offset)

        # Constant pool
        pool = read_constant_pool(cursor)

        # Access flags
        access_flags = cursor.read_u2()

        # This/super class
        this_class = cursor.read_u2()
        super_class = cursor.read_u2()
        pool.get_class_name(this_class)
        if super_class != 0:
            pool.get_class_name(super_class)

        # Interfaces
        interfaces_count = cursor.read_u2()
        interfaces = tuple(cursor.read_u2() for _ in range(interfaces_count))
        for index in interfaces:
            pool.get_class_name(index)

        # Fields
        fields_count = cursor.read_u2()
        fields = tuple(self._read_member(pool, FieldInfo) for _ in range(fields_count))

        # Methods
        methods_count = cursor.read_u2()
        methods = tuple(self._read_member(pool, MethodInfo) for _ in range(methods_count))

        # Class attributes
        attrs = read_attributes(cursor, pool)

        if not cursor.at_end:
            raise MalformedData(
                f"{cursor.remaining} unexpected byte(s) after the class attributes", cursor.offset
            )

        class_file = ClassFile(
            magic=magic,
            minor_version=minor,
            major_version=major,
            constant_pool=pool,
            access_flags=access_flags,
            this_class=this_class,
            super_class=super_class,
            interfaces=interfaces,
            fields=fields,
            methods=methods,
            attributes=attrs,
        )
        log.debug(
            "Read class %s (version %d.%d): %d interfaces, %d fields, %d methods",
            class_file.name, major, minor, interfaces_count, fields_count, methods_count,
        )
        return class_file


def parse_class(data: bytes, max_major_version: Optional[int] = None) -> ClassFile:
    """Parse the complete contents of a class file."""
    return ClassReader(data, max_major_version).read()


def read_class_stream(stream: BinaryIO, max_major_version: Optional[int] = None) -> ClassFile:
    """Read a class file from a binary file object."""
    try:
        data = stream.read()
    except OSError as exc:
        raise IoFailure(f"Cannot read class data: {exc}") from exc
    return parse_class(data, max_major_version)


def read_class_file(path: str | Path, max_major_version: Optional[int] = None) -> ClassFile:
    """Read a single class file."""
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise IoFailure(f"Cannot read {path}: {exc.strerror or exc}") from exc
    return parse_class(data, max_major_version)


class ClassPath:
    """Manages a classpath for looking up classes."""

    def __init__(self, max_major_version: Optional[int] = None):
        self.entries: list[Path | zipfile.ZipFile] = []
        self.max_major_version = max_major_version
        self._cache: dict[str, ClassFile] = {}
        self._zip_files: list[zipfile.ZipFile] = []

    def add_path(self, path: str | Path):
        """Add a path to the classpath (directory or jar/zip)."""
        path = Path(path)
        if path.suffix in (".jar", ".zip"):
            try:
                zf = zipfile.ZipFile(path, "r")
            except (OSError, zipfile.BadZipFile) as exc:
                raise IoFailure(f"Cannot open classpath archive {path}: {exc}") from exc
            self._zip_files.append(zf)
            self.entries.append(zf)
        elif path.is_dir():
            self.entries.append(path)
        else:
            raise IoFailure(f"Invalid classpath entry: {path}")

    def add_paths(self, paths: str):
        """Add every entry of an os.pathsep-separated classpath string."""
        for part in paths.split(os.pathsep):
            if part:
                self.add_path(part)

    def find_class(self, class_name: str) -> Optional[ClassFile]:
        """Find and parse a class by name (e.g., 'java/lang/String')."""
        class_name = class_name.replace(".", "/")
        if class_name in self._cache:
            return self._cache[class_name]

        class_file = class_name + ".class"

        for entry in self.entries:
            if isinstance(entry, zipfile.ZipFile):
                try:
                    data = entry.read(class_file)
                except KeyError:
                    continue
            else:
                path = entry / class_file
                if not path.is_file():
                    continue
                try:
                    data = path.read_bytes()
                except OSError as exc:
                    raise IoFailure(f"Cannot read {path}: {exc.strerror or exc}") from exc

            log.debug("Found %s in %s", class_name, getattr(entry, "filename", entry))
            info = parse_class(data, self.max_major_version)
            self._cache[class_name] = info
            return info

        return None

    def close(self):
        """Close all zip files."""
        for zf in self._zip_files:
            zf.close()
        self._zip_files.clear()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
