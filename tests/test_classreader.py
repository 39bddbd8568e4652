"""Tests for reading complete class files."""

import io
import os
import struct
import zipfile
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pyjavap import ClassPath, ClassReader, parse_class, read_class_file, read_class_stream
from pyjavap.classfile import AccessFlags, Opcode
from pyjavap.descriptors import ObjectType
from pyjavap.errors import (
    InvalidMagicNumber, IoFailure, MalformedData, TruncatedData, TypeMismatch,
    UnsupportedVersion,
)

from classbuilder import (
    ClassFile, MemberInfo, attribute, code_attribute, hello_class, nested_annotation_class, u2,
)


@pytest.fixture
def hello_bytes():
    return hello_class().to_bytes()


class TestMinimalClass:
    def test_header(self, hello_bytes):
        cf = parse_class(hello_bytes)
        assert cf.magic == 0xCAFEBABE
        assert cf.version == (52, 0)
        assert cf.name == "Hello"
        assert cf.super_name == "java/lang/Object"
        assert cf.access_flag_names == ["ACC_PUBLIC", "ACC_SUPER"]
        assert cf.interfaces == ()
        assert cf.fields == ()

    def test_single_constructor(self, hello_bytes):
        cf = parse_class(hello_bytes)
        assert len(cf.methods) == 1
        init = cf.methods[0]
        assert init.name == "<init>"
        assert init.descriptor == "()V"
        assert init.access_flag_names == ["ACC_PUBLIC"]
        assert [i.mnemonic for i in init.instructions] == ["aload_0", "invokespecial", "return"]

    def test_invokespecial_target(self, hello_bytes):
        cf = parse_class(hello_bytes)
        invoke = cf.methods[0].instructions[1]
        assert cf.constant_pool.get_member_ref(invoke.constant_index) == (
            "java/lang/Object", "<init>", "()V",
        )

    def test_code_accessors(self, hello_bytes):
        method = parse_class(hello_bytes).find_method("<init>", "()V")
        assert method is not None
        assert method.code.max_stack == 1
        assert method.args_size == 1
        assert method.exception_indices == ()
        assert method.get_attribute("Signature") is None

    def test_reader_class(self, hello_bytes):
        assert ClassReader(hello_bytes).read() == parse_class(hello_bytes)


class TestStructure:
    def test_counts_round_trip(self):
        cf = ClassFile("Many")
        cf.interfaces = ["java/lang/Runnable", "java/io/Serializable"]
        for name in ("a", "b", "c"):
            cf.add_field(MemberInfo(AccessFlags.PRIVATE, name, "I"))
        cf.add_method(MemberInfo(AccessFlags.PUBLIC | AccessFlags.ABSTRACT, "run", "()V"))
        cf.add_method(MemberInfo(AccessFlags.PUBLIC | AccessFlags.NATIVE, "hash", "()I"))

        parsed = parse_class(cf.to_bytes())
        assert len(parsed.interfaces) == 2
        assert len(parsed.fields) == 3
        assert len(parsed.methods) == 2
        assert parsed.interface_names == ("java/lang/Runnable", "java/io/Serializable")
        assert parsed.find_method("run").instructions == ()
        assert parsed.find_method("run").code is None
        assert parsed.find_field("b").parsed_descriptor.java_name == "int"
        assert parsed.find_field("missing") is None

    def test_no_superclass(self):
        cf = ClassFile("java/lang/Object", super_class=None)
        parsed = parse_class(cf.to_bytes())
        assert parsed.super_class == 0
        assert parsed.super_name is None

    def test_member_attributes(self):
        cf = ClassFile("Consts")
        value = cf.cp.add_integer(42)
        io_exc = cf.cp.add_class("java/io/IOException")
        sig = cf.cp.add_utf8("()Ljava/util/List<Ljava/lang/String;>;")
        cf.add_field(MemberInfo(
            AccessFlags.PUBLIC | AccessFlags.STATIC | AccessFlags.FINAL, "ANSWER", "I",
            [attribute(cf.cp, "ConstantValue", u2(value))],
        ))
        cf.add_method(MemberInfo(
            AccessFlags.PUBLIC | AccessFlags.ABSTRACT, "names", "()Ljava/util/List;",
            [attribute(cf.cp, "Exceptions", u2(1) + u2(io_exc)),
             attribute(cf.cp, "Signature", u2(sig))],
        ))
        src = cf.cp.add_utf8("Consts.java")
        cf.attributes.append(attribute(cf.cp, "SourceFile", u2(src)))

        parsed = parse_class(cf.to_bytes())
        assert parsed.find_field("ANSWER").constant_value_index == value
        method = parsed.find_method("names")
        assert method.exception_indices == (io_exc,)
        assert method.signature == "()Ljava/util/List<Ljava/lang/String;>;"
        assert method.parsed_descriptor.return_type == ObjectType("java/util/List")
        assert parsed.source_file == "Consts.java"
        assert len(parsed.get_attributes("SourceFile")) == 1

    def test_static_method_args_size(self):
        cf = ClassFile("Util")
        code = code_attribute(cf.cp, bytes([Opcode.RETURN]), max_locals=4)
        cf.add_method(MemberInfo(AccessFlags.STATIC, "f", "(JI[Ljava/lang/String;)V", [code]))
        assert parse_class(cf.to_bytes()).methods[0].args_size == 4


class TestErrors:
    def test_bad_magic(self, hello_bytes):
        data = b"\xca\xfe\xba\xbf" + hello_bytes[4:]
        with pytest.raises(InvalidMagicNumber) as exc_info:
            parse_class(data)
        assert exc_info.value.offset == 0

    def test_bad_magic_stops_before_anything_else(self):
        with pytest.raises(InvalidMagicNumber):
            parse_class(b"\x00\x00\x00\x00")

    def test_every_truncation_is_reported(self, hello_bytes):
        for length in range(len(hello_bytes)):
            with pytest.raises(TruncatedData):
                parse_class(hello_bytes[:length])

    def test_trailing_bytes(self, hello_bytes):
        with pytest.raises(MalformedData):
            parse_class(hello_bytes + b"\x00")

    def test_version_too_old(self):
        cf = hello_class()
        cf.version = (44, 0)
        with pytest.raises(UnsupportedVersion) as exc_info:
            parse_class(cf.to_bytes())
        assert exc_info.value.offset == 6

    def test_version_above_maximum(self, hello_bytes):
        with pytest.raises(UnsupportedVersion):
            parse_class(hello_bytes, max_major_version=51)
        assert parse_class(hello_bytes, max_major_version=52).major_version == 52

    def test_this_class_must_be_class(self):
        cf = hello_class()
        data = bytearray(cf.to_bytes())
        # this_class follows the pool and the access flags
        this_class_offset = 8 + len(cf.cp.to_bytes()) + 2
        struct.pack_into(">H", data, this_class_offset, 1)
        with pytest.raises(TypeMismatch):
            parse_class(bytes(data))

    def test_deeply_nested_annotation_values(self):
        with pytest.raises(MalformedData) as exc_info:
            parse_class(nested_annotation_class(5000).to_bytes())
        assert isinstance(exc_info.value.__cause__, RecursionError)

    def test_shallow_annotation_values_still_parse(self):
        parsed = parse_class(nested_annotation_class(20).to_bytes())
        annotation = parsed.get_attribute("RuntimeVisibleAnnotations").body.annotations[0]
        name, value = annotation.elements[0]
        assert name == "value"
        assert value.tag == "["


class TestSources:
    def test_read_class_file(self, tmp_path, hello_bytes):
        path = tmp_path / "Hello.class"
        path.write_bytes(hello_bytes)
        assert read_class_file(path).name == "Hello"
        assert read_class_file(str(path)).name == "Hello"

    def test_missing_file(self, tmp_path):
        with pytest.raises(IoFailure) as exc_info:
            read_class_file(tmp_path / "Missing.class")
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_read_class_stream(self, hello_bytes):
        assert read_class_stream(io.BytesIO(hello_bytes)).name == "Hello"


class TestClassPath:
    def test_directory_lookup(self, tmp_path, hello_bytes):
        pkg = tmp_path / "com" / "example"
        pkg.mkdir(parents=True)
        (pkg / "Hello.class").write_bytes(hello_bytes)

        with ClassPath() as classpath:
            classpath.add_path(tmp_path)
            assert classpath.find_class("com/example/Hello").name == "Hello"
            assert classpath.find_class("com.example.Hello").name == "Hello"
            assert classpath.find_class("com/example/Missing") is None

    def test_jar_lookup(self, tmp_path, hello_bytes):
        jar = tmp_path / "lib.jar"
        with zipfile.ZipFile(jar, "w") as zf:
            zf.writestr("Hello.class", hello_bytes)

        with ClassPath() as classpath:
            classpath.add_path(jar)
            first = classpath.find_class("Hello")
            assert first.name == "Hello"
            assert classpath.find_class("Hello") is first

    def test_path_string(self, tmp_path, hello_bytes):
        (tmp_path / "Hello.class").write_bytes(hello_bytes)
        other = tmp_path / "other"
        other.mkdir()
        with ClassPath() as classpath:
            classpath.add_paths(f"{other}{os.pathsep}{tmp_path}")
            assert len(classpath.entries) == 2
            assert classpath.find_class("Hello") is not None

    def test_invalid_entry(self, tmp_path):
        with pytest.raises(IoFailure):
            ClassPath().add_path(tmp_path / "nothing-here")

    def test_corrupt_jar(self, tmp_path):
        jar = tmp_path / "broken.jar"
        jar.write_bytes(b"not a zip")
        with pytest.raises(IoFailure):
            ClassPath().add_path(jar)

    def test_version_limit_applies(self, tmp_path, hello_bytes):
        (tmp_path / "Hello.class").write_bytes(hello_bytes)
        with ClassPath(max_major_version=50) as classpath:
            classpath.add_path(tmp_path)
            with pytest.raises(UnsupportedVersion):
                classpath.find_class("Hello")
