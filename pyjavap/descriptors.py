"""
JVM field and method descriptor parsing using Lark.

Grammar per JVMS 4.3.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from lark import Lark, Transformer, Token
from lark.exceptions import LarkError

from .errors import DescriptorError


GRAMMAR_FILE = Path(__file__).parent / "descriptor.lark"


class FieldType(ABC):
    """Base class for decoded descriptor types."""

    @property
    @abstractmethod
    def descriptor(self) -> str:
        pass

    @property
    @abstractmethod
    def java_name(self) -> str:
        """Type as written in Java source, e.g. java.lang.String[]."""
        pass

    @property
    def slot_size(self) -> int:
        """Local variable slots used by this type (1 or 2)."""
        return 1


@dataclass(frozen=True)
class BaseType(FieldType):
    """Primitive type (B, C, D, F, I, J, S, Z) or void (V)."""
    code: str

    @property
    def descriptor(self) -> str:
        return self.code

    @property
    def java_name(self) -> str:
        names = {
            "B": "byte", "C": "char", "D": "double", "F": "float",
            "I": "int", "J": "long", "S": "short", "Z": "boolean", "V": "void"
        }
        return names[self.code]

    @property
    def slot_size(self) -> int:
        if self.code in "JD":
            return 2
        if self.code == "V":
            return 0
        return 1


VOID = BaseType("V")


@dataclass(frozen=True)
class ObjectType(FieldType):
    """Class type (L<internal name>;)."""
    class_name: str

    @property
    def descriptor(self) -> str:
        return f"L{self.class_name};"

    @property
    def java_name(self) -> str:
        return self.class_name.replace("/", ".")


@dataclass(frozen=True)
class ArrayType(FieldType):
    """Array type ([<component>)."""
    component: FieldType

    @property
    def descriptor(self) -> str:
        return "[" + self.component.descriptor

    @property
    def java_name(self) -> str:
        return self.component.java_name + "[]"

    @property
    def dimensions(self) -> int:
        if isinstance(self.component, ArrayType):
            return self.component.dimensions + 1
        return 1

    @property
    def element(self) -> FieldType:
        if isinstance(self.component, ArrayType):
            return self.component.element
        return self.component


@dataclass(frozen=True)
class MethodDescriptor:
    """Parameter types and return type of a method."""
    parameters: tuple[FieldType, ...]
    return_type: FieldType

    @property
    def descriptor(self) -> str:
        params = "".join(p.descriptor for p in self.parameters)
        return f"({params}){self.return_type.descriptor}"

    @property
    def argument_slots(self) -> int:
        return sum(p.slot_size for p in self.parameters)

    @property
    def java_parameters(self) -> str:
        return ", ".join(p.java_name for p in self.parameters)


class DescriptorTransformer(Transformer):
    """Transforms the Lark parse tree into descriptor types."""

    def field_descriptor(self, items):
        return items[0]

    def method_descriptor(self, items):
        *params, return_type = items
        return MethodDescriptor(parameters=tuple(params), return_type=return_type)

    def base_type(self, items):
        return BaseType(str(items[0]))

    def object_type(self, items):
        return ObjectType(str(items[0])[1:-1])

    def array_type(self, items):
        return ArrayType(items[0])

    def return_type(self, items):
        item = items[0]
        if isinstance(item, Token):
            return VOID
        return item


class DescriptorParser:
    """Parses field and method descriptors."""

    def __init__(self):
        with open(GRAMMAR_FILE, "r") as f:
            grammar = f.read()

        self._parser = Lark(
            grammar,
            start=["field_descriptor", "method_descriptor"],
            parser="lalr",
        )
        self._transformer = DescriptorTransformer()

    def _parse(self, text: str, start: str):
        try:
            tree = self._parser.parse(text, start=start)
        except LarkError as exc:
            kind = start.replace("_", " ")
            raise DescriptorError(f"Invalid {kind}: {text!r}") from exc
        return self._transformer.transform(tree)

    def parse_field(self, descriptor: str) -> FieldType:
        return self._parse(descriptor, "field_descriptor")

    def parse_method(self, descriptor: str) -> MethodDescriptor:
        return self._parse(descriptor, "method_descriptor")


@lru_cache(maxsize=None)
def _default_parser() -> DescriptorParser:
    return DescriptorParser()


@lru_cache(maxsize=4096)
def parse_field_descriptor(descriptor: str) -> FieldType:
    """Parse a field descriptor such as ``[Ljava/lang/String;``."""
    return _default_parser().parse_field(descriptor)


@lru_cache(maxsize=4096)
def parse_method_descriptor(descriptor: str) -> MethodDescriptor:
    """Parse a method descriptor such as ``(IJ)V``."""
    return _default_parser().parse_method(descriptor)
