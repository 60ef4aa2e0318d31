from typing import Self

from attrs import Factory, define
from ordered_set import OrderedSet

DEFAULT_TYPES: tuple[str, ...] = (
    "int",
    "uint",
    "bool",
    "float",
    "double",
    "atomic_uint",
)

# Families spelled with dimension or precision suffixes, vec3, dmat4x3, usampler2DArray..
DEFAULT_FRAGMENTS: tuple[str, ...] = (
    "vec",
    "mat",
    "image",
    "sampler",
)

DEFAULT_PRECISIONS: tuple[str, ...] = (
    "lowp",
    "mediump",
    "highp",
)

# ------------------------------------------------------------------------------------------------ #

@define
class BuiltinTypes:
    """Type names that never need a struct table lookup"""

    exact: OrderedSet[str] = Factory(lambda: OrderedSet(DEFAULT_TYPES))
    """Names matched by whole spelling"""

    fragments: OrderedSet[str] = Factory(lambda: OrderedSet(DEFAULT_FRAGMENTS))
    """Names matched anywhere inside a type's spelling"""

    precisions: OrderedSet[str] = Factory(lambda: OrderedSet(DEFAULT_PRECISIONS))
    """Qualifiers that may sit between a declaration keyword and its type"""

    def register(self, name: str, fragment: bool=False) -> Self:
        (self.fragments if fragment else self.exact).add(name)
        return self

    def reset(self) -> Self:
        """Forget any registered types, restoring the defaults"""
        self.exact = OrderedSet(DEFAULT_TYPES)
        self.fragments = OrderedSet(DEFAULT_FRAGMENTS)
        return self

    def is_builtin(self, name: str) -> bool:
        if (name in self.exact):
            return True
        return any((fragment in name) for fragment in self.fragments)

    def is_precision(self, name: str) -> bool:
        return (name in self.precisions)

    def __contains__(self, name: str) -> bool:
        return self.is_builtin(name)

# ------------------------------------------------------------------------------------------------ #

class __pytest__:
    def test_exact(self):
        types = BuiltinTypes()
        assert types.is_builtin("float")
        assert types.is_builtin("atomic_uint")
        assert not types.is_builtin("floats")
        assert not types.is_builtin("Light")

    def test_fragments(self):
        types = BuiltinTypes()
        assert types.is_builtin("vec3")
        assert types.is_builtin("dmat4x3")
        assert types.is_builtin("usampler2DArray")
        assert types.is_builtin("image2D")
        assert "ivec2" in types

    def test_register(self):
        types = BuiltinTypes().register("half").register("f16vec", fragment=True)
        assert types.is_builtin("half")
        assert types.is_builtin("f16vec4")
        assert not types.is_builtin("hal")

    def test_reset(self):
        types = BuiltinTypes().register("half")
        assert not types.reset().is_builtin("half")
        assert types.is_builtin("int")

    def test_precision(self):
        types = BuiltinTypes()
        assert types.is_precision("highp")
        assert not types.is_precision("float")
