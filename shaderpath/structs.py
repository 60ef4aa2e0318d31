from collections.abc import Iterator
from typing import Optional

from attrs import Factory, define

from shaderpath import logger
from shaderpath.lexer import find_token, next_token, skip_brackets, skip_whitespace
from shaderpath.registry import BuiltinTypes

STRUCT_KEYWORD: str = "struct"


@define
class StructTable:
    """Struct names mapped to their ordered, fully flattened field paths"""

    structs: dict[str, list[str]] = Factory(dict)

    def get(self, name: str) -> Optional[list[str]]:
        return self.structs.get(name)

    def add(self, name: str, fields: list[str]) -> bool:
        """Commit a struct, the first definition of a name wins"""
        if (name in self.structs):
            logger.debug(f"Ignoring redefinition of struct '{name}'")
            return False
        self.structs[name] = fields
        return True

    def __contains__(self, name: str) -> bool:
        return (name in self.structs)

    def __getitem__(self, name: str) -> list[str]:
        return self.structs[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.structs)

    def __len__(self) -> int:
        return len(self.structs)


def build_structs(code: str, registry: BuiltinTypes=None) -> StructTable:
    """
    Scan the whole source once for `struct Name { ... }` blocks

    Struct-typed fields are flattened when their struct is defined, so any struct in the table
    already lists its leaf paths as `field.inner.leaf`. Only structs defined earlier in the source
    can be referenced, a forward reference falls back to using the type token itself as the path.
    A comma list keeps its type for every declarator, so `Inner p, q;` flattens both `p` and `q`
    """
    registry = (registry or BuiltinTypes())
    table = StructTable()
    offset = 0

    while (start := find_token(code, STRUCT_KEYWORD, offset)) >= 0:
        offset = _parse_struct(code, start + len(STRUCT_KEYWORD), registry, table)

    return table


def _parse_struct(code: str, offset: int, registry: BuiltinTypes, table: StructTable) -> int:
    """Parse one struct after its keyword, returns where the outer search resumes"""
    length = len(code)
    after = offset

    name, offset = next_token(code, skip_whitespace(code, offset))
    offset = skip_whitespace(code, offset)

    if (not name) or (offset >= length) or (code[offset] != "{"):
        return after

    fields: list[str] = []
    paths: Optional[list[str]] = None
    kind: Optional[str] = None
    offset += 1

    while True:
        if (offset := skip_whitespace(code, offset)) >= length:
            logger.debug(f"Struct '{name}' body never closes, discarding it")
            return length

        if (code[offset] == "}"):
            break

        # A comma continues the previous field's type
        if (kind is None):
            kind, offset = next_token(code, offset)

            if (not kind):
                offset += 1
                continue

            # Precision qualifiers, `highp float x;`
            if registry.is_precision(kind):
                kind = None
                continue

            if registry.is_builtin(kind):
                paths = None
            elif (paths := table.get(kind)) is None:
                fields.append(kind)
                kind = None
                offset = _skip_separator(code, offset)
                continue

            if (offset := skip_whitespace(code, offset)) >= length:
                return length

        variable, offset = next_token(code, offset)

        if (not variable):
            kind = None
            offset += (code[offset] != "}")
            continue

        if (paths is None):
            fields.append(variable)
        else:
            fields.extend(f"{variable}.{path}" for path in paths)

        offset = skip_whitespace(code, offset)

        if (offset < length) and (code[offset] == "["):
            offset = skip_whitespace(code, skip_brackets(code, offset))

        if (offset < length) and (code[offset] == ","):
            offset += 1
            continue

        kind = None
        offset = _skip_separator(code, offset)

    table.add(name, fields)
    return offset + 1


def _skip_separator(code: str, offset: int) -> int:
    """Consume a single trailing `,` or `;` after optional whitespace"""
    offset = skip_whitespace(code, offset)
    if (offset < len(code)) and (code[offset] in ",;"):
        return offset + 1
    return offset

# ---------------------------------------------------------------------------- #

class __pytest__:
    def test_builtin_fields(self):
        table = build_structs("struct S { float x; float y; };")
        assert table["S"] == ["x", "y"]

    def test_nested_fields(self):
        table = build_structs((
            "struct Inner { float a2; };"
            "struct Outer { Inner f; float e; };"
        ))
        assert table["Inner"] == ["a2"]
        assert table["Outer"] == ["f.a2", "e"]

    def test_deep_nesting(self):
        table = build_structs("""
            struct var3_t { int a2; int b2; int c2; };
            struct var_t  { int a; int b; int c; var3_t f; };
            struct var2_t { var_t other; int d; int e; };
        """)
        assert table["var2_t"] == [
            "other.a", "other.b", "other.c",
            "other.f.a2", "other.f.b2", "other.f.c2",
            "d", "e",
        ]

    def test_comma_lists(self):
        table = build_structs((
            "struct Inner { float a, b; };"
            "struct Outer { Inner p, q; vec3 c; };"
        ))
        assert table["Inner"] == ["a", "b"]
        assert table["Outer"] == ["p.a", "p.b", "q.a", "q.b", "c"]

    def test_arrays(self):
        table = build_structs("struct Light { vec3 color[4]; float power[2], range; mat4 m; };")
        assert table["Light"] == ["color", "power", "range", "m"]

    def test_comments_inside(self):
        table = build_structs("""
            struct /* named */ Material // trailing
            {
                // float ignored;
                vec4 albedo; /* float hidden; */
                float roughness;
            };
        """)
        assert table["Material"] == ["albedo", "roughness"]

    def test_forward_reference_falls_back(self):
        table = build_structs((
            "struct A { B b; float x; };"
            "struct B { float y; };"
        ))
        assert table["A"] == ["B", "b", "x"]

    def test_unterminated(self):
        assert "Foo" not in build_structs("struct Foo {")
        assert "Foo" not in build_structs("struct Foo { float a; float b")
        assert len(build_structs("struct")) == 0

    def test_missing_brace(self):
        table = build_structs("struct Broken float x; struct Fine { int i; };")
        assert "Broken" not in table
        assert table["Fine"] == ["i"]

    def test_anonymous_dropped(self):
        assert len(build_structs("struct { float x; } s;")) == 0

    def test_keyword_lookalikes(self):
        table = build_structs("float my_struct; // struct Ghost { float g; };\nstruct Real { int r; };")
        assert list(table) == ["Real"]

    def test_first_definition_wins(self):
        table = build_structs("struct S { int a; }; struct S { int b; };")
        assert table["S"] == ["a"]

    def test_precision_fields(self):
        table = build_structs("struct S { highp float x; mediump vec3 c, d; lowp };")
        assert table["S"] == ["x", "c", "d"]

    def test_stray_delimiters(self):
        table = build_structs("struct S { float x; , ; float };  struct T { int t; };")
        assert table["S"] == ["x"]
        assert table["T"] == ["t"]

    def test_idempotent(self):
        code = "struct Inner { float a2; }; struct Outer { Inner f; float e; };"
        assert build_structs(code) == build_structs(code)

    def test_custom_registry(self):
        code = "struct S { half h; };"
        assert build_structs(code)["S"] == ["half", "h"]
        assert build_structs(code, BuiltinTypes().register("half"))["S"] == ["h"]
