from typing import Literal, Optional

from attrs import Factory, define

from shaderpath import logger
from shaderpath.lexer import (
    find_token,
    next_token,
    skip_brackets,
    skip_statement,
    skip_whitespace,
)
from shaderpath.registry import BuiltinTypes
from shaderpath.structs import StructTable, build_structs

Qualifier = Literal[
    "uniform",
    "attribute",
]


def extract(
    keyword: Qualifier,
    code: str,
    results: list[str],
    registry: BuiltinTypes,
    structs: StructTable,
) -> list[str]:
    """
    Append the addressable paths of every `keyword` declaration in the source to `results`

    Builtin-typed declarators are emitted by their bare name, struct-typed ones once per
    flattened field as `name.field.leaf`, in field declaration order. Declarations of unknown
    types are skipped whole. Nothing is ever cleared from `results`, which is also returned
    """
    offset = 0

    while (start := find_token(code, keyword, offset)) >= 0:
        offset = _parse_declaration(code, start + len(keyword), results, registry, structs)

    return results


def _parse_declaration(
    code: str,
    offset: int,
    results: list[str],
    registry: BuiltinTypes,
    structs: StructTable,
) -> int:
    """Parse one declaration after its keyword, returns where the keyword search resumes"""
    length = len(code)
    paths: Optional[list[str]] = None

    # Skip precision qualifiers, `uniform highp float`
    while True:
        if (offset := skip_whitespace(code, offset)) >= length:
            return length
        kind, offset = next_token(code, offset)
        if not registry.is_precision(kind):
            break

    if not registry.is_builtin(kind):
        if (paths := structs.get(kind)) is None:
            logger.debug(f"Skipping declaration of unknown type '{kind}'")
            return skip_statement(code, offset)

    while True:
        if (offset := skip_whitespace(code, offset)) >= length:
            return length

        if (code[offset] == ";"):
            return offset + 1

        variable, offset = next_token(code, offset)

        if (not variable):
            return offset

        if (paths is None):
            results.append(variable)
        else:
            results.extend(f"{variable}.{path}" for path in paths)

        if (offset := skip_whitespace(code, offset)) >= length:
            return length

        if (code[offset] == "["):
            offset = skip_whitespace(code, skip_brackets(code, offset))

        if (offset < length) and (code[offset] == ","):
            offset += 1
            continue

        return offset

# ------------------------------------------------------------------------------------------------ #

@define
class ShaderDeclarations:
    uniforms: list[str] = Factory(list)
    """Uniform paths in order of discovery"""

    attributes: list[str] = Factory(list)
    """Attribute paths in order of discovery"""


@define
class ShaderScanner:
    """Extracts every addressable uniform and attribute path of shader sources"""

    registry: BuiltinTypes = Factory(BuiltinTypes)

    keywords: dict[Qualifier, tuple[str, ...]] = Factory(lambda: dict(
        uniform=("uniform",),
        attribute=("attribute",),
    ))
    """Declaration keywords whose paths are collected as uniforms or attributes"""

    def structs(self, code: str) -> StructTable:
        return build_structs(code, self.registry)

    def extract(self,
        keyword: Qualifier,
        code: str,
        results: Optional[list[str]] = None,
        structs: Optional[StructTable] = None,
    ) -> list[str]:
        if (structs is None):
            structs = self.structs(code)
        if (results is None):
            results = list()
        return extract(keyword, code, results, self.registry, structs)

    def scan(self, code: str) -> ShaderDeclarations:
        """Find all uniform and attribute paths of a single source unit"""
        structs = self.structs(code)
        declarations = ShaderDeclarations()

        for keyword in self.keywords.get("uniform", ()):
            self.extract(keyword, code, declarations.uniforms, structs)
        for keyword in self.keywords.get("attribute", ()):
            self.extract(keyword, code, declarations.attributes, structs)

        logger.debug((
            f"Scanned {len(declarations.uniforms)} uniform and "
            f"{len(declarations.attributes)} attribute paths, "
            f"{len(structs)} structs"
        ))
        return declarations

# ------------------------------------------------------------------------------------------------ #

class __pytest__:
    def _uniforms(self, code: str) -> list[str]:
        return ShaderScanner().extract("uniform", code)

    def test_no_keywords(self):
        assert self._uniforms("") == []
        assert self._uniforms("void main() { gl_FragColor = vec4(1.0); }") == []
        assert self._uniforms("struct S { float x; };") == []

    def test_builtin_list(self):
        assert self._uniforms("uniform float a, b[4];") == ["a", "b"]
        assert self._uniforms("uniform float b[4], c;") == ["b", "c"]
        assert self._uniforms("uniform vec3 position; uniform sampler2D tex;") == ["position", "tex"]

    def test_struct(self):
        code = "struct S { float x; float y; }; uniform S test;"
        assert self._uniforms(code) == ["test.x", "test.y"]

    def test_nested_struct(self):
        code = (
            "struct Inner { float a2; };"
            "struct Outer { Inner f; float e; };"
            "uniform Outer test;"
        )
        assert self._uniforms(code) == ["test.f.a2", "test.e"]

    def test_struct_list_order(self):
        code = (
            "struct Inner { float a2; };"
            "struct Outer { Inner f; float e; };"
            "uniform Outer a, b;"
        )
        assert self._uniforms(code) == ["a.f.a2", "a.e", "b.f.a2", "b.e"]

    def test_deep_paths(self):
        code = """
            struct var3_t { int a2; int b2; int c2; };
            struct var_t  { int a; int b; int c; var3_t f; };
            struct var2_t { var_t other; int d; int e; };

            uniform var2_t test;
        """
        uniforms = self._uniforms(code)
        assert "test.other.f.a2" in uniforms
        assert uniforms[-1] == "test.e"
        assert len(uniforms) == 8

    def test_unknown_type_skipped(self):
        code = "uniform Missing m; uniform float ok;"
        assert self._uniforms(code) == ["ok"]

    def test_unknown_type_semicolon_in_line(self):
        code = "uniform Missing m; float f; uniform int i;"
        assert self._uniforms(code) == ["i"]

    def test_unknown_type_commented_semicolon(self):
        code = "uniform Missing /* ; uniform float ghost; */ m; uniform float real;"
        assert self._uniforms(code) == ["real"]
        code = "uniform Missing // ; uniform float ghost;\n m; uniform float real;"
        assert self._uniforms(code) == ["real"]

    def test_precision_struct_fields(self):
        code = "struct S { highp float x; }; uniform S s;"
        assert self._uniforms(code) == ["s.x"]

    def test_custom_keywords(self):
        scanner = ShaderScanner(keywords=dict(uniform=("uniform", "buffer"), attribute=()))
        declarations = scanner.scan("attribute vec3 p; buffer float b; uniform int u;")
        assert declarations.uniforms == ["u", "b"]
        assert declarations.attributes == []

    def test_precision(self):
        assert self._uniforms("uniform highp float time; uniform lowp vec4 tint;") == ["time", "tint"]

    def test_comments(self):
        code = """
            // uniform float commented;
            /* uniform float blocked; */
            uniform /* inline */ float // type
                visible;
        """
        assert self._uniforms(code) == ["visible"]

    def test_lookalike_identifiers(self):
        assert self._uniforms("float my_uniform; vec3 uniforms; uniform int real;") == ["real"]

    def test_layout_prefix(self):
        assert self._uniforms("layout(binding=0) uniform sampler2D image;") == ["image"]

    def test_duplicates_kept(self):
        code = "uniform float a;\nuniform float a;"
        assert self._uniforms(code) == ["a", "a"]

    def test_truncated(self):
        assert self._uniforms("uniform") == []
        assert self._uniforms("uniform float") == []
        assert self._uniforms("uniform float a,") == ["a"]
        assert self._uniforms("uniform float c[") == ["c"]

    def test_appends_results(self):
        results = ["existing"]
        scanner = ShaderScanner()
        scanner.extract("uniform", "uniform int i;", results)
        assert results == ["existing", "i"]

    def test_forward_struct_reference(self):
        code = "uniform Later l; struct Later { float x; };"
        assert self._uniforms(code) == ["l.x"]

    def test_attributes(self):
        code = """
            attribute vec3 a_position;
            attribute vec2 a_uv, a_uv2;
            uniform mat4 u_mvp;
        """
        declarations = ShaderScanner().scan(code)
        assert declarations.attributes == ["a_position", "a_uv", "a_uv2"]
        assert declarations.uniforms == ["u_mvp"]

    def test_independent_scans(self):
        scanner = ShaderScanner()
        first = scanner.scan("struct S { float x; }; uniform S s;")
        second = scanner.scan("uniform S s; uniform float f;")
        assert first.uniforms == ["s.x"]
        assert second.uniforms == ["f"]

    def test_registered_type(self):
        scanner = ShaderScanner()
        assert scanner.extract("uniform", "uniform half h;") == []
        scanner.registry.register("half")
        assert scanner.extract("uniform", "uniform half h;") == ["h"]
