"""
Cursor operations over a shader source buffer

Every function takes the full source and a starting offset, returning the advanced offset.
They never look backwards nor mutate the buffer, so any number of scans can share one string.
"""

WHITESPACE: frozenset[str] = frozenset(" \t\n\r\v\f")
"""ASCII whitespace, the only characters skipped between tokens"""

DELIMITERS: frozenset[str] = (WHITESPACE | frozenset(";{},/["))
"""Characters that end a token (and aren't part of it)"""


def skip_whitespace(code: str, offset: int=0) -> int:
    """Skip any run of whitespace, `// line` and `/* block */` comments"""
    length = len(code)

    while True:
        while (offset < length) and (code[offset] in WHITESPACE):
            offset += 1

        # Line comments stop before the newline, next pass eats it
        if code.startswith("//", offset):
            while (offset < length) and (code[offset] not in "\r\n"):
                offset += 1

        # Unterminated block comments consume everything
        elif code.startswith("/*", offset):
            end = code.find("*/", offset + 2)
            offset = (length if (end < 0) else end + 2)

        else:
            return offset


def next_token(code: str, offset: int=0) -> tuple[str, int]:
    """Collect characters until a delimiter, which is not consumed"""
    length = len(code)
    start = offset

    while (offset < length) and (code[offset] not in DELIMITERS):
        offset += 1

    return (code[start:offset], offset)


def skip_brackets(code: str, offset: int) -> int:
    """From a `[`, advance past the next `]` or to the end of buffer. No nesting"""
    end = code.find("]", offset + 1)
    return (len(code) if (end < 0) else end + 1)


def skip_statement(code: str, offset: int) -> int:
    """Advance past the next `;` outside comments, or to the end of buffer"""
    length = len(code)

    while (offset := skip_whitespace(code, offset)) < length:
        if (code[offset] == ";"):
            return offset + 1
        _, end = next_token(code, offset)
        offset = max(end, offset + 1)

    return length


def find_token(code: str, token: str, offset: int=0) -> int:
    """Offset of the next whole token equal to `token` outside comments, else -1"""
    length = len(code)

    while (offset := skip_whitespace(code, offset)) < length:
        word, end = next_token(code, offset)
        if (word == token):
            return offset

        # Stray delimiters yield empty tokens
        offset = max(end, offset + 1)

    return -1

# ---------------------------------------------------------------------------- #

class __pytest__:
    def test_skip_whitespace(self):
        assert skip_whitespace("   float") == 3
        assert skip_whitespace("\t\r\n x", 0) == 4
        assert skip_whitespace("abc", 1) == 1
        assert skip_whitespace("") == 0

    def test_skip_comments(self):
        assert skip_whitespace("// hello\nfloat") == 9
        assert skip_whitespace("/* a */ /* b */\n// c\r\n  x") == 24
        assert skip_whitespace("/* never closed", 0) == 15
        assert skip_whitespace("// last line") == 12

    def test_division_is_not_comment(self):
        assert skip_whitespace(" / 2") == 1

    def test_next_token(self):
        assert next_token("float x;") == ("float", 5)
        assert next_token("float x;", 6) == ("x", 7)
        assert next_token("b[4]", 0) == ("b", 1)
        assert next_token("a,b", 0) == ("a", 1)
        assert next_token("S{", 0) == ("S", 1)
        assert next_token("x/*c*/", 0) == ("x", 1)
        assert next_token("tail") == ("tail", 4)
        assert next_token(";", 0) == ("", 0)

    def test_skip_brackets(self):
        assert skip_brackets("b[4];", 1) == 4
        assert skip_brackets("b[4", 1) == 3

    def test_skip_statement(self):
        assert skip_statement("Missing m; float f;", 0) == 10
        assert skip_statement("m /* ; */ // ;\n; x", 0) == 16
        assert skip_statement("no end", 0) == 6

    def test_find_token(self):
        assert find_token("uniform float a;", "uniform") == 0
        assert find_token("float a; uniform float b;", "uniform") == 9
        assert find_token("uniform float a;", "uniform", 1) == -1
        assert find_token("", "uniform") == -1

    def test_find_token_ignores_lookalikes(self):
        assert find_token("float uniforms; // uniform\n/* uniform */", "uniform") == -1
        assert find_token("my_struct x; struct S", "struct") == 13
        assert find_token("a / b;uniform", "uniform") == 6
