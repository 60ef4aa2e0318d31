import os
import sys
from pathlib import Path
from typing import Optional

import rich
from cyclopts import App
from rich.table import Table

import shaderpath
from shaderpath import logger
from shaderpath.declarations import ShaderScanner

app = App(
    name="shaderpath",
    version=shaderpath.__version__,
    help=shaderpath.__about__,
)

def make_scanner(
    types: Optional[list[str]] = None,
    fragments: Optional[list[str]] = None,
) -> ShaderScanner:
    scanner = ShaderScanner()
    for name in (types or []):
        scanner.registry.register(name)
    for name in (fragments or []):
        scanner.registry.register(name, fragment=True)
    return scanner

def read_sources(paths: tuple[Path, ...]):
    for path in map(Path, paths):
        if not path.exists():
            logger.error(f"Shader file doesn't exist ({path})")
            continue
        yield (path, path.read_text(encoding="utf-8"))

@app.command
def scan(*paths: Path,
    types: Optional[list[str]] = None,
    fragments: Optional[list[str]] = None,
) -> None:
    """List the uniform and attribute paths declared in shader files

    Parameters
    ----------
    paths
        Shader source files to scan
    types
        Extra builtin type names, matched exactly
    fragments
        Extra builtin type name fragments, matched anywhere in a type
    """
    scanner = make_scanner(types, fragments)

    for path, code in read_sources(paths):
        declarations = scanner.scan(code)
        table = Table(title=str(path))
        table.add_column("Qualifier", style="dim")
        table.add_column("Path", style="bold")
        for name in declarations.uniforms:
            table.add_row("uniform", name)
        for name in declarations.attributes:
            table.add_row("attribute", name)
        rich.print(table)

@app.command
def structs(*paths: Path,
    types: Optional[list[str]] = None,
    fragments: Optional[list[str]] = None,
) -> None:
    """List the flattened fields of every struct defined in shader files"""
    scanner = make_scanner(types, fragments)

    for path, code in read_sources(paths):
        table = Table(title=str(path))
        table.add_column("Struct", style="dim")
        table.add_column("Fields", style="bold")
        for name, fields in scanner.structs(code).structs.items():
            table.add_row(name, ", ".join(fields))
        rich.print(table)

def main():
    logger.remove()
    logger.add(sys.stderr, level=os.environ.get("LOGLEVEL", "INFO").upper())
    app(sys.argv[1:])


# ------------------------------------------------------------------------------------------------ #

class __pytest__:
    CODE = """
        struct Light { vec3 color; float power; };
        uniform Light light;
        attribute vec3 position;
    """

    def test_make_scanner(self):
        scanner = make_scanner(types=["half"], fragments=["f16vec"])
        assert scanner.registry.is_builtin("half")
        assert scanner.registry.is_builtin("f16vec2")

    def test_scan(self, tmp_path, capsys):
        (path := tmp_path/"light.frag").write_text(self.CODE)
        scan(path)
        output = capsys.readouterr().out
        assert "light.color" in output
        assert "light.power" in output
        assert "position" in output

    def test_structs(self, tmp_path, capsys):
        (path := tmp_path/"light.frag").write_text(self.CODE)
        structs(path)
        output = capsys.readouterr().out
        assert "Light" in output
        assert "color, power" in output

    def test_missing_file(self, tmp_path, capsys):
        scan(tmp_path/"missing.frag")
        assert "Qualifier" not in capsys.readouterr().out

if __name__ == "__main__":
    main()
