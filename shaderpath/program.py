from __future__ import annotations

import os
import re
from enum import Enum
from typing import Any, Optional, Self, Union

import moderngl
from attrs import Factory, define, field

from shaderpath import logger
from shaderpath.declarations import ShaderDeclarations, ShaderScanner


class ShaderStage(Enum):
    """Stages a program links, valued by their moderngl.Context.program keyword"""
    Vertex         = "vertex_shader"
    Fragment       = "fragment_shader"
    Geometry       = "geometry_shader"
    TessControl    = "tess_control_shader"
    TessEvaluation = "tess_evaluation_shader"


NOT_FOUND: int = -1
"""Handle of a path the linked program doesn't expose (optimized out, misspelled)"""

UNKNOWN: int = 0
"""Handle returned when looking up a path never declared"""


@define
class ShaderDumper:
    program: ShaderProgram
    """Program that failed linking"""

    error: str
    """str(moderngl.Error) exception"""

    sources: dict[ShaderStage, str]
    """Potentially faulty stage sources"""

    context: int = 5
    """Number of lines to show before and after the faulty line"""

    _parser = re.compile(r"^0\((\d+)\)\s*:\s*error\s* (\w+):\s(.*)", re.MULTILINE)

    @property
    def stage(self) -> Optional[ShaderStage]:
        """Simple heuristic to choose what stage caused the error"""
        for stage in self.sources:
            if (stage.value in self.error):
                return stage
        return None

    @property
    def lines(self) -> list[str]:
        return self.sources[self.stage].splitlines()

    def dump(self) -> None:
        if (self.stage is None):
            return None

        import rich
        from rich.panel import Panel
        from rich.syntax import Syntax

        # Visual only: Print highlighted code panel of the first error
        for match in ShaderDumper._parser.finditer(self.error):
            lineno, errno, message = match.groups()
            lineno = int(lineno)
            start  = max(0, lineno - self.context - 1)
            end    = min(len(self.lines), lineno + self.context)
            code   = []

            for i, line in enumerate(self.lines[start:end]):
                div = (">" if (i+start+1 == lineno) else "|")
                code.append(f"({i+start+1:3d}) {div} {line}")

            rich.print(Panel(
                Syntax(code='\n'.join(code), lexer="glsl"),
                title=f"({errno} at {self.stage.name} shader, Line {lineno}): {message}",
            ))
            break


@define
class ShaderProgram:
    """
    Links shader stages and resolves every uniform and attribute path they declare

    Paths are scanned from the sources on `load`, including flattened struct members such as
    `light.color` or `test.other.f.a2`, and resolved to handles on `finalize`
    """

    context: moderngl.Context = field(default=None, repr=False)
    """OpenGL context to link with, a standalone one is created when unset"""

    scanner: ShaderScanner = Factory(ShaderScanner)

    stages: dict[ShaderStage, str] = field(factory=dict, repr=False)
    """Sources loaded since the last finalize"""

    declarations: dict[ShaderStage, ShaderDeclarations] = Factory(dict)
    """Paths scanned from each loaded stage, pending resolution"""

    uniforms: dict[str, int] = Factory(dict)
    """Resolved uniform path handles"""

    attributes: dict[str, int] = Factory(dict)
    """Resolved attribute path handles"""

    log: list[str] = Factory(list)
    """Diagnostics of the last load and finalize calls"""

    program: moderngl.Program = field(default=None, repr=False)
    """ModernGL 'Compiled Shaders' object"""

    SKIP_GPU: bool = os.environ.get("SKIP_GPU") == "1"
    """Do not link shaders, only scan their paths"""

    @property
    def opengl(self) -> moderngl.Context:
        if (self.context is None):
            self.context = moderngl.create_standalone_context()
        return self.context

    @property
    def pending_uniforms(self) -> list[str]:
        return [path for item in self.declarations.values() for path in item.uniforms]

    @property
    def pending_attributes(self) -> list[str]:
        return [path for item in self.declarations.values() for path in item.attributes]

    # # Builtin types

    def register_builtin_type(self, name: str, fragment: bool=False) -> Self:
        self.scanner.registry.register(name, fragment)
        return self

    def import_std_builtin_types(self) -> Self:
        self.scanner.registry.reset()
        return self

    # # Loading

    def load(self, stage: Union[ShaderStage, str], code: str) -> Self:
        stage = ShaderStage(stage)

        # Replaced stages move to the end of the load order
        if (stage in self.stages):
            self._log(f"Replacing previously loaded {stage.name} shader", warning=True)
            self.stages.pop(stage)
            self.declarations.pop(stage, None)

        self.stages[stage] = code
        self.declarations[stage] = self.scanner.scan(code)
        return self

    def finalize(self) -> bool:
        """Link the loaded stages and resolve all pending paths, returns success"""
        if (not self.stages):
            self._log("No shaders were loaded before finalizing")
            return False

        if (self.program is not None):
            self._log("Previous program is still active, shutting it down", warning=True)
            self.release()

        self.uniforms.clear()
        self.attributes.clear()
        attributes, uniforms = (self.pending_attributes, self.pending_uniforms)
        stages, self.stages = (self.stages, dict())
        self.declarations.clear()

        if self.SKIP_GPU:
            logger.info("Skipping shaders linking (SKIP_GPU=1)")
            return True

        try:
            self.program = self.opengl.program(**{
                stage.value: code for (stage, code) in stages.items()
            })
        except moderngl.Error as error:
            self._log(f"Error linking shaders: {error}")
            ShaderDumper(program=self, error=str(error), sources=stages).dump()
            return False

        for path in attributes:
            self.attributes.setdefault(path, self._resolve(path))
        for path in uniforms:
            self.uniforms.setdefault(path, self._resolve(path))

        self.log.clear()
        return True

    def _resolve(self, path: str) -> int:
        if (member := self.program.get(path, None)) is None:
            logger.warning(f"Shader path '{path}' isn't exposed by the linked program")
            return NOT_FOUND
        return member.location

    # # Handles

    def get_uniform(self, path: str) -> int:
        return self.uniforms.get(path, UNKNOWN)

    def get_attribute(self, path: str) -> int:
        return self.attributes.get(path, UNKNOWN)

    def set_uniform(self, path: str, value: Any=None) -> None:
        if (self.program is None):
            raise RuntimeError("Shader hasn't been linked yet")
        if (value is not None) and (uniform := self.program.get(path, None)):
            uniform.value = value

    # # Lifetime

    def release(self) -> None:
        if (self.program is not None):
            self.program.release()
            self.program = None

    def unload(self) -> None:
        self.release()
        self.stages.clear()
        self.declarations.clear()
        self.uniforms.clear()
        self.attributes.clear()

    def _log(self, message: str, *, warning: bool=False) -> str:
        (logger.warning if warning else logger.error)(message)
        self.log.append(message)
        return message

# ------------------------------------------------------------------------------------------------ #

class __pytest__:

    @define
    class Member:
        location: int
        value: Any = None

    @define
    class Program:
        members: dict
        released: bool = False

        def get(self, key, default=None):
            return self.members.get(key, default)

        def release(self):
            self.released = True

    @define
    class Context:
        members: dict = Factory(dict)
        error: str = None
        linked: list = Factory(list)

        def program(self, **stages):
            if self.error:
                raise moderngl.Error(self.error)
            self.linked.append(stages)
            return __pytest__.Program(members=dict(self.members))

    VERTEX = """
        attribute vec3 position;
        attribute vec2 uv;
        uniform mat4 mvp;
    """

    FRAGMENT = """
        struct Light { vec3 color; float power; };
        uniform Light light;
        uniform float unused;
    """

    def _program(self, **members) -> ShaderProgram:
        members = {name: __pytest__.Member(location) for (name, location) in members.items()}
        return ShaderProgram(context=__pytest__.Context(members=members), SKIP_GPU=False)

    def test_resolve(self):
        shader = self._program(**{"position": 0, "uv": 1, "mvp": 3, "light.color": 4, "light.power": 5})
        shader.load(ShaderStage.Vertex, self.VERTEX)
        shader.load("fragment_shader", self.FRAGMENT)
        assert shader.pending_uniforms == ["mvp", "light.color", "light.power", "unused"]
        assert shader.pending_attributes == ["position", "uv"]
        assert shader.finalize()
        assert shader.context.linked[0].keys() == {"vertex_shader", "fragment_shader"}
        assert shader.get_attribute("uv") == 1
        assert shader.get_uniform("light.power") == 5
        assert shader.get_uniform("unused") == NOT_FOUND
        assert shader.get_uniform("nothing") == UNKNOWN
        assert shader.pending_uniforms == []
        assert shader.log == []

    def test_set_uniform(self):
        import pytest
        shader = self._program(**{"mvp": 0})
        with pytest.raises(RuntimeError):
            shader.set_uniform("mvp", 1.0)
        shader.load(ShaderStage.Vertex, self.VERTEX).finalize()
        shader.set_uniform("mvp", 2.0)
        shader.set_uniform("missing", 2.0)
        assert shader.program.get("mvp").value == 2.0

    def test_nothing_loaded(self):
        shader = self._program()
        assert not shader.finalize()
        assert len(shader.log) == 1

    def test_link_error(self):
        shader = self._program()
        shader.context.error = "fragment_shader\n0(3) : error C1008: undefined variable \"x\""
        shader.load(ShaderStage.Fragment, self.FRAGMENT)
        assert not shader.finalize()
        assert shader.program is None
        assert "undefined variable" in shader.log[-1]
        assert shader.get_uniform("light.color") == UNKNOWN

    def test_relink_releases(self):
        shader = self._program(mvp=2)
        shader.load(ShaderStage.Vertex, self.VERTEX).finalize()
        previous = shader.program
        shader.load(ShaderStage.Vertex, self.VERTEX)
        assert shader.finalize()
        assert previous.released
        assert shader.program is not previous

    def test_skip_gpu(self):
        shader = self._program(mvp=2)
        shader.SKIP_GPU = True
        shader.load(ShaderStage.Vertex, self.VERTEX)
        assert shader.finalize()
        assert shader.context.linked == []
        assert shader.get_uniform("mvp") == UNKNOWN

    def test_replaced_stage_paths(self):
        shader = self._program(new=7)
        shader.load(ShaderStage.Vertex, "uniform float old;")
        shader.load(ShaderStage.Vertex, "uniform float new;")
        assert shader.pending_uniforms == ["new"]
        assert shader.finalize()
        assert shader.get_uniform("new") == 7
        assert shader.get_uniform("old") == UNKNOWN
        assert "old" not in shader.uniforms

    def test_builtin_types(self):
        shader = self._program()
        shader.register_builtin_type("half")
        shader.load(ShaderStage.Vertex, "uniform half h;")
        assert shader.pending_uniforms == ["h"]
        shader.import_std_builtin_types()
        shader.load(ShaderStage.Fragment, "uniform half g;")
        assert shader.pending_uniforms == ["h"]

    def test_unload(self):
        shader = self._program(mvp=2)
        shader.load(ShaderStage.Vertex, self.VERTEX).finalize()
        program = shader.program
        shader.unload()
        assert program.released
        assert shader.uniforms == {}
        assert shader.get_uniform("mvp") == UNKNOWN
