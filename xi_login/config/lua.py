"""Embedded Lua runtime for settings scripts."""

from pathlib import Path
from typing import Any

from lupa import LuaError, LuaRuntime, lua_type

from xi_login.config.errors import LuaScriptError
from xi_login.logger.logger import get_logger
from xi_login.logger.types import Category, param

_PRELUDE = """
if not bit then
    local ok, mod = pcall(require, 'bit')
    if ok then bit = mod end
end
function __FILE__() return debug.getinfo(2, 'S').source end
function __LINE__() return debug.getinfo(2, 'l').currentline end
function __FUNC__() return debug.getinfo(2, 'n').name end
"""


class Lua:
    """Lua runtime with the helpers settings scripts expect.

    ``print`` is redirected to the structured logger.
    """

    def __init__(self) -> None:
        self.logger = get_logger().with_category(Category.LUA)
        self.runtime = LuaRuntime(unpack_returned_tuples=True)
        self.runtime.execute(_PRELUDE)
        self.runtime.globals().print = self._print

    def _print(self, *args: Any) -> None:
        self.logger.info(" ".join(self._tostring(arg) for arg in args))

    @staticmethod
    def _tostring(value: Any) -> str:
        if value is None:
            return "nil"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    def execute_file(self, path: Path) -> None:
        """Run a Lua file in the global environment."""
        try:
            self.runtime.globals().dofile(str(path))
        except LuaError as e:
            raise LuaScriptError(path, str(e)) from e

        self.logger.debug("Executed settings script", param("path", str(path)))

    def execute(self, code: str) -> None:
        """Run a chunk of Lua code."""
        self.runtime.execute(code)

    def eval(self, expr: str) -> Any:
        """Evaluate a Lua expression and return it as a Python value."""
        return self.runtime.eval(expr)

    def globals(self) -> Any:
        return self.runtime.globals()

    def table(self) -> Any:
        """Create an empty Lua table."""
        return self.runtime.table()

    @staticmethod
    def is_table(value: Any) -> bool:
        return lua_type(value) == "table"
