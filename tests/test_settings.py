from __future__ import annotations

import shutil

import pytest

from xi_login.config.errors import LuaScriptError, MissingKeyError, ParseValueError, SettingsError
from xi_login.config.lua import Lua
from xi_login.config.settings import (
    Settings,
    apply_env_variables,
    load_lua_from_dir,
    parse_env_value,
    populate_values,
)


def test_it_executes_lua(repo_root) -> None:
    settings = Settings.load(repo_root, environ={})
    assert settings.lua.eval("xi.settings.main.SERVER_NAME") == "Nameless"


def test_it_loads_string_settings(repo_root) -> None:
    settings = Settings.load(repo_root, environ={})
    assert settings.try_get("main.SERVER_NAME", str) == "Nameless"


def test_it_loads_int_bool_and_float_settings(repo_root) -> None:
    settings = Settings.load(repo_root, environ={})
    assert settings.try_get("main.RIVERNE_PORTERS", int) == 120
    assert settings.try_get("main.USE_ADOULIN_WEAPON_SKILL_CHANGES", bool) is True
    assert settings.try_get("main.CASKET_DROP_RATE", float) == 0.1


def test_it_loads_search_section(repo_root) -> None:
    settings = Settings.load(repo_root, environ={})
    assert settings.try_get("search.EXPIRE_AUCTIONS", bool) is True
    assert settings.try_get("search.EXPIRE_DAYS", int) == 3
    assert settings.try_get("search.EXPIRE_INTERVAL", int) == 3600


def test_env_var_overrides_user_directory(tmp_path, repo_root) -> None:
    shutil.copytree(repo_root / "settings" / "default", tmp_path / "settings" / "default")
    (tmp_path / "settings" / "search.lua").write_text(
        "xi.settings.search.EXPIRE_DAYS = 10\n", encoding="utf-8"
    )

    settings = Settings.load(tmp_path, environ={"XI_SEARCH_EXPIRE_DAYS": "7"})
    assert settings.try_get("search.EXPIRE_DAYS", int) == 7


def test_env_var_is_applied_to_lua_and_settings(repo_root) -> None:
    settings = Settings.load(repo_root, environ={"XI_MAIN_FOO_BAR": "9999"})
    assert settings.lua.eval("xi.settings.main.FOO_BAR") == 9999
    assert settings.try_get("main.FOO_BAR", int) == 9999
    # соседние ключи секции не затронуты
    assert settings.try_get("main.SERVER_NAME", str) == "Nameless"


def test_env_var_bool_and_string(repo_root) -> None:
    settings = Settings.load(
        repo_root,
        environ={"XI_MAIN_FOO_BAR": "false", "XI_NETWORK_SQL_HOST": "db.local"},
    )
    assert settings.try_get("main.FOO_BAR", bool) is False
    assert settings.try_get("network.SQL_HOST", str) == "db.local"


def test_env_var_overrides_default_file(repo_root) -> None:
    settings = Settings.load(repo_root, environ={"XI_SEARCH_EXPIRE_DAYS": "7"})
    assert settings.try_get("search.EXPIRE_DAYS", int) == 7


def test_env_var_creates_missing_section(repo_root) -> None:
    settings = Settings.load(repo_root, environ={"XI_CUSTOM_ENABLED": "true"})
    assert settings.try_get("custom.ENABLED", bool) is True


def test_env_vars_without_key_or_prefix_are_ignored(repo_root) -> None:
    baseline = Settings.load(repo_root, environ={})
    settings = Settings.load(
        repo_root,
        environ={"XI_MAIN": "1", "XI__FOO": "1", "NOT_XI_MAIN_FOO": "1", "xi_main_foo": "1"},
    )
    assert settings.keys() == baseline.keys()


def test_user_directory_overrides_defaults(tmp_path, repo_root) -> None:
    shutil.copytree(repo_root / "settings" / "default", tmp_path / "settings" / "default")
    (tmp_path / "settings" / "search.lua").write_text(
        "xi.settings.search.EXPIRE_DAYS = 10\n", encoding="utf-8"
    )
    (tmp_path / "settings" / "README.txt").write_text("not lua", encoding="utf-8")

    settings = Settings.load(tmp_path, environ={})
    assert settings.try_get("search.EXPIRE_DAYS", int) == 10
    assert settings.try_get("search.EXPIRE_INTERVAL", int) == 3600


def test_scripts_run_in_name_order_and_skip_other_files(tmp_path) -> None:
    (tmp_path / "02_second.lua").write_text("xi.settings.t.VALUE = 2\n", encoding="utf-8")
    (tmp_path / "01_first.lua").write_text(
        "xi = {}\nxi.settings = { t = {} }\nxi.settings.t.VALUE = 1\n", encoding="utf-8"
    )
    (tmp_path / "03_ignored.txt").write_text("this is not lua", encoding="utf-8")

    lua = Lua()
    assert load_lua_from_dir(lua, tmp_path) == 2
    assert populate_values(lua) == {"t.VALUE": 2}


def test_missing_default_directory_raises(tmp_path) -> None:
    with pytest.raises(SettingsError):
        Settings.load(tmp_path, environ={})


def test_broken_script_raises_lua_script_error(tmp_path) -> None:
    defaults = tmp_path / "settings" / "default"
    defaults.mkdir(parents=True)
    (defaults / "broken.lua").write_text("xi.settings = {\n", encoding="utf-8")

    with pytest.raises(LuaScriptError) as exc_info:
        Settings.load(tmp_path, environ={})
    assert exc_info.value.path.name == "broken.lua"


def test_non_scalar_values_are_skipped() -> None:
    lua = Lua()
    lua.execute(
        "xi = { settings = { a = { N = 1, NESTED = { 1, 2 }, F = function() end }, b = 5 } }"
    )
    assert populate_values(lua) == {"a.N": 1}


def test_apply_env_variables_counts_applied() -> None:
    lua = Lua()
    applied = apply_env_variables(lua, {"XI_MAIN_A": "1", "XI_MAIN_B": "x", "PATH": "/bin"})
    assert applied == 2
    assert populate_values(lua) == {"main.A": 1, "main.B": "x"}


def test_lua_print_goes_to_logger(capsys) -> None:
    lua = Lua()
    lua.execute('print("hello", "foo", 1, true, nil)')
    out = capsys.readouterr().out
    assert "[lua] [info] hello foo 1 true nil" in out


def test_lua_helpers_are_defined() -> None:
    lua = Lua()
    assert lua.eval("type(__FILE__)") == "function"
    assert lua.eval("type(__FUNC__)") == "function"
    assert lua.eval("type(__LINE__())") == "number"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("9999", 9999),
        ("-3", -3),
        ("0.5", 0.5),
        ("true", True),
        ("false", False),
        ("True", "True"),
        ("127.0.0.1", "127.0.0.1"),
        ("", ""),
        ("+7", 7),
        ("1_000", "1_000"),
        (" 5 ", " 5 "),
        ("1.5 ", "1.5 "),
        ("9223372036854775808", 9223372036854775808.0),
    ],
)
def test_parse_env_value(raw, expected) -> None:
    value = parse_env_value(raw)
    assert value == expected
    assert type(value) is type(expected)


def test_try_get_errors() -> None:
    settings = Settings({"a.INT": 5, "a.FLAG": True, "a.NAME": "x", "a.RATE": 1.5})

    with pytest.raises(MissingKeyError) as missing:
        settings.try_get("a.MISSING", int)
    assert missing.value.key == "a.MISSING"

    with pytest.raises(ParseValueError):
        settings.try_get("a.NAME", int)
    with pytest.raises(ParseValueError):
        settings.try_get("a.FLAG", int)
    with pytest.raises(ParseValueError):
        settings.try_get("a.INT", bool)
    with pytest.raises(ParseValueError):
        settings.try_get("a.RATE", int)
    with pytest.raises(ParseValueError):
        settings.try_get("a.INT", str)


def test_try_get_coercions() -> None:
    settings = Settings({"a.WHOLE": 3.0, "a.INT": 5})
    assert settings.try_get("a.WHOLE", int) == 3
    assert settings.try_get("a.INT", float) == 5.0
    assert settings.get("a.MISSING", int, 42) == 42
    assert settings.get("a.INT", int, 42) == 5
