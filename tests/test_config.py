"""Tests for layered configuration."""

from pathlib import Path

import pytest

from perseus.config import (
    Config,
    ConfigError,
    find_project_root,
    global_config_path,
    load_config,
)


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    """Built-in defaults."""

    def test_defaults(self):
        config = Config()
        assert config.http.timeout == 30
        assert config.http.follow_redirects is True
        assert config.http.max_redirects == 10
        assert config.proxy.url is None
        assert config.ssl.verify is True
        assert config.editor.tab_size == 2

    def test_no_layers(self):
        assert load_config([]) == Config()


class TestLayers:
    """Later files override earlier ones key by key."""

    def test_project_overrides_global(self, tmp_path):
        glob = _write(tmp_path / "global.toml", "[http]\ntimeout = 5\nmax_redirects = 3\n")
        proj = _write(tmp_path / "project.toml", "[http]\ntimeout = 60\n")
        config = load_config([glob, proj])
        assert config.http.timeout == 60
        assert config.http.max_redirects == 3

    def test_missing_file_skipped(self, tmp_path):
        glob = _write(tmp_path / "global.toml", "[editor]\ntab_size = 4\n")
        config = load_config([glob, tmp_path / "nope.toml"])
        assert config.editor.tab_size == 4

    def test_unknown_keys_ignored(self, tmp_path):
        path = _write(tmp_path / "c.toml", "theme = \"dark\"\n[http]\nretries = 3\n")
        assert load_config([path]) == Config()

    def test_proxy(self, tmp_path):
        path = _write(
            tmp_path / "c.toml",
            '[proxy]\nurl = "http://proxy:3128"\nno_proxy = "localhost"\n',
        )
        config = load_config([path])
        assert config.proxy.url == "http://proxy:3128"
        assert config.proxy.no_proxy == "localhost"


class TestErrors:
    """Invalid files raise ConfigError with readable messages."""

    def test_out_of_range_timeout(self, tmp_path):
        path = _write(tmp_path / "c.toml", "[http]\ntimeout = 9999\n")
        with pytest.raises(ConfigError) as exc:
            load_config([path])
        assert any("http.timeout" in m for m in exc.value.messages)

    def test_bad_toml(self, tmp_path):
        path = _write(tmp_path / "c.toml", "[http\n")
        with pytest.raises(ConfigError) as exc:
            load_config([path])
        assert "failed to parse" in str(exc.value)

    def test_proxy_without_scheme(self, tmp_path):
        path = _write(tmp_path / "c.toml", '[proxy]\nurl = "proxy:3128"\n')
        with pytest.raises(ConfigError) as exc:
            load_config([path])
        assert any("proxy.url" in m for m in exc.value.messages)

    def test_client_cert_without_key(self, tmp_path):
        cert = _write(tmp_path / "client.pem", "cert")
        path = _write(tmp_path / "c.toml", f'[ssl]\nclient_cert = "{cert.as_posix()}"\n')
        with pytest.raises(ConfigError) as exc:
            load_config([path])
        assert "client_cert" in str(exc.value)

    def test_missing_ca_cert(self, tmp_path):
        path = _write(tmp_path / "c.toml", f'[ssl]\nca_cert = "{(tmp_path / "ca.pem").as_posix()}"\n')
        with pytest.raises(ConfigError) as exc:
            load_config([path])
        assert "file not found" in str(exc.value)

    def test_existing_cert_pair(self, tmp_path):
        cert = _write(tmp_path / "client.pem", "cert")
        key = _write(tmp_path / "client.key", "key")
        path = _write(
            tmp_path / "c.toml",
            f'[ssl]\nclient_cert = "{cert.as_posix()}"\nclient_key = "{key.as_posix()}"\n',
        )
        config = load_config([path])
        assert config.ssl.client_cert == cert
        assert config.ssl.client_key == key


class TestPaths:
    """Locating the config files."""

    def test_xdg_config_home(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert global_config_path() == tmp_path / "perseus" / "config.toml"

    def test_home_fallback(self, monkeypatch, tmp_path):
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        assert global_config_path() == tmp_path / ".config" / "perseus" / "config.toml"

    def test_no_home(self, monkeypatch):
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.delenv("HOME", raising=False)
        assert global_config_path() is None

    def test_project_root_marker(self, tmp_path):
        (tmp_path / ".perseus").mkdir()
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == Path(tmp_path).resolve()

    def test_default_layers_from_environment(self, monkeypatch, tmp_path):
        xdg = tmp_path / "xdg"
        _write(xdg / "perseus" / "config.toml", "[http]\ntimeout = 7\n")
        project = tmp_path / "proj"
        _write(project / ".perseus" / "config.toml", "[http]\nfollow_redirects = false\n")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
        monkeypatch.chdir(project)
        config = load_config()
        assert config.http.timeout == 7
        assert config.http.follow_redirects is False
