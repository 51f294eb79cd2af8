from __future__ import annotations

import json
import os
import stat
from typing import Any

import pytest
import yaml

from jwctl import tokens


@pytest.fixture
def sample_token() -> dict[str, Any]:
    return {"token": "3b9f0c2e-jumpwire-operator", "issued_at": 1704067200.0}


@pytest.fixture(params=["token.json", "token.yaml", "token.yml"])
def token_path(request, tmp_path) -> str:
    return str(tmp_path / request.param)


@pytest.fixture
def json_token_path(tmp_path) -> str:
    return str(tmp_path / "token.json")


@pytest.fixture
def yaml_token_path(tmp_path) -> str:
    return str(tmp_path / "token.yaml")


class TestTokenPath:
    @pytest.fixture
    def mock_user_data_dir(self, monkeypatch, tmp_path):
        monkeypatch.setattr(tokens, "user_data_dir", lambda app: str(tmp_path))
        return tmp_path

    def test_returns_path_with_default_filename(self, mock_user_data_dir):
        result = tokens.token_path("jwctl")

        assert result == str(mock_user_data_dir / "token.yaml")

    def test_returns_path_with_custom_filename(self, mock_user_data_dir):
        result = tokens.token_path("jwctl", filename="custom.json")

        assert result == str(mock_user_data_dir / "custom.json")

    def test_creates_parent_directory_if_missing(self, monkeypatch, tmp_path):
        nested_dir = tmp_path / "nested" / "path"
        monkeypatch.setattr(tokens, "user_data_dir", lambda app: str(nested_dir))

        result = tokens.token_path("jwctl")

        assert nested_dir.exists()
        assert result == str(nested_dir / "token.yaml")

    def test_uses_app_name_for_data_dir(self, monkeypatch, tmp_path):
        captured = {}
        monkeypatch.setattr(
            tokens,
            "user_data_dir",
            lambda app: captured.setdefault("app", app) and str(tmp_path),
        )

        tokens.token_path("jwctl")

        assert captured["app"] == "jwctl"


class TestTokenWriter:
    @pytest.mark.parametrize(
        ("extension", "expect_yaml_marker"),
        [
            (".json", False),
            (".yaml", True),
            (".yml", True),
        ],
    )
    def test_format_matches_extension(
        self, tmp_path, sample_token, extension, expect_yaml_marker
    ):
        path = str(tmp_path / f"token{extension}")

        tokens.token_writer(path)(sample_token)

        with open(path) as f:
            content = f.read()

        assert content.startswith("---") == expect_yaml_marker
        if expect_yaml_marker:
            assert yaml.safe_load(content) == sample_token
        else:
            assert json.loads(content) == sample_token

    def test_empty_token_is_not_written(self, json_token_path):
        tokens.token_writer(json_token_path)({})

        assert not os.path.exists(json_token_path)

    def test_file_is_private(self, yaml_token_path, sample_token):
        tokens.token_writer(yaml_token_path)(sample_token)

        mode = stat.S_IMODE(os.stat(yaml_token_path).st_mode)
        assert mode & (stat.S_IRWXG | stat.S_IRWXO) == 0

    def test_creates_missing_directory(self, tmp_path, sample_token):
        path = str(tmp_path / "nested" / "token.yaml")

        tokens.token_writer(path)(sample_token)

        assert os.path.exists(path)


class TestTokenLoader:
    def test_round_trip(self, token_path, sample_token):
        tokens.token_writer(token_path)(sample_token)

        assert tokens.token_loader(token_path)() == sample_token

    def test_raises_on_missing_file(self, json_token_path):
        with pytest.raises(FileNotFoundError):
            tokens.token_loader(json_token_path)()

    def test_raises_on_invalid_json(self, json_token_path):
        with open(json_token_path, "w") as f:
            f.write("{ invalid json }")

        with pytest.raises(json.JSONDecodeError):
            tokens.token_loader(json_token_path)()

    def test_invalid_yaml_is_a_value_error(self, yaml_token_path):
        with open(yaml_token_path, "w") as f:
            f.write("token: [unclosed\n")

        with pytest.raises(ValueError, match="not valid YAML"):
            tokens.token_loader(yaml_token_path)()

    def test_non_mapping_is_rejected(self, yaml_token_path):
        with open(yaml_token_path, "w") as f:
            f.write("- just\n- a list\n")

        with pytest.raises(ValueError, match="mapping"):
            tokens.token_loader(yaml_token_path)()


class TestBearerToken:
    def test_save_then_load(self, token_path):
        tokens.save_token(token_path, "abc")

        assert tokens.load_token(token_path) == "abc"

    def test_missing_file_has_no_token(self, yaml_token_path):
        assert tokens.load_token(yaml_token_path) is None

    def test_empty_token_is_none(self, yaml_token_path):
        with open(yaml_token_path, "w") as f:
            f.write("token: ''\n")

        assert tokens.load_token(yaml_token_path) is None
