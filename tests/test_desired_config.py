import pytest
from pydantic import ValidationError as PydanticValidationError

from identity_sync.models.config import DesiredConfig, _resolve_env
from identity_sync.models.entities import UrlType

CONFIG = """
clients:
  - name: player-api
    scopes: player-api
    urls:
      - type: redirectUri
        value: https://player.example.com/callback
      - type: corsUri
        value: ${PLAYER_ORIGIN:-https://player.example.com}
      - type: postLogoutRedirectUri
        value: https://player.example.com/logout
    claims: [read, write]
    secrets: 2

accounts:
  - username: admin@example.com
    password: ${ADMIN_PASSWORD}
    role: Administrator
    properties:
      - key: team
        value: blue
"""


def test_resolve_env(monkeypatch):
    monkeypatch.setenv("A", "1")
    monkeypatch.delenv("B", raising=False)
    assert _resolve_env({"x": ["${A}", "${B:-fallback}", "${B}"], "n": 3}) == {
        "x": ["1", "fallback", ""],
        "n": 3,
    }


def test_from_yaml_builds_entities(tmp_path, monkeypatch):
    monkeypatch.setenv("ADMIN_PASSWORD", "s3cret")
    monkeypatch.delenv("PLAYER_ORIGIN", raising=False)
    path = tmp_path / "identity.yaml"
    path.write_text(CONFIG)

    config = DesiredConfig.from_yaml(path)

    assert [c.name for c in config.clients] == ["player-api"]
    client = config.clients[0].to_entity()
    assert client.display_name == "player-api"
    assert [u.value for u in client.cors_urls] == ["https://player.example.com"]
    assert client.redirect_urls[0].type is UrlType.REDIRECT
    assert [c.value for c in client.claims] == ["read", "write"]
    assert len(client.secrets) == 2 and all(s.id == 0 for s in client.secrets)

    account = config.accounts[0].to_entity()
    assert account.password == "s3cret"
    assert account.role == "Administrator"
    assert [(p.key, p.value) for p in account.properties] == [("team", "blue")]


def test_duplicate_names_are_rejected():
    with pytest.raises(PydanticValidationError, match="Duplicate client name"):
        DesiredConfig.model_validate({"clients": [{"name": "a"}, {"name": "a"}]})


def test_unknown_url_type_is_rejected():
    with pytest.raises(PydanticValidationError):
        DesiredConfig.model_validate(
            {"clients": [{"name": "a", "urls": [{"type": "homepage", "value": "x"}]}]}
        )


def test_missing_or_malformed_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        DesiredConfig.from_yaml(tmp_path / "nope.yaml")

    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError, match="YAML mapping"):
        DesiredConfig.from_yaml(path)
