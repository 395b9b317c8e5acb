"""Tests for the shopflags command line."""

import json

import pytest

from shopflags import cli


CATALOG = {
    "flags": [
        {"key": "x", "enabled": True, "rollout": 50},
        {"key": "off", "enabled": False},
        {
            "key": "dev-tools",
            "enabled": True,
            "conditions": [{"type": "environment", "operator": "equals", "value": "development"}],
        },
    ],
    "experiments": [
        {
            "id": "e1",
            "status": "running",
            "variants": [
                {"id": "a", "weight": 1, "config": {"layout": "grid"}},
                {"id": "b", "weight": 1, "config": {"layout": "list"}},
            ],
        },
        {
            "id": "big-carts",
            "status": "running",
            "variants": [{"id": "a", "weight": 1}],
            "targeting": {
                "device_types": ["desktop"],
                "custom_conditions": [
                    {"key": "cart_value", "operator": "greater_than", "value": 50000}
                ],
            },
        },
        {"id": "later", "status": "draft", "variants": [{"id": "a", "weight": 1}]},
    ],
}


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(CATALOG), encoding="utf-8")
    monkeypatch.setenv("CATALOG_PATH", str(path))
    monkeypatch.setenv("ASSIGNMENT_STORE_BACKEND", "none")
    monkeypatch.setenv("ENVIRONMENT", "production")
    # keep pytest's own log capture on the root logger
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)


def run(capsys, *argv):
    code = cli.main(list(argv))
    out = capsys.readouterr().out
    return code, json.loads(out) if out.strip() else None


class TestCli:
    def test_no_command(self, capsys):
        assert cli.main([]) == 1

    def test_flags(self, capsys):
        code, data = run(capsys, "flags")
        assert code == 0
        assert [f["key"] for f in data] == ["x", "off", "dev-tools"]

    def test_evaluate_enabled(self, capsys):
        code, data = run(capsys, "evaluate", "x", "--user-id", "ab")
        assert code == 0
        assert data["enabled"] is True
        assert data["reason"] == "All conditions met"

    def test_evaluate_disabled(self, capsys):
        code, data = run(capsys, "evaluate", "off")
        assert code == 2
        assert data["reason"] == "Flag is disabled"

    def test_evaluate_environment(self, capsys):
        code, data = run(capsys, "evaluate", "dev-tools")
        assert code == 2
        assert data["reason"] == "Conditions not met"

        code, data = run(capsys, "evaluate", "dev-tools", "--environment", "development")
        assert code == 0

    def test_evaluate_bad_date(self, capsys):
        assert cli.main(["evaluate", "x", "--date", "someday"]) == 1
        assert "Error" in capsys.readouterr().err

    def test_experiments(self, capsys):
        code, data = run(capsys, "experiments")
        assert code == 0
        assert len(data) == 3

        code, data = run(capsys, "experiments", "--active")
        assert [e["id"] for e in data] == ["e1", "big-carts"]

    def test_assign(self, capsys):
        code, data = run(capsys, "assign", "e1", "--session-id", "s_")
        assert code == 0
        assert data["variant_id"] == "b"
        assert data["config"] == {"layout": "list"}
        assert data["assignment"]["sessionId"] == "s_"

    def test_assign_with_props(self, capsys):
        code, data = run(
            capsys,
            "assign",
            "big-carts",
            "--user-id",
            "u1",
            "--device-type",
            "desktop",
            "--prop",
            "cart_value=60000",
        )
        assert code == 0
        assert data["is_participant"] is True

        code, data = run(
            capsys,
            "assign",
            "big-carts",
            "--user-id",
            "u2",
            "--device-type",
            "desktop",
            "--prop",
            "cart_value=100",
        )
        assert code == 2
        assert data["reason"] == "Does not meet targeting criteria"

    def test_assign_not_participant(self, capsys):
        code, data = run(capsys, "assign", "later")
        assert code == 2
        assert data["reason"] == "Experiment not active"
        assert data["config"] is None

    def test_bad_prop(self, capsys):
        assert cli.main(["assign", "e1", "--prop", "novalue"]) == 1

    def test_bad_catalog(self, capsys, tmp_path, monkeypatch):
        broken = tmp_path / "broken.yaml"
        broken.write_text("flags: [", encoding="utf-8")
        monkeypatch.setenv("CATALOG_PATH", str(broken))
        assert cli.main(["flags"]) == 1
        assert "CATALOG_LOAD_FAILED" in capsys.readouterr().err


def test_parse_value():
    assert cli._parse_value("60000") == 60000
    assert cli._parse_value("true") is True
    assert cli._parse_value('["a", "b"]') == ["a", "b"]
    assert cli._parse_value("gold") == "gold"
