import json

from bailbonds.settings import DEFAULT_SETTINGS, SettingsManager


def test_defaults_written_on_first_load(tmp_path) -> None:
    manager = SettingsManager(tmp_path / "settings.json")
    assert manager.settings["agency"]["name"] == "BailBond Pro"
    on_disk = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    assert on_disk["notifications"] == DEFAULT_SETTINGS["notifications"]


def test_save_deep_updates_and_replaces_lists(tmp_path) -> None:
    manager = SettingsManager(tmp_path / "settings.json")
    manager.save({"agency": {"name": "Liberty Bail"}, "workflow_rules": []})
    reloaded = SettingsManager(tmp_path / "settings.json").settings
    assert reloaded["agency"]["name"] == "Liberty Bail"
    assert reloaded["agency"]["default_premium_rate"] == 10.0
    assert reloaded["workflow_rules"] == []


def test_manual_edits_are_backfilled(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"gibson": {"api_key": "from-file"}}), encoding="utf-8")
    settings = SettingsManager(path).settings
    assert settings["gibson"]["api_key"] == "from-file"
    assert settings["gibson"]["base_url"] == "https://api.gibsonai.com"


def test_environment_overrides_are_not_persisted(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("GIBSON_API_KEY", raising=False)
    monkeypatch.setenv("X_GIBSON_API_KEY", "env-key")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    manager = SettingsManager(tmp_path / "settings.json")
    effective = manager.effective()
    assert effective["gibson"]["api_key"] == "env-key"
    assert effective["assistant"]["api_key"] == "sk-env"
    assert manager.settings["gibson"]["api_key"] == ""
    monkeypatch.setenv("GIBSON_API_KEY", "primary")
    assert manager.effective()["gibson"]["api_key"] == "primary"
