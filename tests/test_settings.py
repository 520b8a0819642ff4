"""Tests for the settings persistence layer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from spanedit.core.errors import ErrorCode, GenerationFailure
from spanedit.services.settings import GenerationPreset, SecretVault, Settings, SettingsStore


def _store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json", vault=SecretVault(key_path=tmp_path / "key"))


def test_load_returns_defaults_when_file_missing(tmp_path: Path) -> None:
    settings = _store(tmp_path).load()

    assert settings == Settings()
    assert settings.undo_steps == 15
    assert (settings.show_delete, settings.show_rewrite, settings.show_generate) == (True, True, True)


def test_save_and_load_roundtrip_encrypts_api_key(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    original = Settings(
        api_key="super-secret",
        model="gpt-4.1-mini",
        generation_backend="responses",
        undo_steps=20,
        stream=True,
        show_generate=False,
        presets={"short": {"temperature": 0.2, "max_output_tokens": 64}},
        rewrite_preset="short",
        metadata={"env": "dev"},
    )

    SettingsStore(path).save(original)
    payload = json.loads(path.read_text(encoding="utf-8"))
    reloaded = SettingsStore(path).load()

    assert "super-secret" not in path.read_text(encoding="utf-8")
    assert payload["api_key_ciphertext"].startswith("fernet:")
    assert "api_key" not in payload
    assert reloaded == original


def test_load_legacy_plaintext_api_key(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(json.dumps({"api_key": "legacy-key", "model": "old-model"}), encoding="utf-8")

    settings = _store(tmp_path).load()

    assert settings.api_key == "legacy-key"
    assert settings.model == "old-model"
    migrated = json.loads(target.read_text(encoding="utf-8"))
    assert "api_key" not in migrated
    assert migrated["api_key_ciphertext"].startswith("fernet:")


def test_unknown_fields_and_invalid_json_are_ignored(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(json.dumps({"model": "m", "theme": "dark", "version": 1}), encoding="utf-8")
    assert _store(tmp_path).load().model == "m"

    target.write_text("{not json", encoding="utf-8")
    assert _store(tmp_path).load() == Settings()


def test_environment_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SPANEDIT_API_KEY", "env-key")
    monkeypatch.setenv("SPANEDIT_BACKEND", "text")
    monkeypatch.setenv("SPANEDIT_STREAM", "yes")
    monkeypatch.setenv("SPANEDIT_UNDO_STEPS", "7")
    monkeypatch.setenv("SPANEDIT_TEMPERATURE", "0.25")
    monkeypatch.setenv("SPANEDIT_REQUEST_TIMEOUT", "not-a-number")

    settings = _store(tmp_path).load()

    assert settings.api_key == "env-key"
    assert settings.generation_backend == "text"
    assert settings.stream is True
    assert settings.undo_steps == 7
    assert settings.temperature == 0.25
    assert settings.request_timeout == Settings().request_timeout


def test_runtime_overrides_skip_none_and_merge_metadata(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save(Settings(metadata={"a": "1"}))

    settings = store.load(overrides={"model": "cli-model", "stream": None, "metadata": {"b": "2"}, "bogus": 1})

    assert settings.model == "cli-model"
    assert settings.stream is False
    assert settings.metadata == {"a": "1", "b": "2"}


def test_invalid_values_are_normalized(tmp_path: Path) -> None:
    settings = _store(tmp_path).load(overrides={"generation_backend": "Kobold", "undo_steps": 0})

    assert settings.generation_backend == "chat"
    assert settings.undo_steps == 1


def test_resolve_preset() -> None:
    settings = Settings(
        model="base",
        presets={"short": {"model": "tiny", "temperature": 0.1, "unknown": True}},
        rewrite_preset="short",
    )

    preset = settings.resolve_preset()

    assert preset == GenerationPreset(model="tiny", temperature=0.1)
    applied = preset.apply_to(settings)
    assert (applied.model, applied.temperature) == ("tiny", 0.1)
    assert settings.model == "base"
    assert Settings().resolve_preset() is None


def test_missing_preset_raises_generation_failure() -> None:
    with pytest.raises(GenerationFailure) as excinfo:
        Settings(rewrite_preset="ghost").resolve_preset()

    assert excinfo.value.error_code == ErrorCode.PRESET_MISSING


def test_secret_vault_round_trip(tmp_path: Path) -> None:
    vault = SecretVault(key_path=tmp_path / "vault.key")

    token = vault.encrypt("hunter2")

    assert token.startswith("fernet:")
    assert vault.decrypt(token) == "hunter2"
    assert vault.encrypt("") == ""
    with pytest.raises(ValueError):
        vault.decrypt("other:abc")
