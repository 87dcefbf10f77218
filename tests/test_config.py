import json

from kumo.config import Settings, load_config, load_settings, save_config


def test_defaults(tmp_path):
    s = Settings(asset_dir=str(tmp_path), manifest_dir=str(tmp_path))
    assert s.recreation_debounce_ms == 2000
    assert s.stall_grace_ms == 3000
    assert s.health_check_interval_ms == 10000
    assert s.frozen_nudge_ms == 100
    assert s.min_source_bytes == 1_000_000
    assert s.failure_retry_delay_ms == 1000
    assert s.max_consecutive_failures == 8


def test_from_dict_reads_values_and_env_overrides(tmp_path):
    raw = {"recreation_debounce_ms": 500, "asset_dir": str(tmp_path), "manifest_dir": str(tmp_path)}
    env = {"KUMO_STALL_GRACE_MS": "1500", "KUMO_RECREATION_DEBOUNCE_MS": " "}

    s = Settings.from_dict(raw, environ=env)

    assert s.recreation_debounce_ms == 500
    assert s.stall_grace_ms == 1500


def test_from_dict_skips_invalid_values(tmp_path, isolated_log):
    raw = {"health_check_interval_ms": "cada rato", "asset_dir": str(tmp_path), "manifest_dir": str(tmp_path)}

    s = Settings.from_dict(raw, environ={})

    assert s.health_check_interval_ms == 10000
    assert "health_check_interval_ms" in isolated_log.read_text(encoding="utf-8")


def test_volume_is_clamped(tmp_path):
    s = Settings(asset_dir=str(tmp_path), manifest_dir=str(tmp_path), volume=250)
    assert s.volume == 100


def test_missing_config_returns_defaults(tmp_path):
    data = load_config(tmp_path / "no-existe.json")
    assert data == {"version": 1, "settings": {}}


def test_corrupt_config_returns_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2", encoding="utf-8")
    assert load_config(path) == {"version": 1, "settings": {}}


def test_save_then_load_settings(tmp_path, monkeypatch):
    monkeypatch.delenv("KUMO_MIN_SOURCE_BYTES", raising=False)
    path = tmp_path / "kumo" / "config.json"
    save_config(
        {"settings": {"min_source_bytes": 42, "asset_dir": str(tmp_path), "manifest_dir": str(tmp_path)}},
        path,
    )

    assert json.loads(path.read_text(encoding="utf-8"))["settings"]["min_source_bytes"] == 42
    assert not path.with_suffix(".json.tmp").exists()
    assert load_settings(path).min_source_bytes == 42
