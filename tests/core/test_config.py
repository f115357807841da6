from __future__ import annotations

from xpduel.core.config import Settings


def test_settings_read_duel_tuning_from_env(monkeypatch) -> None:
    monkeypatch.setenv("DUEL_ARCHIVE_GRACE_SECONDS", "12")
    monkeypatch.setenv("DUEL_SWEEP_BATCH_SIZE", "50")
    monkeypatch.setenv("PROGRESSION_TIMEZONE", "Europe/Berlin")

    settings = Settings()

    assert settings.duel_archive_grace_seconds == 12
    assert settings.duel_sweep_batch_size == 50
    assert settings.progression_timezone == "Europe/Berlin"


def test_settings_defaults(monkeypatch) -> None:
    for name in ("DUEL_ARCHIVE_GRACE_SECONDS", "DUEL_SWEEP_INTERVAL_SECONDS", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.duel_archive_grace_seconds == 5
    assert settings.duel_sweep_interval_seconds == 60
    assert settings.log_level == "INFO"
