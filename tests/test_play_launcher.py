from pathlib import Path

from geocoin.cli.play import DEFAULT_SAVE_PATH, main
from geocoin.content.io import JsonFileStore, PLAYER_KEY


def test_play_launcher_creates_save_when_missing(tmp_path: Path, monkeypatch) -> None:
    save_path = tmp_path / "canonical.json"

    def fake_run(**kwargs):
        assert kwargs["save_path"] == str(save_path)
        assert kwargs["headless"] is True
        return 0

    monkeypatch.setattr("geocoin.cli.play.run_pygame_viewer", fake_run)

    result = main(["--headless", "--save-path", str(save_path)])

    assert result == 0
    assert save_path.exists()
    assert JsonFileStore(save_path).get(PLAYER_KEY) is not None


def test_play_launcher_defaults_to_canonical_save_path(monkeypatch) -> None:
    captured = {}

    def fake_run(**kwargs):
        captured.update(kwargs)
        return 0

    monkeypatch.setattr("geocoin.cli.play.run_pygame_viewer", fake_run)
    monkeypatch.setattr("geocoin.cli.play._ensure_save_exists", lambda **_: None)

    result = main([])

    assert result == 0
    assert captured["save_path"] == DEFAULT_SAVE_PATH
    assert captured["headless"] is False


def test_play_launcher_reset_discards_existing_save(tmp_path: Path, monkeypatch) -> None:
    save_path = tmp_path / "canonical.json"
    store = JsonFileStore(save_path)
    store.set_many({PLAYER_KEY: "stale", "unrelated": "keep"})
    monkeypatch.setattr("geocoin.cli.play.run_pygame_viewer", lambda **_: 0)

    assert main(["--reset", "--save-path", str(save_path)]) == 0

    assert store.get(PLAYER_KEY) != "stale"
    assert store.get("unrelated") == "keep"
