import json

import pytest
from PIL import Image

from sheet2sprite import cli


def _sheet(path, columns=4, rows=1, cell=(16, 24)):
    image = Image.new("RGBA", (columns * cell[0], rows * cell[1]), (0, 255, 0, 255))
    for row in range(rows):
        for col in range(columns):
            image.paste(Image.new("RGBA", (8, 12), (200, 30, 30, 255)), (col * cell[0] + 4, row * cell[1] + 6))
    image.save(path)
    return path


def test_build_parser_creates_arguments(tmp_path):
    parser = cli.build_parser()
    args = parser.parse_args(
        ["extract", "sheet.png", "out", "--grid", "6x8", "--animation", "walk", "--chroma-key", "0,255,0", "--zip"]
    )
    assert args.command == "extract"
    assert args.source.name == "sheet.png"
    assert args.grid == "6x8"
    assert args.animation == "walk"
    assert args.zip is True
    assert args.dry_run is False


def test_partition_is_required():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["extract", "sheet.png", "out"])


def test_extract_writes_outputs(tmp_path):
    source = _sheet(tmp_path / "hurt.png")
    out = tmp_path / "out"

    code = cli.main(
        [
            "extract", str(source), str(out), "--grid", "4x1", "--animation", "hurt", "--character", "hero",
            "--chroma-key", "#00ff00", "--crop-mode", "center-center", "--canvas", "8x12", "--zip",
        ]
    )

    assert code == 0
    assert (out / "hero" / "hurt.png").exists()
    assert (out / "hero-sprites.zip").exists()
    config = json.loads((out / "sprite-config.json").read_text(encoding="utf-8"))
    assert config["animations"]["hurt"]["frameCount"] == 4
    assert config["sheets"]["hurt"]["frameWidth"] == 8
    with Image.open(out / "hero" / "hurt.png") as sheet:
        assert sheet.size == (32, 12)


def test_extract_dry_run_prints_config(tmp_path, capsys):
    source = _sheet(tmp_path / "attack.png", columns=4, rows=3)
    code = cli.main(["extract", str(source), str(tmp_path / "out"), "--grid", "4x3", "--animation", "attack", "--dry-run"])

    assert code == 0
    config = json.loads(capsys.readouterr().out)
    assert config["animations"]["attack2"]["startFrame"] == 4
    assert not (tmp_path / "out").exists()


def test_extract_with_dividers_and_regions(tmp_path, capsys):
    source = _sheet(tmp_path / "sheet.png", columns=2)
    assert cli.main(["extract", str(source), str(tmp_path), "--dividers", "50;", "--animation", "dash", "--dry-run"]) == 0
    assert json.loads(capsys.readouterr().out)["animations"]["dash"]["frameCount"] == 2

    regions = tmp_path / "regions.json"
    regions.write_text(json.dumps({"regions": [{"x": 50, "y": 0, "width": 50, "height": 100}]}), encoding="utf-8")
    assert cli.main(["extract", str(source), str(tmp_path), "--regions", str(regions), "--animation", "dash", "--dry-run"]) == 0
    assert json.loads(capsys.readouterr().out)["animations"]["dash"]["frameCount"] == 1


def test_invalid_input_returns_two(tmp_path, capsys):
    source = _sheet(tmp_path / "sheet.png")
    assert cli.main(["extract", str(source), str(tmp_path), "--grid", "4-1"]) == 2
    assert "error:" in capsys.readouterr().err

    assert cli.main(["extract", str(source), str(tmp_path), "--grid", "4x1", "--chroma-key", "nope"]) == 2
    assert cli.main(["extract", str(tmp_path / "missing.png"), str(tmp_path), "--grid", "4x1"]) == 2


def test_analyze_prints_grid(tmp_path, capsys):
    source = _sheet(tmp_path / "sheet.png", columns=4, rows=2, cell=(32, 48))
    assert cli.main(["analyze", str(source), "--expect", "death"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["frameWidth"] == 32
    assert "confidence" in payload


def test_config_prints_directional_mapping(capsys):
    assert cli.main(["config", "walk", "--columns", "6", "--character", "hero"]) == 0
    config = json.loads(capsys.readouterr().out)
    assert len(config["animations"]["walk"]) == 8
    assert config["sheets"]["walk"]["path"] == "./hero/walk.png"


def test_config_rejects_bad_columns(capsys):
    assert cli.main(["config", "hurt", "--columns", "0"]) == 2
