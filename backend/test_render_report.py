import json
import os

from render_report import render_report


def _write(tmp_path, data) -> str:
    path = tmp_path / "inspection_lim.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_pdf_is_written_next_to_the_input(tmp_path, sample_inspection, capsys) -> None:
    out = render_report(_write(tmp_path, sample_inspection))
    assert out == os.path.join(str(tmp_path), "FOR-ATA-057_LIM.pdf")
    with open(out, "rb") as f:
        assert f.read(4) == b"%PDF"

    printed = capsys.readouterr().out
    assert "Equipment: 2" in printed
    assert "Observations: 2 (derived from checklist)" in printed
    assert "Equipment rows: 17" in printed


def test_station_with_path_separators_stays_in_input_directory(tmp_path, sample_inspection) -> None:
    sample_inspection["station"] = "LIM/CUZ"
    out = render_report(_write(tmp_path, sample_inspection))
    assert out == os.path.join(str(tmp_path), "FOR-ATA-057_LIM_CUZ.pdf")
    assert os.path.exists(out)

    sample_inspection["station"] = "../../escape"
    out = render_report(_write(tmp_path, sample_inspection))
    assert os.path.dirname(out) == str(tmp_path)
    assert os.path.exists(out)


def test_preview_with_codes(tmp_path, sample_inspection, capsys) -> None:
    out = render_report(_write(tmp_path, sample_inspection), preview=True, padded=False, codes=True)
    assert out.endswith("inspection_lim.html")
    with open(out, encoding="utf-8") as f:
        assert "CHK-14" in f.read()
    assert "Equipment rows: 2" in capsys.readouterr().out


def test_missing_or_broken_input(tmp_path, capsys) -> None:
    assert render_report(str(tmp_path / "nope.json")) is None
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert render_report(str(broken)) is None
    assert "Error" in capsys.readouterr().out
