from pathlib import Path

from typer.testing import CliRunner

from survey_zerofill.cli import app

EXAMPLES = Path(__file__).resolve().parents[1] / "examples"
HEADER = "Route,Year,AOU,First,Second,Third,Fourth,Fifth,Stops,Count"

runner = CliRunner()


def _species(tmp_path: Path, *codes: int) -> str:
    p = tmp_path / "species.txt"
    p.write_text("".join(f"{c}\n" for c in codes), encoding="utf-8")
    return str(p)


def test_expand_matches_expected(tmp_path: Path):
    out_path = tmp_path / "expanded.csv"
    r = runner.invoke(
        app,
        [
            "expand",
            str(EXAMPLES / "sparse.csv"),
            "-s",
            str(EXAMPLES / "species.txt"),
            "--out",
            str(out_path),
        ],
    )
    assert r.exit_code == 0, r.output

    expected = (EXAMPLES / "expand-expected.csv").read_text(encoding="utf-8")
    assert out_path.read_text(encoding="utf-8") == expected
    assert "OK: expanded 5 records to 12 rows (3 occasions, 1 skipped)" in r.output
    assert "W_UNKNOWN_SPECIES" in r.output
    assert "9999" in r.output


def test_expand_is_deterministic(tmp_path: Path):
    out1 = tmp_path / "expanded1.csv"
    out2 = tmp_path / "expanded2.csv"
    args = ["expand", str(EXAMPLES / "sparse.csv"), "-s", str(EXAMPLES / "species.txt"), "-q"]

    r1 = runner.invoke(app, args + ["--out", str(out1)])
    r2 = runner.invoke(app, args + ["--out", str(out2)])

    assert r1.exit_code == 0
    assert r2.exit_code == 0
    assert out1.read_text(encoding="utf-8") == out2.read_text(encoding="utf-8")
    assert "W_UNKNOWN_SPECIES" not in r1.output


def test_expand_output_is_idempotent(tmp_path: Path):
    once = tmp_path / "once.csv"
    twice = tmp_path / "twice.csv"
    species = str(EXAMPLES / "species.txt")

    r1 = runner.invoke(app, ["expand", str(EXAMPLES / "sparse.csv"), "-s", species, "-o", str(once)])
    r2 = runner.invoke(app, ["expand", str(once), "-s", species, "-o", str(twice)])

    assert r1.exit_code == 0
    assert r2.exit_code == 0, r2.output
    assert twice.read_text(encoding="utf-8") == once.read_text(encoding="utf-8")


def test_expand_reads_stdin_and_writes_stdout(tmp_path: Path):
    data = f"{HEADER}\n5,2000,2,1,0,0,0,0,3,4\n"
    r = runner.invoke(app, ["expand", "-s", _species(tmp_path, 1, 2, 3)], input=data)
    assert r.exit_code == 0, r.output
    assert "5,2000,1,0,0,0,0,0,0,0\n5,2000,2,1,0,0,0,0,3,4\n5,2000,3,0,0,0,0,0,0,0\n" in r.output


def test_expand_with_config_file(tmp_path: Path):
    out_path = tmp_path / "expanded.csv"
    r = runner.invoke(
        app,
        ["expand", str(EXAMPLES / "sparse.csv"), "--config", str(EXAMPLES / "run-config.yaml"), "-o", str(out_path)],
    )
    assert r.exit_code == 0, r.output
    assert out_path.read_text(encoding="utf-8") == (EXAMPLES / "expand-expected.csv").read_text(encoding="utf-8")


def test_expand_requires_species():
    r = runner.invoke(app, ["expand", str(EXAMPLES / "sparse.csv")])
    assert r.exit_code == 2
    assert "E_SPECIES_REQUIRED" in r.output


def test_expand_missing_input_file(tmp_path: Path):
    r = runner.invoke(app, ["expand", str(tmp_path / "nope.csv"), "-s", str(EXAMPLES / "species.txt")])
    assert r.exit_code == 1
    assert "E_FILE_NOT_FOUND" in r.output


def test_expand_bad_header(tmp_path: Path):
    r = runner.invoke(app, ["expand", str(EXAMPLES / "bad-header.csv"), "-s", str(EXAMPLES / "species.txt")])
    assert r.exit_code == 1
    assert "E_BAD_HEADER" in r.output


def test_expand_rejects_duplicate_species(tmp_path: Path):
    r = runner.invoke(app, ["expand", str(EXAMPLES / "sparse.csv"), "-s", _species(tmp_path, 1, 2, 1)])
    assert r.exit_code == 2
    assert "E_SPECIES_DUPLICATE" in r.output


def test_expand_rejects_empty_species(tmp_path: Path):
    r = runner.invoke(app, ["expand", str(EXAMPLES / "sparse.csv"), "-s", _species(tmp_path)])
    assert r.exit_code == 2
    assert "E_SPECIES_EMPTY" in r.output


def test_expand_unknown_duplicate_policy():
    r = runner.invoke(
        app,
        ["expand", str(EXAMPLES / "sparse.csv"), "-s", str(EXAMPLES / "species.txt"), "--on-duplicate", "merge"],
    )
    assert r.exit_code == 2
    assert "E_UNKNOWN_DUPLICATE_POLICY" in r.output


def test_expand_invalid_config(tmp_path: Path):
    cfg = tmp_path / "run.yaml"
    cfg.write_text("on_duplicate: sometimes\n", encoding="utf-8")
    r = runner.invoke(app, ["expand", str(EXAMPLES / "sparse.csv"), "--config", str(cfg)])
    assert r.exit_code == 2
    assert "E_CONFIG_FILE_INVALID" in r.output


def test_repeated_occasion_keeps_partial_output(tmp_path: Path):
    src = tmp_path / "in.csv"
    src.write_text(
        f"{HEADER}\n5,2000,1,1,0,0,0,0,1,1\n6,2000,2,1,0,0,0,0,1,1\n5,2000,2,1,0,0,0,0,1,1\n",
        encoding="utf-8",
    )
    out_path = tmp_path / "out.csv"
    r = runner.invoke(
        app,
        ["expand", str(src), "-s", _species(tmp_path, 1, 2), "--no-sort", "-o", str(out_path)],
    )
    assert r.exit_code == 2
    assert "E_DUPLICATE_OCCASION" in r.output
    assert "{5,2000}" in r.output

    lines = out_path.read_text(encoding="utf-8").splitlines()
    assert lines == [
        HEADER,
        "5,2000,1,1,0,0,0,0,1,1",
        "5,2000,2,0,0,0,0,0,0,0",
        "6,2000,1,0,0,0,0,0,0,0",
        "6,2000,2,1,0,0,0,0,1,1",
    ]


def test_repeated_occasion_allowed(tmp_path: Path):
    src = tmp_path / "in.csv"
    src.write_text(
        f"{HEADER}\n5,2000,1,1,0,0,0,0,1,1\n6,2000,2,1,0,0,0,0,1,1\n5,2000,2,1,0,0,0,0,1,1\n",
        encoding="utf-8",
    )
    out_path = tmp_path / "out.csv"
    r = runner.invoke(
        app,
        [
            "expand",
            str(src),
            "-s",
            _species(tmp_path, 1, 2),
            "--no-sort",
            "--no-check-sorted",
            "--on-duplicate",
            "allow",
            "-o",
            str(out_path),
        ],
    )
    assert r.exit_code == 0, r.output
    assert len(out_path.read_text(encoding="utf-8").splitlines()) == 1 + 6


def test_sorting_makes_scattered_rows_one_occasion(tmp_path: Path):
    src = tmp_path / "in.csv"
    src.write_text(
        f"{HEADER}\n5,2000,2,1,0,0,0,0,1,1\n6,2000,2,1,0,0,0,0,1,1\n5,2000,1,1,0,0,0,0,1,1\n",
        encoding="utf-8",
    )
    out_path = tmp_path / "out.csv"
    r = runner.invoke(app, ["expand", str(src), "-s", _species(tmp_path, 1, 2), "-o", str(out_path)])
    assert r.exit_code == 0, r.output
    assert "(2 occasions, 0 skipped)" in r.output


def test_repeated_occasion_allowed_with_sort_check_on(tmp_path: Path):
    src = tmp_path / "in.csv"
    src.write_text(
        f"{HEADER}\n5,2000,1,1,0,0,0,0,1,1\n6,2000,2,1,0,0,0,0,1,1\n5,2000,2,1,0,0,0,0,1,1\n",
        encoding="utf-8",
    )
    out_path = tmp_path / "out.csv"
    r = runner.invoke(
        app,
        ["expand", str(src), "-s", _species(tmp_path, 1, 2), "--no-sort", "--on-duplicate", "allow", "-o", str(out_path)],
    )
    assert r.exit_code == 0, r.output
    assert "E_UNSORTED" not in r.output
    lines = out_path.read_text(encoding="utf-8").splitlines()
    assert lines[1:] == [
        "5,2000,1,1,0,0,0,0,1,1",
        "5,2000,2,0,0,0,0,0,0,0",
        "6,2000,1,0,0,0,0,0,0,0",
        "6,2000,2,1,0,0,0,0,1,1",
        "5,2000,1,0,0,0,0,0,0,0",
        "5,2000,2,1,0,0,0,0,1,1",
    ]


def test_duplicate_record_example_fails_after_first_block(tmp_path: Path):
    out_path = tmp_path / "out.csv"
    r = runner.invoke(
        app,
        ["expand", str(EXAMPLES / "duplicate-record.csv"), "-s", str(EXAMPLES / "species.txt"), "-o", str(out_path)],
    )
    assert r.exit_code == 2
    assert "E_DUPLICATE_OCCASION" in r.output
    assert "species 2730 recorded twice" in r.output
    assert "OK: expanded" not in r.output

    lines = out_path.read_text(encoding="utf-8").splitlines()
    assert lines == [
        HEADER,
        "1,2000,3160,0,0,0,0,0,0,0",
        "1,2000,2730,2,0,0,0,0,1,2",
        "1,2000,5930,0,0,0,0,0,0,0",
        "1,2000,4860,0,0,0,0,0,0,0",
    ]


def test_split_occasion_merged_by_sort_fails(tmp_path: Path):
    src = tmp_path / "in.csv"
    src.write_text(
        f"{HEADER}\n"
        "5,2000,1,1,0,0,0,0,1,1\n"
        "5,2000,2,1,0,0,0,0,1,1\n"
        "6,2000,1,1,0,0,0,0,1,1\n"
        "5,2000,1,3,0,0,0,0,1,3\n"
        "5,2000,2,3,0,0,0,0,1,3\n",
        encoding="utf-8",
    )
    out_path = tmp_path / "out.csv"
    r = runner.invoke(app, ["expand", str(src), "-s", _species(tmp_path, 1, 2), "-o", str(out_path)])
    assert r.exit_code == 2
    assert "E_DUPLICATE_OCCASION" in r.output
    assert "OK: expanded" not in r.output
    assert out_path.read_text(encoding="utf-8").splitlines() == [
        HEADER,
        "5,2000,1,1,0,0,0,0,1,1",
        "5,2000,2,1,0,0,0,0,1,1",
    ]


def test_expand_stdin_keeps_carriage_returns_and_bom(tmp_path: Path):
    data = f"\ufeff{HEADER}\r\n5,2000,2,1,0,0,0,0,3,4\r\n".encode("utf-8")
    r = runner.invoke(app, ["expand", "-s", _species(tmp_path, 1, 2)], input=data)
    assert r.exit_code == 0, r.output
    assert "W_CARRIAGE_RETURN" in r.output
    assert "5,2000,1,0,0,0,0,0,0,0\n5,2000,2,1,0,0,0,0,3,4\n" in r.output


def test_check_sorted_flag_overrides_config(tmp_path: Path):
    cfg = tmp_path / "run.yaml"
    cfg.write_text("check_sorted: false\n", encoding="utf-8")
    src = tmp_path / "in.csv"
    src.write_text(f"{HEADER}\n5,2000,2,1,0,0,0,0,1,1\n5,2000,1,1,0,0,0,0,1,1\n", encoding="utf-8")
    species = _species(tmp_path, 1, 2)

    r = runner.invoke(app, ["expand", str(src), "-s", species, "--config", str(cfg), "--no-sort", "-o", str(tmp_path / "a.csv")])
    assert r.exit_code == 0, r.output

    r = runner.invoke(
        app,
        ["expand", str(src), "-s", species, "--config", str(cfg), "--no-sort", "--check-sorted", "-o", str(tmp_path / "b.csv")],
    )
    assert r.exit_code == 2
    assert "E_UNSORTED" in r.output


def test_sort_flag_overrides_config(tmp_path: Path):
    cfg = tmp_path / "run.yaml"
    cfg.write_text("sort_input: false\n", encoding="utf-8")
    src = tmp_path / "in.csv"
    src.write_text(
        f"{HEADER}\n5,2000,2,1,0,0,0,0,1,1\n6,2000,2,1,0,0,0,0,1,1\n5,2000,1,1,0,0,0,0,1,1\n",
        encoding="utf-8",
    )
    species = _species(tmp_path, 1, 2)

    r = runner.invoke(app, ["expand", str(src), "-s", species, "--config", str(cfg), "-o", str(tmp_path / "a.csv")])
    assert r.exit_code == 2
    assert "E_DUPLICATE_OCCASION" in r.output

    r = runner.invoke(app, ["expand", str(src), "-s", species, "--config", str(cfg), "--sort", "-o", str(tmp_path / "b.csv")])
    assert r.exit_code == 0, r.output
    assert "(2 occasions, 0 skipped)" in r.output
