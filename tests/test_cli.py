from pathlib import Path

from click.testing import CliRunner

import efaktura.cli as cli
from efaktura.invoice_store import JsonInvoiceStore
from efaktura.parsing.codes import LocalStatus

FIXTURE = Path("tests/sef_invoice.xml")
SOURCE_ID = "3f2b8c1e-5d7a-4e1b-9c2f-0a1b2c3d4e5f"


def _import(runner, store_dir, *extra):
    return runner.invoke(
        cli.main,
        ["import", str(FIXTURE), "--tenant", "beta", "--store", str(store_dir), *extra],
    )


def test_cli_parse_prints_summary():
    result = CliRunner().invoke(cli.main, ["parse", str(FIXTURE)])
    assert result.exit_code == 0
    assert "RN-2025-0042" in result.output
    assert "Alfa Trade d.o.o." in result.output
    assert "Toner HP 85A" in result.output
    assert "27.300,00 RSD" in result.output


def test_cli_parse_error(tmp_path):
    bad = tmp_path / "bad.xml"
    bad.write_text("<Invoice>", encoding="utf-8")
    result = CliRunner().invoke(cli.main, ["parse", str(bad)])
    assert result.exit_code == 1
    assert "[GREŠKA PARSIRANJA] bad.xml" in result.output


def test_cli_import_and_list(tmp_path):
    runner = CliRunner()
    store_dir = tmp_path / "store"

    result = _import(runner, store_dir)
    assert result.exit_code == 0
    assert "Uvezeno: 1, preskočeno: 0" in result.output

    again = _import(runner, store_dir)
    assert "Uvezeno: 0, preskočeno: 1" in again.output

    listed = runner.invoke(
        cli.main, ["list", "--tenant", "beta", "--store", str(store_dir)]
    )
    assert listed.exit_code == 0
    assert "RN-2025-0042" in listed.output
    assert "Ukupno: 1" in listed.output


def test_cli_import_reports_errors(tmp_path):
    folder = tmp_path / "ulaz"
    folder.mkdir()
    (folder / "prazan.csv").write_text("", encoding="utf-8")
    result = CliRunner().invoke(
        cli.main,
        ["import", str(folder), "--tenant", "beta", "--store", str(tmp_path / "s")],
    )
    assert result.exit_code == 1
    assert "[GREŠKA] prazan.csv:" in result.output


def test_cli_store_from_env(monkeypatch, tmp_path):
    store_dir = tmp_path / "env_store"
    monkeypatch.setenv("EFAKTURA_STORE_DIR", str(store_dir))
    runner = CliRunner()

    result = runner.invoke(cli.main, ["import", str(FIXTURE), "--tenant", "beta"])
    assert result.exit_code == 0
    assert JsonInvoiceStore(store_dir).exists("beta", SOURCE_ID)


def test_cli_review_flow(tmp_path):
    runner = CliRunner()
    store_dir = tmp_path / "store"
    _import(runner, store_dir)
    opts = ["--tenant", "beta", "--store", str(store_dir)]

    rejected = runner.invoke(
        cli.main, ["status", SOURCE_ID, "rejected", *opts, "--reason", "duplikat"]
    )
    assert rejected.exit_code == 0
    record = JsonInvoiceStore(store_dir).get("beta", SOURCE_ID)
    assert record.status == LocalStatus.REJECTED
    assert record.rejection_reason == "duplikat"

    linked = runner.invoke(cli.main, ["link", SOURCE_ID, "INV-5", *opts])
    assert linked.exit_code == 0
    assert f"{SOURCE_ID} -> INV-5" in linked.output

    filtered = runner.invoke(cli.main, ["list", "--status", "imported", *opts])
    assert "Ukupno: 1" in filtered.output

    deleted = runner.invoke(cli.main, ["delete", SOURCE_ID, *opts])
    assert deleted.exit_code == 0
    assert not JsonInvoiceStore(store_dir).exists("beta", SOURCE_ID)


def test_cli_unknown_record(tmp_path):
    result = CliRunner().invoke(
        cli.main,
        ["status", "nema", "approved", "--tenant", "beta", "--store", str(tmp_path)],
    )
    assert result.exit_code == 1
    assert "[GREŠKA]" in result.output


def test_cli_export(tmp_path):
    runner = CliRunner()
    store_dir = tmp_path / "store"
    _import(runner, store_dir)
    out = tmp_path / "fakture.csv"

    result = runner.invoke(
        cli.main, ["export", str(out), "--tenant", "beta", "--store", str(store_dir)]
    )
    assert result.exit_code == 0
    assert out.exists()
    assert "RN-2025-0042" in out.read_text(encoding="utf-8")
