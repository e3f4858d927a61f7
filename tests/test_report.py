from decimal import Decimal

import pandas as pd

from efaktura.models import CanonicalRecord
from efaktura.parsing.codes import Direction, SourceFormat
from efaktura.report import REPORT_COLS, export_records, records_to_frame


def _records():
    return [
        CanonicalRecord(
            tenant_id="t1",
            source_id="SEF-1",
            direction=Direction.PURCHASE,
            invoice_number="RN-1",
            issue_date="2025-03-14",
            due_date="2025-04-13",
            total_amount=Decimal("27300.00"),
            payable_amount=Decimal("0.00"),
            net_amount=Decimal("23000.00"),
            vat_amount=Decimal("4300.00"),
            currency="RSD",
            counterparty_name="Alfa Trade d.o.o.",
            source_format=SourceFormat.XML,
        ),
        CanonicalRecord(
            tenant_id="t1",
            source_id="SEF-2",
            direction=Direction.SALES,
            invoice_number="RN-2",
            issue_date="2025-03-15",
            total_amount=Decimal("100"),
            currency="EUR",
            source_format=SourceFormat.CSV,
        ),
    ]


def test_records_to_frame():
    df = records_to_frame(_records())
    assert list(df.columns) == REPORT_COLS
    assert len(df) == 2

    first = df.iloc[0]
    assert first["Broj fakture"] == "RN-1"
    assert first["Datum izdavanja"] == "14.03.2025"
    assert first["Datum dospeća"] == "13.04.2025"
    assert first["Iznos"] == Decimal("27300.00")
    assert first["Za plaćanje"] == Decimal("0.00")
    assert df.iloc[1]["Za plaćanje"] is None
    assert isinstance(first["PDV"], Decimal)
    assert first["Vrsta"] == "purchase"
    assert first["Status"] == "imported"
    assert df.iloc[1]["Datum dospeća"] == ""


def test_records_to_frame_empty():
    df = records_to_frame([])
    assert df.empty
    assert list(df.columns) == REPORT_COLS


def test_export_csv(tmp_path):
    path = export_records(_records(), tmp_path / "izvoz" / "fakture.csv")
    assert path.exists()

    df = pd.read_csv(path, sep=";", dtype=str)
    assert list(df.columns) == REPORT_COLS
    assert df["Iznos"].tolist() == ["27300.00", "100"]
    assert df["Valuta"].tolist() == ["RSD", "EUR"]


def test_export_xlsx(tmp_path):
    path = export_records(_records(), tmp_path / "fakture.xlsx")
    df = pd.read_excel(path, sheet_name="fakture", dtype=str)
    assert list(df.columns) == REPORT_COLS
    assert df["Broj fakture"].tolist() == ["RN-1", "RN-2"]
