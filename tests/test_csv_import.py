from datetime import date
from decimal import Decimal

from efaktura.constants import CSV_FALLBACK_SUPPLIER
from efaktura.models import Tenant
from efaktura.parsing.codes import Direction, LocalStatus, SourceFormat
from efaktura.parsing.csv_import import EMPTY_CSV_ERROR, detect_columns, parse_sef_csv

TENANT = Tenant(id="firma-1", tax_id="100200300", home_currency="RSD")

SEF_CSV = (
    "Broj;Datum izdavanja;Iznos;Dobavljač;Status\n"
    "F-1;14.03.2025;1.234,56;Alfa d.o.o.;Approved\n"
    "F-2;2025-03-15;500;Beta d.o.o.;Sent\n"
)

SWAPPED_CSV = (
    "Status;Dobavljač;Iznos;Datum izdavanja;Broj\n"
    "Approved;Alfa d.o.o.;1.234,56;14.03.2025;F-1\n"
    "Sent;Beta d.o.o.;500;2025-03-15;F-2\n"
)


def _values(result):
    return [
        (
            r.invoice_number,
            r.issue_date,
            r.total_amount,
            r.counterparty_name,
            r.exchange_status,
        )
        for r in result.records
    ]


def test_detect_columns_serbian_header():
    header = [
        "Broj fakture",
        "Datum izdavanja",
        "Iznos",
        "Dobavljač",
        "Status",
        "PIB",
        "Valuta",
        "Datum dospeća",
    ]
    assert detect_columns(header) == {
        "invoice_number": 0,
        "issue_date": 1,
        "amount": 2,
        "supplier": 3,
        "status": 4,
        "tax_id": 5,
        "currency": 6,
        "due_date": 7,
    }


def test_detect_columns_english_header():
    header = ["Invoice number", "Issue date", "Amount", "Supplier", "Tax ID", "Due date"]
    cols = detect_columns(header)
    assert cols["invoice_number"] == 0
    assert cols["issue_date"] == 1
    assert cols["amount"] == 2
    assert cols["supplier"] == 3
    assert cols["tax_id"] == 4
    assert cols["due_date"] == 5
    assert "currency" not in cols


def test_parse_sef_csv_values():
    result = parse_sef_csv(SEF_CSV, TENANT)
    assert result.errors == []
    assert _values(result) == [
        ("F-1", "2025-03-14", Decimal("1234.56"), "Alfa d.o.o.", "Approved"),
        ("F-2", "2025-03-15", Decimal("500"), "Beta d.o.o.", "Sent"),
    ]
    first = result.records[0]
    assert first.tenant_id == "firma-1"
    assert first.currency == "RSD"
    assert first.direction == Direction.PURCHASE
    assert first.status == LocalStatus.IMPORTED
    assert first.source_format == SourceFormat.CSV
    assert first.raw_payload.startswith("Broj;Datum izdavanja")


def test_column_order_does_not_matter():
    assert _values(parse_sef_csv(SWAPPED_CSV, TENANT)) == _values(
        parse_sef_csv(SEF_CSV, TENANT)
    )


def test_source_ids_are_stable_and_ignore_position():
    first = parse_sef_csv(SEF_CSV, TENANT)
    second = parse_sef_csv(SEF_CSV, TENANT)
    ids = [r.source_id for r in first.records]
    assert ids == [r.source_id for r in second.records]
    assert all(i.startswith("CSV-IMPORT-") and i.endswith("-1") for i in ids)
    assert len(set(ids)) == 2

    swapped = [r.source_id for r in parse_sef_csv(SWAPPED_CSV, TENANT).records]
    assert swapped == ids

    header, row_1, row_2 = SEF_CSV.splitlines()
    reordered = parse_sef_csv("\n".join([header, row_2, row_1]), TENANT)
    assert [r.source_id for r in reordered.records] == ids[::-1]


def test_identical_rows_get_distinct_ids():
    header, row_1, _ = SEF_CSV.splitlines()
    result = parse_sef_csv("\n".join([header, row_1, row_1]), TENANT)
    first, second = [r.source_id for r in result.records]
    assert first.endswith("-1")
    assert second == first[:-1] + "2"


def test_editing_one_row_keeps_other_ids():
    original = parse_sef_csv(SEF_CSV, TENANT)
    edited = parse_sef_csv(SEF_CSV.replace(";500;", ";550;"), TENANT)
    assert edited.records[0].source_id == original.records[0].source_id
    assert edited.records[1].source_id != original.records[1].source_id

    restatused = parse_sef_csv(SEF_CSV.replace("Sent", "Approved"), TENANT)
    assert [r.source_id for r in restatused.records] == [
        r.source_id for r in original.records
    ]


def test_bad_amounts_are_reported_with_row_numbers():
    lines = ["Broj;Datum izdavanja;Iznos;Dobavljač;Status"]
    for i in range(1, 11):
        amount = "n/a" if i in (3, 7) else str(i * 100)
        lines.append(f"F-{i};01.03.2025;{amount};Dobavljač {i};Sent")
    result = parse_sef_csv("\n".join(lines), TENANT)

    assert len(result.records) == 8
    assert result.errors == [
        "Red 4: neispravan iznos 'n/a'",
        "Red 8: neispravan iznos 'n/a'",
    ]
    assert "F-3" not in [r.invoice_number for r in result.records]


def test_empty_csv():
    assert parse_sef_csv("", TENANT).errors == [EMPTY_CSV_ERROR]
    header_only = parse_sef_csv("Broj;Iznos\n\n", TENANT)
    assert header_only.records == []
    assert header_only.errors == [EMPTY_CSV_ERROR]


def test_missing_columns_use_fallbacks():
    result = parse_sef_csv("Opis;Napomena\nx;y\n", TENANT, today=date(2025, 1, 2))
    (rec,) = result.records
    assert rec.invoice_number == "CSV-1"
    assert rec.issue_date == "2025-01-02"
    assert rec.total_amount == Decimal("0")
    assert rec.currency == "RSD"
    assert rec.counterparty_name == CSV_FALLBACK_SUPPLIER
    assert rec.exchange_status == "Imported"


def test_short_row_is_reported():
    csv_text = "Broj;Datum izdavanja;Iznos\nF-1;01.03.2025\nF-2;01.03.2025;10\n"
    result = parse_sef_csv(csv_text, TENANT)
    assert [r.invoice_number for r in result.records] == ["F-2"]
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Red 2: nedostaje kolona 3")


def test_bom_quotes_and_optional_columns():
    csv_text = (
        "\ufeffBroj;Datum izdavanja;Iznos;Dobavljač;PIB;Valuta;Datum dospeća\n"
        '"F-9";"14.03.2025";"2.500,00";"Alfa; Beta d.o.o.";"RS101134702";eur;13.04.2025\n'
    )
    result = parse_sef_csv(csv_text, TENANT, direction=Direction.SALES)
    (rec,) = result.records
    assert rec.invoice_number == "F-9"
    assert rec.counterparty_name == "Alfa; Beta d.o.o."
    assert rec.counterparty_tax_id == "RS101134702"
    assert rec.total_amount == Decimal("2500.00")
    assert rec.currency == "EUR"
    assert rec.due_date == "2025-04-13"
    assert rec.direction == Direction.SALES
