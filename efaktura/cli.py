# File: efaktura/cli.py
import click
import os
from pathlib import Path
import logging

from efaktura.constants import STORE_DIR
from efaktura.ingest import import_files
from efaktura.invoice_store import InvoiceStoreError, JsonInvoiceStore
from efaktura.models import Tenant
from efaktura.parsing.codes import Direction, LocalStatus
from efaktura.parsing.money import format_amount
from efaktura.parsing.ubl import parse_ubl_file
from efaktura.parsing.utils import format_date
from efaktura.report import export_records, records_to_frame

# Columns shown by ``efaktura list``.
LIST_COLS = ["SEF ID", "Broj fakture", "Datum izdavanja", "Komitent", "Iznos", "Status"]


@click.group()
def main():
    """efaktura – uvoz i pregled SEF e-faktura (XML/CSV)."""
    logging.basicConfig(level=logging.INFO)


def _store(store_dir):
    return JsonInvoiceStore(Path(store_dir or os.getenv("EFAKTURA_STORE_DIR", STORE_DIR)))


def _collect(paths):
    """Expand folders to the ``*.xml``/``*.csv`` files they contain."""
    for path_str in paths:
        path = Path(path_str)
        if path.is_dir():
            yield from sorted(
                p for p in path.rglob("*") if p.suffix.lower() in (".xml", ".csv")
            )
        else:
            yield path


store_option = click.option(
    "--store",
    "store_dir",
    type=click.Path(),
    default=None,
    help="Mapa sa sačuvanim fakturama (podrazumevano EFAKTURA_STORE_DIR)",
)
tenant_option = click.option("--tenant", required=True, help="ID firme")


@main.command()
@click.argument("invoice", type=click.Path(exists=True, dir_okay=False))
def parse(invoice):
    """Prikaži sadržaj jedne UBL fakture."""
    parsed = parse_ubl_file(invoice)
    if parsed is None:
        click.echo(f"[GREŠKA PARSIRANJA] {Path(invoice).name}")
        raise SystemExit(1)

    cur = parsed.currency
    click.echo(f"Faktura:    {parsed.invoice_number} ({parsed.document_type.value})")
    click.echo(f"SEF ID:     {parsed.exchange_id or '-'}")
    click.echo(f"Datum:      {format_date(parsed.issue_date)}")
    click.echo(f"Dospeće:    {format_date(parsed.due_date)}")
    click.echo(f"Dobavljač:  {parsed.supplier.name} (PIB {parsed.supplier.tax_id or '-'})")
    click.echo(f"Kupac:      {parsed.customer.name} (PIB {parsed.customer.tax_id or '-'})")
    for item in parsed.items:
        click.echo(
            f"  {item.description}: {item.quantity} {item.unit_code} x "
            f"{format_amount(item.unit_price, cur)} = "
            f"{format_amount(item.net_amount, cur)} (PDV {item.vat_rate}%)"
        )
    for band in parsed.vat_breakdown:
        click.echo(
            f"  PDV {band.rate}%: osnovica {format_amount(band.base, cur)}, "
            f"porez {format_amount(band.amount, cur)}"
        )
    click.echo(f"Osnovica:   {format_amount(parsed.subtotal, cur)}")
    click.echo(f"PDV:        {format_amount(parsed.total_vat, cur)}")
    click.echo(f"Ukupno:     {format_amount(parsed.total_amount, cur)}")
    click.echo(f"Za plaćanje: {format_amount(parsed.payable_amount, cur)}")


@main.command(name="import")
@click.argument("paths", type=click.Path(exists=True), nargs=-1)
@tenant_option
@click.option("--tax-id", default=None, help="PIB firme (za prepoznavanje izlaznih faktura)")
@store_option
def import_cmd(paths, tenant, tax_id, store_dir):
    """Uvezi XML i CSV fajlove (ili mape) u arhivu firme."""
    if not paths:
        click.echo("Navedite bar jedan fajl ili mapu.")
        return

    result = import_files(
        list(_collect(paths)), Tenant(id=tenant, tax_id=tax_id), _store(store_dir)
    )
    click.echo(f"Uvezeno: {result.imported}, preskočeno: {result.skipped}")
    for err in result.errors:
        click.echo(f"[GREŠKA] {err}")
    if result.errors:
        raise SystemExit(1)


@main.command(name="list")
@tenant_option
@click.option(
    "--direction",
    type=click.Choice([d.value for d in Direction]),
    default=None,
)
@click.option(
    "--status",
    type=click.Choice([s.value for s in LocalStatus]),
    default=None,
)
@store_option
def list_cmd(tenant, direction, status, store_dir):
    """Izlistaj sačuvane fakture firme."""
    records = _store(store_dir).list_records(
        tenant,
        direction=Direction(direction) if direction else None,
        status=LocalStatus(status) if status else None,
    )
    if records:
        df = records_to_frame(records)
        click.echo(df[LIST_COLS].to_string(index=False))
    click.echo(f"Ukupno: {len(records)}")


@main.command()
@click.argument("output", type=click.Path(dir_okay=False))
@tenant_option
@store_option
def export(output, tenant, store_dir):
    """Izvezi fakture firme u .xlsx ili .csv."""
    records = _store(store_dir).list_records(tenant)
    path = export_records(records, output)
    click.echo(f"Izvezeno {len(records)} faktura u {path}")


@main.command()
@click.argument("source_id")
@click.argument(
    "new_status",
    type=click.Choice(
        [LocalStatus.PENDING.value, LocalStatus.APPROVED.value, LocalStatus.REJECTED.value]
    ),
)
@tenant_option
@click.option("--reason", default=None, help="Razlog odbijanja")
@store_option
def status(source_id, new_status, tenant, reason, store_dir):
    """Promeni status pregleda (pending/approved/rejected)."""
    try:
        record = _store(store_dir).update_status(tenant, source_id, new_status, reason)
    except InvoiceStoreError as exc:
        click.echo(f"[GREŠKA] {exc}")
        raise SystemExit(1)
    click.echo(f"{record.source_id}: {record.status.value}")


@main.command()
@click.argument("source_id")
@click.argument("invoice_id")
@tenant_option
@store_option
def link(source_id, invoice_id, tenant, store_dir):
    """Poveži SEF fakturu sa lokalnom fakturom."""
    try:
        record = _store(store_dir).link_local_invoice(tenant, source_id, invoice_id)
    except InvoiceStoreError as exc:
        click.echo(f"[GREŠKA] {exc}")
        raise SystemExit(1)
    click.echo(f"{record.source_id} -> {record.linked_invoice_id}")


@main.command()
@click.argument("source_id")
@tenant_option
@store_option
def delete(source_id, tenant, store_dir):
    """Obriši SEF fakturu iz arhive."""
    try:
        _store(store_dir).delete(tenant, source_id)
    except InvoiceStoreError as exc:
        click.echo(f"[GREŠKA] {exc}")
        raise SystemExit(1)
    click.echo(f"Obrisano: {source_id}")


if __name__ == "__main__":
    main()
