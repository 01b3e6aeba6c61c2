from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from spectral_store.db.dialect import available_backends
from spectral_store.errors import FilterValidationError
from spectral_store.logging_utils import configure_logging
from spectral_store.model.filters import UNBOUNDED, OrphanFilter, RangeCondition, ReadingFilter, SortKey
from spectral_store.model.metadata import DataType
from spectral_store.model.reading import DEFAULT_FORMAT
from spectral_store.query.api import open_default_api
from spectral_store.query.export import dumps_bundle, export_bundle

"""
Spectral Store Query CLI
========================

Interactive/verification querying of the local reading database, with
human-readable tables and a machine-friendly JSON export.

Selecting readings
------------------
`list` and `export` take the same selection flags:

  --sample-id RE / --sample-type RE / --format RE
      Regular expressions on the reading itself. Empty means "any".
  --instrument RE
      Regular expression on the "Instrument" metadata field.
  --start TS / --end TS
      Bounds on the insert timestamp, "YYYY-MM-DD HH:MM:SS"; a date alone covers the whole day.
  --range "FIELD:MIN:MAX"
      Numeric window on a metadata field; leave MIN or MAX empty for an open end.
      Repeatable.
  --require FIELD
      Only readings whose sample carries FIELD. Repeatable.
  --exclude-dummies / --only-dummies
      Filter on the dummy flag (mutually exclusive).
  --sort {db_id,sample_id,insert_timestamp} [--latest] [--limit N]

Commands
--------
list        Table of matching readings.
show ID     One reading with metadata and its first points.
fields      Metadata fields in use (optionally --type N).
instruments Distinct instrument names.
orphans     Sample IDs with metadata but no reading.
export      JSON bundle of matching readings (stdout or --out PATH).
delete ID   Remove a reading (and its metadata unless --keep-metadata).
mark-dummy ID
            Flag a sample as a dummy (or --clear the flag).

Examples
--------
python scripts/query.py list --instrument "^X1$" --range "Moisture:5:10" --latest --limit 20
python scripts/query.py show S-0001 --format NIR --points 5
python scripts/query.py export --sample-type leaf --no-points --out leaf.json
"""


def _format_table(rows: list[dict[str, Any]], columns: list[tuple[str, str]]) -> str:
    """Format rows into an aligned table with | separators."""
    table = []
    for r in rows:
        table.append([("" if r.get(k) is None else str(r.get(k))) for k, _ in columns])

    headers = [h for _, h in columns]

    widths = []
    for j in range(len(columns)):
        col_vals = [headers[j], *[row[j] for row in table]]
        widths.append(max(len(v) for v in col_vals))

    def fmt_row(vals: list[str]) -> str:
        return " | ".join(v.ljust(widths[i]) for i, v in enumerate(vals))

    sep = "-+-".join("-" * w for w in widths)

    out_lines = [fmt_row(headers), sep]
    out_lines.extend(fmt_row(r) for r in table)
    return "\n".join(out_lines)


def parse_range(text: str) -> RangeCondition:
    """Parse "FIELD:MIN:MAX"; the field name itself may contain colons."""
    try:
        name, lo, hi = text.rsplit(":", 2)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected FIELD:MIN:MAX, got {text!r}") from None
    if not name.strip():
        raise argparse.ArgumentTypeError(f"missing field name in {text!r}")
    try:
        minimum = float(lo) if lo.strip() else UNBOUNDED
        maximum = float(hi) if hi.strip() else UNBOUNDED
    except ValueError:
        raise argparse.ArgumentTypeError(f"bounds must be numbers in {text!r}") from None
    return RangeCondition(name.strip(), minimum, maximum)


def _add_filter_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--sample-id", default="", help="Regex on the sample ID.")
    p.add_argument("--sample-type", default="", help="Regex on the sample type.")
    p.add_argument("--format", dest="data_format", default="", help="Regex on the data format.")
    p.add_argument("--instrument", default="", help="Regex on the Instrument field.")
    p.add_argument("--start", default=None, help="Earliest insert timestamp (inclusive).")
    p.add_argument("--end", default=None, help="Latest insert timestamp (inclusive).")
    p.add_argument("--range", dest="ranges", type=parse_range, action="append", default=[], help="FIELD:MIN:MAX")
    p.add_argument("--require", dest="required", action="append", default=[], help="Required metadata field.")
    p.add_argument("--exclude-dummies", action="store_true")
    p.add_argument("--only-dummies", action="store_true")
    p.add_argument("--sort", choices=[k.value for k in SortKey], default=SortKey.DATABASE_ID.value)
    p.add_argument("--latest", action="store_true", help="Sort descending.")
    p.add_argument("--limit", type=int, default=-1)


def filter_from_args(args: argparse.Namespace) -> ReadingFilter:
    return ReadingFilter(
        sample_id=args.sample_id,
        sample_type=args.sample_type,
        data_format=args.data_format,
        instrument=args.instrument,
        start=args.start,
        end=args.end,
        ranges=tuple(args.ranges),
        required=tuple(args.required),
        exclude_dummies=args.exclude_dummies,
        only_dummies=args.only_dummies,
        latest=args.latest,
        sort_by=SortKey(args.sort),
        limit=args.limit,
    )


def _reading_rows(readings) -> list[dict[str, Any]]:
    rows = []
    for r in readings:
        rows.append(
            {
                "db_id": r.db_id,
                "sample_id": r.sample_id,
                "sample_type": r.sample_type,
                "data_format": r.data_format,
                "n_points": len(r.points),
                "instrument": r.metadata.value("Instrument", ""),
                "inserted": r.metadata.value("Insert timestamp", ""),
                "dummy": "yes" if r.metadata.is_dummy else "",
            }
        )
    return rows


def main() -> None:
    ap = argparse.ArgumentParser(description="Query the local spectral reading database.")
    ap.add_argument("--backend", choices=available_backends(), default=None, help="Database backend.")
    ap.add_argument("--db-path", type=Path, default=None, help="Override database file.")
    ap.add_argument("--log-level", default=None, help="Logging level (default from SPECTRAL_STORE_LOG_LEVEL).")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ls = sub.add_parser("list", help="List matching readings.")
    _add_filter_args(ls)
    ls.add_argument("--json", action="store_true", help="Print rows as JSON.")

    sh = sub.add_parser("show", help="Show one reading.")
    sh.add_argument("sample_id")
    sh.add_argument("--format", dest="data_format", default=DEFAULT_FORMAT)
    sh.add_argument("--points", type=int, default=10, help="How many points to print.")

    fl = sub.add_parser("fields", help="List metadata fields.")
    fl.add_argument("--type", dest="dtype", choices=[t.value for t in DataType], default=None)

    sub.add_parser("instruments", help="List instruments.")

    orp = sub.add_parser("orphans", help="List sample IDs with metadata but no reading.")
    orp.add_argument("--start", default=None)
    orp.add_argument("--end", default=None)
    orp.add_argument("--latest", action="store_true")
    orp.add_argument("--limit", type=int, default=-1)

    ex = sub.add_parser("export", help="Export a machine-friendly JSON bundle.")
    _add_filter_args(ex)
    ex.add_argument("--no-points", action="store_true", help="Leave point lists out.")
    ex.add_argument("--out", type=Path, default=None)

    de = sub.add_parser("delete", help="Remove a reading.")
    de.add_argument("sample_id")
    de.add_argument("--format", dest="data_format", default=DEFAULT_FORMAT)
    de.add_argument("--keep-metadata", action="store_true")

    md = sub.add_parser("mark-dummy", help="Flag a sample as a dummy.")
    md.add_argument("sample_id")
    md.add_argument("--clear", action="store_true", help="Clear the flag instead.")

    args = ap.parse_args()
    configure_logging(args.log_level)

    api = open_default_api(backend=args.backend, db_path=args.db_path)

    if args.cmd in ("list", "export"):
        try:
            flt = filter_from_args(args)
            flt.check()
        except FilterValidationError as e:
            ap.error(str(e))

    if args.cmd == "list":
        rows = _reading_rows(api.readings(flt))
        if args.json:
            print(json.dumps(rows, indent=2, ensure_ascii=False))
            return
        print(
            _format_table(
                rows,
                [
                    ("db_id", "ID"),
                    ("sample_id", "Sample"),
                    ("sample_type", "Type"),
                    ("data_format", "Format"),
                    ("n_points", "Points"),
                    ("instrument", "Instrument"),
                    ("inserted", "Inserted"),
                    ("dummy", "Dummy"),
                ],
            )
        )
        print(f"\n{len(rows)} reading(s)")
        return

    if args.cmd == "show":
        r = api.reading(args.sample_id, args.data_format)
        if r is None:
            print(f"No reading #{args.sample_id} ({args.data_format})")
            return
        print(f"== #{r.sample_id} ({r.data_format}) id={r.db_id} type={r.sample_type or '-'} ==")
        if r.metadata.is_dummy:
            print("(dummy)")
        meta_rows = [{"name": name, "type": fv.dtype.value, "value": fv.value} for name, fv in r.metadata.items()]
        print(_format_table(meta_rows, [("name", "Field"), ("type", "T"), ("value", "Value")]))
        shown = r.points[: max(args.points, 0)]
        print(f"\n{len(r.points)} point(s)" + (f", first {len(shown)}:" if shown else ""))
        for p in shown:
            print(f"  {p.position:>12g}  {p.amplitude:g}")
        return

    if args.cmd == "fields":
        dtype = DataType(args.dtype) if args.dtype else None
        rows = [{"name": f.name, "type": f.dtype.value} for f in api.fields(dtype)]
        print(_format_table(rows, [("name", "Field"), ("type", "Type")]))
        return

    if args.cmd == "instruments":
        for name in api.instruments():
            print(name)
        return

    if args.cmd == "orphans":
        flt_o = OrphanFilter(start=args.start, end=args.end, latest=args.latest, limit=args.limit)
        for sid in api.orphans(flt_o):
            print(sid)
        return

    if args.cmd == "export":
        text = dumps_bundle(export_bundle(api, flt, include_points=not args.no_points))
        if args.out:
            args.out.parent.mkdir(parents=True, exist_ok=True)
            args.out.write_text(text + "\n", encoding="utf-8")
            print(f"Wrote {args.out}")
        else:
            print(text)
        return

    if args.cmd == "delete":
        ok = api.tables.readings.remove_sample(args.sample_id, args.data_format, keep_metadata=args.keep_metadata)
        print(f"Removed #{args.sample_id} ({args.data_format})" if ok else f"No reading #{args.sample_id} ({args.data_format})")
        return

    if args.cmd == "mark-dummy":
        ok = api.tables.metadata.mark_dummy(args.sample_id, not args.clear)
        state = "cleared" if args.clear else "set"
        print(f"Dummy flag {state} for #{args.sample_id}" if ok else f"Could not update #{args.sample_id}")
        return


if __name__ == "__main__":
    main()
