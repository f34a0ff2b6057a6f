import argparse
import asyncio
import logging
import sys

from _version import __version__
from config_paths import configure_logging, load_config
from data_provider import DataProvider
from data_source import DataFrameSource
from grid_cell import Cell, CellKind
from sort_overlay import ASC, DESC

logger = logging.getLogger(__name__)

MAX_COL_WIDTH = 40


def _split_pair(text: str, sep: str, label: str) -> tuple[str, str]:
    left, found, right = text.partition(sep)
    if not found or not left:
        raise ValueError(f"Expected {label}, got '{text}'")
    return left, right


def _parse_format(text: str) -> tuple[str, str]:
    column, fmt = _split_pair(text, "=", "COLUMN=FORMAT")
    if not fmt:
        raise ValueError(f"Missing format for column '{column}'")
    return column, fmt


def _parse_assignment(text: str) -> tuple[int, str, str]:
    target, value = _split_pair(text, "=", "ROW:COLUMN=VALUE")
    row, column = _split_pair(target, ":", "ROW:COLUMN=VALUE")
    try:
        return int(row), column, value
    except ValueError:
        raise ValueError(f"Row must be an integer, got '{row}'") from None


def _resolve_column(provider: DataProvider, token: str) -> int:
    for idx in range(provider.get_column_count()):
        column = provider.get_column_definition(idx)
        if token in (column.id, column.column_name):
            return idx
    if token.isdigit() and int(token) < provider.get_column_count():
        return int(token)
    raise ValueError(f"Unknown column '{token}'")


def _fit(text: str, width: int) -> str:
    text = text.replace("\n", " ")
    if len(text) > width:
        return text[: width - 1] + "…"
    return text


def render_grid(provider: DataProvider, rows: int) -> str:
    """Plain-text table of the first `rows` display rows."""
    shown = min(rows, provider.get_row_count())
    columns = [provider.get_column_definition(c) for c in range(provider.get_column_count())]
    grid = [
        [provider.get_cell(c, r) for c in range(len(columns))]
        for r in range(shown)
    ]

    headers = [column.column_name for column in columns]
    widths = []
    for c, header in enumerate(headers):
        longest = max([len(header)] + [len(row[c].display_data) for row in grid])
        widths.append(min(MAX_COL_WIDTH, longest))

    row_w = max(1, len(str(max(shown - 1, 0))))
    lines = [
        " " * row_w + " " + " ".join(_fit(h, w).rjust(w) for h, w in zip(headers, widths))
    ]
    for r, row in enumerate(grid):
        cells = []
        for cell, width in zip(row, widths):
            text = cell.display_data
            if cell.validation_error:
                text = f"!{text}"
            cells.append(_fit(text, width).rjust(width))
        lines.append(str(r).rjust(row_w) + " " + " ".join(cells))

    hidden = provider.get_row_count() - shown
    if hidden > 0:
        lines.append(f"... {hidden} more rows")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gridlayer",
        description="gridlayer - preview and edit tabular files through an edit overlay",
    )
    parser.add_argument("path", nargs="?", help=".csv, .parquet, .xlsx or .h5 file")
    parser.add_argument("-v", "--version", action="store_true", help="print version and exit")
    parser.add_argument("--sheet", help="sheet (xlsx) or key (h5) to load")
    parser.add_argument("--sort", metavar="COLUMN", help="sort the preview by COLUMN")
    parser.add_argument("--desc", action="store_true", help="sort descending")
    parser.add_argument("--format", metavar="COLUMN=FORMAT", action="append", default=[])
    parser.add_argument("--set", metavar="ROW:COLUMN=VALUE", action="append", default=[])
    parser.add_argument("--delete", metavar="ROW", type=int, action="append", default=[])
    parser.add_argument("--add-row", action="store_true", help="append a row of defaults")
    parser.add_argument("--rows", type=int, help="number of rows to print")
    parser.add_argument("--write", action="store_true", help="commit edits and save the file")
    return parser


async def run(args, cfg) -> int:
    source = DataFrameSource.from_path(args.path, sheet=args.sheet)
    formats = dict(cfg["COLUMN_FORMATS"])
    formats.update(_parse_format(item) for item in args.format)
    provider = DataProvider(
        source,
        column_formats=formats,
        persist_failure_policy=cfg["PERSIST_FAILURE_POLICY"],
    )

    if args.add_row:
        await provider.add_row()

    for item in args.set:
        row, token, value = _parse_assignment(item)
        col = _resolve_column(provider, token)
        provider.set_cell(col, row, Cell(kind=CellKind.TEXT, data=value))
        cell = provider.get_cell(col, row)
        if cell.validation_error:
            print(f"Row {row}, {token}: {cell.validation_error}", file=sys.stderr)

    if args.delete:
        deleted = await provider.delete_rows(args.delete)
        logger.info("Deleted %d of %d rows", deleted, len(set(args.delete)))

    if args.sort:
        provider.sort_column(_resolve_column(provider, args.sort), DESC if args.desc else ASC)

    await provider.flush()
    print(render_grid(provider, args.rows or cfg["PREVIEW_ROWS"]))

    if args.write:
        await provider.refresh()
        source.save()
        print(f"Saved {args.path}")
    return 0


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return 0

    if not args.path:
        parser.print_usage(sys.stderr)
        return 2

    cfg = load_config()
    configure_logging(cfg["LOG_LEVEL"])

    try:
        return asyncio.run(run(args, cfg))
    except (ValueError, ImportError, OSError) as exc:
        print(f"gridlayer: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
