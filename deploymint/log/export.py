import sqlite3
import logging
import pandas as pd
from typing import Any, Dict, Optional
from pathlib import Path
from openpyxl.styles import PatternFill, Font
from openpyxl.styles.numbers import BUILTIN_FORMATS

log = logging.getLogger(__name__)

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="4F81BD", end_color="4F81BD", fill_type="solid")
YELLOW_FILL = PatternFill(start_color="FFFFA0", end_color="FFFFA0", fill_type="solid")
RED_FILL = PatternFill(start_color="FF9696", end_color="FF9696", fill_type="solid")
BLUE_FILL = PatternFill(start_color="E6E6FF", end_color="E6E6FF", fill_type="solid")
GREEN_FILL = PatternFill(start_color="D8F0D8", end_color="D8F0D8", fill_type="solid")
TEXT_FORMAT = BUILTIN_FORMATS[49]  # '@' (Text format)

LOGS_QUERY = """
SELECT
    datetime(timestamp, 'unixepoch', 'localtime') as Timestamp,
    level as 'Log Level',
    module as 'Module',
    funcName || ':' || lineno as 'Func Source',
    message as 'Message'
FROM logs
ORDER BY timestamp ASC;
"""

EVENTS_QUERY = """
SELECT
    datetime(timestamp, 'unixepoch', 'localtime') as Timestamp,
    identity as 'Server',
    action as 'Action',
    pid as 'PID',
    ports as 'Ports',
    detail as 'Detail'
FROM launch_events
ORDER BY id ASC;
"""

# Sheet name -> (query, column used to pick the row colour, colour map)
SHEETS: Dict[str, Any] = {
    "Logs": (LOGS_QUERY, "Log Level", {
        'WARNING': YELLOW_FILL, 'ERROR': RED_FILL, 'CRITICAL': RED_FILL, 'DEBUG': BLUE_FILL,
    }),
    "Launch Events": (EVENTS_QUERY, "Action", {
        'start': GREEN_FILL, 'restart': GREEN_FILL, 'stop': YELLOW_FILL,
    }),
}


def escape_formula(value: Any) -> Any:
    """
    Prepends a single quote to strings Excel would read as a formula.

    :param value: The value to check and potentially escape.
    :return: The escaped string or the original value.
    """
    if isinstance(value, str) and value.startswith(('=', '-', '+', '@')):
        return f"'{value}"
    return value

def read_table(con: sqlite3.Connection, query: str) -> Optional[pd.DataFrame]:
    """Runs one export query. A missing table yields None instead of an error."""
    try:
        return pd.read_sql_query(query, con)
    except (sqlite3.Error, pd.errors.DatabaseError) as e:
        log.warning(f"Skipping table during export: {e}")
        return None

def style_sheet(ws, color_col_idx: int, fill_map: Dict[str, PatternFill]) -> None:
    """
    Styles the header, colours rows by the given column and sizes the columns.

    :param ws: Excel worksheet.
    :param color_col_idx: 1-based index of the column deciding the row colour.
    :param fill_map: Cell value to fill.
    """
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL

    for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
        fill_to_apply = fill_map.get(row[color_col_idx - 1].value)
        if fill_to_apply:
            for cell in row:
                cell.fill = fill_to_apply
        for cell in row[1:]:
            cell.number_format = TEXT_FORMAT

    column_widths: Dict[int, int] = {}
    for row in ws.iter_rows():
        for i, cell in enumerate(row):
            if cell.value is not None:
                column_widths[i] = max(column_widths.get(i, 0), len(str(cell.value)))
    for i, width in column_widths.items():
        ws.column_dimensions[ws.cell(row=1, column=i + 1).column_letter].width = min(width + 2, 120)

def export_logs_to_excel(db_path: Path, output_path: Path) -> bool:
    """
    Exports the log records and launch events to a styled Excel workbook.

    Each table gets its own sheet with coloured rows and protection against
    Excel formula injection.

    :param db_path: The file path to the SQLite log database.
    :param output_path: The file path where the Excel file will be saved.
    :return: True if a workbook was written.
    """
    db_path, output_path = Path(db_path), Path(output_path)
    if not db_path.exists():
        log.error(f"Error: Database file not found at '{db_path}'")
        return False

    frames: Dict[str, pd.DataFrame] = {}
    with sqlite3.connect(db_path) as con:
        for sheet, (query, _, _) in SHEETS.items():
            df = read_table(con, query)
            if df is not None and not df.empty:
                frames[sheet] = df.apply(lambda col: col.map(escape_formula))

    if not frames:
        log.warning("No log entries to export.")
        return False

    log.info(f"Writing {sum(len(df) for df in frames.values())} rows to Excel file: {output_path}")
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
            for sheet, df in frames.items():
                _, color_col, fill_map = SHEETS[sheet]
                df.to_excel(writer, index=False, sheet_name=sheet)
                style_sheet(writer.sheets[sheet], df.columns.get_loc(color_col) + 1, fill_map)
    except Exception as e:
        log.error(f"An error occurred while writing or styling the Excel file: {e}")
        return False

    log.info(f"Export successful. File saved to: {output_path.resolve()}")
    return True
