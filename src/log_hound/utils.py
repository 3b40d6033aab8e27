"""Presentation helpers for the CLI"""

import functools
import json
from typing import Any, Dict, Iterable, List, Optional, Sequence

import click
from tabulate import tabulate

from log_hound.core.exceptions import LogHoundError
from log_hound.logs.base import LogEntry, Target
from log_hound.logs.orchestrator import SearchResults


OUTPUT_MODES = ['interleaved', 'grouped', 'streaming', 'json']

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


def short_group(name: str) -> str:
    """Last path segment of a log group, for compact output"""
    return name.rsplit('/', 1)[-1] or name


def format_entry(entry: LogEntry, color: bool = True) -> str:
    """One line: timestamp, [group], message"""
    ts = entry.timestamp.strftime(TIMESTAMP_FORMAT) + f".{entry.timestamp.microsecond // 1000:03d}"
    group = f"[{short_group(entry.source_group)}]"
    if not color:
        return f"{ts} {group} {entry.message}"
    return f"{click.style(ts, dim=True)} {click.style(group, fg='blue')} {entry.message}"


def format_error(target: Target, error: Exception, color: bool = True) -> str:
    label = click.style('Error', fg='red') if color else 'Error'
    message = error.message if isinstance(error, LogHoundError) else str(error)
    return f"{label} {target.label}: {message}"


def format_search_banner(
    patterns: Sequence[str],
    exclude: Sequence[str],
    start,
    end,
    color: bool = True
) -> str:
    if not patterns:
        pattern_display = '*'
    else:
        pattern_display = ' AND '.join(f"'{p}'" for p in patterns)

    exclude_display = ''
    if exclude:
        not_label = click.style('NOT', fg='red') if color else 'NOT'
        exclude_display = f" {not_label} " + ', '.join(f"'{p}'" for p in exclude)

    searching = click.style('Searching', fg='cyan') if color else 'Searching'
    shown = click.style(pattern_display, fg='yellow') if color else pattern_display
    return (
        f"{searching} {shown}{exclude_display}  from "
        f"{start.strftime(TIMESTAMP_FORMAT)} to {end.strftime(TIMESTAMP_FORMAT)}"
    )


class OutputFormatter:
    """Formats search results in the selected output mode"""

    def __init__(self, mode: str = 'interleaved', color: bool = True):
        if mode not in OUTPUT_MODES:
            raise ValueError(f"Unknown output mode: {mode}")
        self.mode = mode
        self.color = color

    def format(self, results: SearchResults) -> str:
        """Format collected results; streaming mode falls back to interleaved"""
        if self.mode == 'json':
            return self.format_json(results.interleaved())
        if not results.entries:
            return self._style('No matching logs found.', fg='yellow')
        if self.mode == 'grouped':
            return self.format_grouped(results)
        return self.format_interleaved(results)

    def format_interleaved(self, results: SearchResults) -> str:
        entries = results.interleaved()
        lines = [
            f"{self._style('Found', fg='green')} {self._style(str(len(entries)), fg='cyan')} results:",
            '',
        ]
        lines.extend(format_entry(e, self.color) for e in entries)
        return '\n'.join(lines)

    def format_grouped(self, results: SearchResults) -> str:
        lines: List[str] = []
        for name, entries in results.grouped().items():
            lines.append('')
            lines.append(
                f"{self._style('━━━', fg='blue')} {self._style(name, fg='cyan', bold=True)} "
                f"({len(entries)} results)"
            )
            lines.append('')
            lines.extend(format_entry(e, self.color) for e in entries)
        return '\n'.join(lines)

    def format_json(self, entries: Iterable[LogEntry]) -> str:
        """Format as JSON"""
        return json.dumps([e.to_dict() for e in entries], indent=2, default=str)

    def format_json_line(self, entry: LogEntry) -> str:
        """One compact JSON object per line, for followed streams"""
        return json.dumps(entry.to_dict(), default=str)

    def format_errors(self, results: SearchResults) -> List[str]:
        return [format_error(target, error, self.color) for target, error in results.errors]

    def _style(self, text: str, **styles) -> str:
        return click.style(text, **styles) if self.color else text


def format_table(rows: List[Dict[str, Any]], fields: List[str],
                 headers: Optional[List[str]] = None) -> str:
    """Format as table"""
    if not rows:
        return "No resources found"
    table_data = [[row.get(f, '-') for f in fields] for row in rows]
    headers = headers or [f.upper() for f in fields]
    return tabulate(table_data, headers=headers, tablefmt='simple')


def error_handler(func):
    """Decorator to report LogHoundError as a one-line message and exit 1"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LogHoundError as e:
            click.echo(f"{click.style('Error:', fg='red')} {e.message}", err=True)
            ctx = click.get_current_context()
            ctx.exit(1)

    return wrapper
