#!/usr/bin/env python3
"""
ArtifactRecovery CLI - Binary Artifact Recovery Tool

Signature detection, EXIF/GPS extraction, file carving, FAT/NTFS listing,
hashing and hex viewing from the command line.
"""

import argparse
import logging
import signal
import sys
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeRemainingColumn
from rich.table import Table
from rich.text import Text

from . import __version__
from .block_reader import BlockReader
from .carver_engine import CarverEngine
from .detector import HEADER_WINDOW, detect
from .errors import ArtifactError
from .exif import extract_exif
from .filesystem import analyze_file_system
from .hasher import HashAlgorithm, HashValidator
from .reporter import SUPPORTED_FORMATS, ReportGenerator
from .scanner import ScanProgress, format_progress
from .signatures import FileCategory, SignatureDB
from .utils import (
    DEFAULT_HEX_WINDOW, extension_of, format_duration, format_size, hex_dump,
    parse_size, validate_output_dir, validate_source,
)


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130

console = Console()
error_console = Console(stderr=True)

# Engine currently carving, for the SIGINT handler
_engine: Optional[CarverEngine] = None


def signal_handler(sig, frame):
    """Cancel the running carve instead of killing the process."""
    if _engine is not None:
        error_console.print("\n[yellow][!] Cancelling... finishing the current window.[/]")
        _engine.cancel()
    else:
        raise KeyboardInterrupt


def configure_logging(verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """Route package logs through rich; -v shows DEBUG, -q only errors."""
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    logger = logging.getLogger("artifact_recovery")
    logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=error_console, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    return logger


def parse_categories(value: str) -> List[FileCategory]:
    try:
        return [FileCategory.parse(c) for c in value.split(',') if c.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def parse_hash_algorithms(value: str) -> List[HashAlgorithm]:
    try:
        algorithms = HashAlgorithm.parse_list(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))
    if not algorithms:
        raise argparse.ArgumentTypeError("at least one hash algorithm is required")
    return algorithms


def parse_report_formats(value: str) -> List[str]:
    formats = [f.strip().lower() for f in value.split(',') if f.strip()]
    for fmt in formats:
        if fmt not in SUPPORTED_FORMATS:
            raise argparse.ArgumentTypeError(f"unsupported report format: {fmt}")
    return formats


def parse_offset(value: str) -> int:
    try:
        return parse_size(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--json', action='store_true', help='Print the result record as JSON')
    common.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    common.add_argument('-q', '--quiet', action='store_true', help='Quiet mode (minimal output)')

    parser = argparse.ArgumentParser(
        prog='artifact-recovery',
        description='ArtifactRecovery - Binary Artifact Recovery Engine',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  artifact-recovery detect suspicious.pdf
  artifact-recovery exif IMG_0001.jpg IMG_0002.jpg
  artifact-recovery carve disk.dd -o ./recovered -c image,document --report json,csv
  artifact-recovery fs usb.img
  artifact-recovery hex disk.dd --offset 0x1BE --length 64
'''
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    sub = parser.add_subparsers(dest='command', metavar='COMMAND')
    sub.required = True

    p = sub.add_parser('types', parents=[common], help='List supported file signatures')
    p.add_argument('--detection', action='store_true',
                   help='Show the magic-number catalog instead of the carving catalog')

    p = sub.add_parser('detect', parents=[common], help='Identify a file by its magic number')
    p.add_argument('file')
    p.add_argument('--extension', default=None,
                   help='Declared extension (default: taken from the file name)')

    p = sub.add_parser('exif', parents=[common], help='Extract EXIF and GPS metadata from JPEGs')
    p.add_argument('files', nargs='+')

    p = sub.add_parser('carve', parents=[common], help='Carve files out of a raw image')
    p.add_argument('image')
    p.add_argument('-o', '--output', required=True, help='Output directory for recovered files')
    p.add_argument('-c', '--categories', type=parse_categories, default=None,
                   help='Categories to carve (comma-separated: ' +
                        ','.join(c.value for c in FileCategory) + ')')
    p.add_argument('--report', type=parse_report_formats, default=['json'],
                   help='Report formats: json, csv (comma-separated, default: json)')
    p.add_argument('--hash', type=parse_hash_algorithms,
                   default=[HashAlgorithm.MD5, HashAlgorithm.SHA256],
                   help='Hash algorithms: md5, sha1, sha256, sha512 (default: md5,sha256)')
    p.add_argument('--no-dedup', action='store_true', help='Also write duplicate content')
    p.add_argument('--start-offset', type=parse_offset, default=0,
                   help='Resume offset (e.g., 0, 1GB, 0x1000)')
    p.add_argument('--end-offset', type=parse_offset, default=None,
                   help='Stop looking for headers at this offset')

    p = sub.add_parser('fs', parents=[common], help='List FAT/NTFS directories and partitions')
    p.add_argument('image')

    p = sub.add_parser('hash', parents=[common], help='Hash a file')
    p.add_argument('file')
    p.add_argument('--algorithms', type=parse_hash_algorithms, default=list(HashAlgorithm),
                   help='Hash algorithms (default: md5,sha1,sha256,sha512)')
    p.add_argument('--verify', metavar='DIGEST', default=None,
                   help='Expected digest; the algorithm follows from its length')

    p = sub.add_parser('hex', parents=[common], help='Hex dump part of a file')
    p.add_argument('file')
    p.add_argument('--offset', type=parse_offset, default=0)
    p.add_argument('--length', type=parse_offset, default=DEFAULT_HEX_WINDOW)

    return parser


def print_json(payload):
    console.print_json(data=payload)


def _require_source(path: str):
    valid, msg = validate_source(path)
    if not valid:
        raise FileNotFoundError(msg)


# ============================================================
# COMMANDS
# ============================================================

def cmd_types(args) -> int:
    db = SignatureDB.for_detection() if args.detection else SignatureDB.for_carving()
    if args.json:
        print_json([sig.as_dict() for sig in db])
        return EXIT_OK

    for category in db.categories():
        table = Table(title=category.name, box=box.ROUNDED, header_style="bold cyan")
        table.add_column("Name", style="green")
        table.add_column("Extension")
        table.add_column("Header")
        table.add_column("Footer")
        table.add_column("Max Size")
        table.add_column("Description")
        for sig in db.get_by_category(category):
            table.add_row(
                sig.name,
                f".{sig.extension}",
                sig.header_hex,
                sig.footer.hex().upper() if sig.footer else "-",
                format_size(sig.max_size),
                sig.description,
            )
        console.print(table)
    return EXIT_OK


def cmd_detect(args) -> int:
    _require_source(args.file)
    with BlockReader(args.file) as reader:
        header = reader.read_at(0, HEADER_WINDOW)
    declared = args.extension if args.extension is not None else extension_of(args.file)
    result = detect(header, declared)

    if args.json:
        print_json(result.as_dict())
        return EXIT_OK

    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column(style="dim")
    table.add_column()
    sig = result.matched_signature
    table.add_row("File", args.file)
    table.add_row("Header", result.header_hex or "(empty)")
    table.add_row("Detected", f"{sig.name} ({sig.description})" if sig else "[yellow]Unknown[/]")
    table.add_row("Declared", result.declared_extension or "(none)")
    if result.is_extension_mismatch:
        table.add_row("Status", "[bold red]Extension mismatch[/]")
    elif sig:
        table.add_row("Status", "[green]Consistent[/]")
    console.print(table)
    return EXIT_OK


def cmd_exif(args) -> int:
    status = EXIT_OK
    records = []
    for path in args.files:
        try:
            _require_source(path)
            with BlockReader(path) as reader:
                record = extract_exif(reader.data)
        except (ArtifactError, OSError) as e:
            error_console.print(f"[bold red]Error:[/] {path}: {e}")
            status = EXIT_ERROR
            continue
        records.append((path, record))

    if args.json:
        print_json([dict(file=path, **record.as_dict()) for path, record in records])
        return status

    for path, record in records:
        table = Table(title=path, box=box.ROUNDED, show_header=False)
        table.add_column(style="dim")
        table.add_column()
        table.add_row("Make", record.camera_make or "-")
        table.add_row("Model", record.camera_model or "-")
        table.add_row("Software", record.software or "-")
        table.add_row("Date/Time", record.date_time or "-")
        table.add_row("Original", record.date_time_original or "-")
        gps = record.gps
        if record.has_gps:
            table.add_row("Latitude", f"{gps.latitude:.6f} ({gps.latitude_dms.format_dms()})")
            table.add_row("Longitude", f"{gps.longitude:.6f} ({gps.longitude_dms.format_dms()})")
            if gps.altitude_meters is not None:
                table.add_row("Altitude", f"{gps.altitude_meters:.1f} m")
            if gps.date_stamp or gps.timestamp_utc:
                table.add_row("GPS Time", f"{gps.date_stamp or ''} {gps.timestamp_utc or ''} UTC".strip())
            if gps.image_direction_degrees is not None:
                table.add_row("Direction", f"{gps.image_direction_degrees:.1f}°")
            table.add_row("Map", gps.maps_url)
        else:
            table.add_row("GPS", "[yellow]No location data[/]")
        console.print(table)
    return status


def cmd_carve(args) -> int:
    global _engine

    _require_source(args.image)
    valid, msg = validate_output_dir(args.output)
    if not valid:
        raise ValueError(msg)

    with BlockReader(args.image) as reader:
        end = reader.size if args.end_offset is None else min(args.end_offset, reader.size)
        total = max(0, end - args.start_offset)

    show_progress = not (args.quiet or args.json)
    # Redirected stderr gets one plain line per 10% instead of a live bar
    live = show_progress and error_console.is_terminal
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=40),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TextColumn("{task.fields[files]} files"),
        TextColumn("{task.fields[speed]}"),
        TimeRemainingColumn(),
        console=error_console,
        disable=not live,
    )
    task_id = progress.add_task("Carving", total=total or 1, files=0, speed="0 MB/s")
    last_decile = -1

    def progress_callback(p: ScanProgress):
        nonlocal last_decile
        if live:
            progress.update(
                task_id,
                completed=p.scanned_bytes,
                files=p.files_found,
                speed=f"{p.bytes_per_second / (1024 * 1024):.1f} MB/s",
            )
        elif show_progress:
            decile = int(p.percent_complete) // 10
            if decile > last_decile:
                error_console.print(format_progress(p), highlight=False, soft_wrap=True)
                last_decile = decile

    _engine = CarverEngine(
        output_dir=args.output,
        categories=args.categories,
        hash_algorithms=args.hash,
        skip_duplicates=not args.no_dedup,
        progress_callback=progress_callback,
    )
    previous_handler = signal.signal(signal.SIGINT, signal_handler)
    try:
        with progress:
            session = _engine.carve(args.image, args.start_offset, args.end_offset)
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        _engine = None

    report_paths = {}
    if args.report:
        report_paths = ReportGenerator(args.output).generate_all(session, args.report)

    if args.json:
        payload = session.as_dict()
        payload['reports'] = report_paths
        print_json(payload)
    elif not args.quiet:
        title = "[yellow]Carving cancelled[/]" if session.cancelled else "[bold green]Carving complete[/]"
        summary = Table(box=box.SIMPLE, show_header=False)
        summary.add_column(style="dim")
        summary.add_column()
        summary.add_row("Files recovered", str(len(session.saved_files)))
        summary.add_row("Duplicates skipped", str(session.duplicates_skipped))
        summary.add_row("Data recovered", format_size(session.total_bytes_carved))
        summary.add_row("Duration", format_duration(session.duration))
        if session.cancelled:
            summary.add_row("Resume with", f"--start-offset {session.last_offset:#x}")
        if session.errors:
            summary.add_row("Errors", f"[yellow]{len(session.errors)}[/]")
        for fmt, path in report_paths.items():
            summary.add_row(f"{fmt.upper()} report", path)
        console.print(Panel(summary, title=title, border_style="blue"))

        if session.saved_files:
            table = Table(box=box.ROUNDED, header_style="bold cyan")
            table.add_column("Offset", justify="right")
            table.add_column("Type", style="green")
            table.add_column("Size", justify="right")
            table.add_column("Confidence", justify="right")
            table.add_column("Path")
            for rf in session.saved_files:
                table.add_row(
                    f"{rf.carved.start_offset:#x}",
                    rf.file_type,
                    format_size(rf.size),
                    f"{rf.carved.confidence}%",
                    rf.output_path,
                )
            console.print(table)

    return EXIT_INTERRUPTED if session.cancelled else EXIT_OK


def cmd_fs(args) -> int:
    _require_source(args.image)
    with BlockReader(args.image) as reader:
        report = analyze_file_system(reader.data)

    if args.json:
        print_json(report.as_dict())
        return EXIT_OK

    header = Text()
    header.append(f"{report.file_system.value}", style="bold blue")
    header.append(f"  {format_size(report.total_size)}", style="dim")
    if report.volume_offset:
        header.append(f"  volume at {report.volume_offset:#x}", style="dim")
    if report.boot_sector:
        header.append(f"  cluster {format_size(report.boot_sector.cluster_size)}", style="dim")
    console.print(Panel(header, title="File System", border_style="blue"))

    if report.partitions:
        table = Table(title="Partitions", box=box.ROUNDED, header_style="bold cyan")
        for column in ("#", "Type", "File System", "Start Sector", "Size", "Boot"):
            table.add_column(column)
        for p in report.partitions:
            table.add_row(str(p.index), p.type_hex, p.file_system, str(p.start_sector),
                          format_size(p.size_bytes), "*" if p.bootable else "")
        console.print(table)

    for title, entries in (("Files", report.listing.active), ("Deleted", report.listing.deleted)):
        if not entries:
            continue
        table = Table(title=title, box=box.ROUNDED, header_style="bold cyan")
        for column in ("Name", "Size", "Cluster", "Attributes", "Recoverable"):
            table.add_column(column)
        for entry in entries:
            table.add_row(
                entry.name + ("/" if entry.is_directory else ""),
                format_size(entry.size_bytes),
                str(entry.start_cluster),
                ", ".join(sorted(a.value for a in entry.attributes)),
                "[green]yes[/]" if entry.recoverable else "[red]no[/]",
            )
        console.print(table)
    return EXIT_OK


def cmd_hash(args) -> int:
    _require_source(args.file)
    validator = HashValidator(args.algorithms)
    file_hash = validator.hash_file(args.file)

    verified = None
    if args.verify:
        algorithm = HashAlgorithm.from_digest(args.verify)
        verified = validator.verify_hash(args.file, args.verify, algorithm)
    status = EXIT_ERROR if verified is False else EXIT_OK

    if args.json:
        record = dict(file=args.file, **file_hash.as_dict())
        if verified is not None:
            record['verified'] = verified
        print_json(record)
        return status

    console.print(Panel(HashValidator.format_hash_chain(file_hash), title=args.file, border_style="blue"))
    if verified is not None:
        if verified:
            console.print(f"[bold green]{algorithm.value.upper()} matches[/]")
        else:
            console.print(f"[bold red]{algorithm.value.upper()} does not match[/]")
    return status


def cmd_hex(args) -> int:
    _require_source(args.file)
    with BlockReader(args.file) as reader:
        window = reader.read_at(args.offset, args.length)
        dump = hex_dump(reader.data, args.offset, args.length)
        size = reader.size
    if args.json:
        print_json({'file': args.file, 'size': size, 'offset': args.offset,
                    'length': len(window), 'hex': window.hex().upper()})
        return EXIT_OK
    console.print(dump, highlight=False, markup=False)
    return EXIT_OK


COMMANDS = {
    'types': cmd_types,
    'detect': cmd_detect,
    'exif': cmd_exif,
    'carve': cmd_carve,
    'fs': cmd_fs,
    'hash': cmd_hash,
    'hex': cmd_hex,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    try:
        return COMMANDS[args.command](args)
    except KeyboardInterrupt:
        error_console.print("\n[yellow]Cancelled by user[/]")
        return EXIT_INTERRUPTED
    except (ArtifactError, OSError, ValueError) as e:
        error_console.print(f"[bold red]Error:[/] {e}")
        if args.verbose:
            error_console.print_exception()
        return EXIT_ERROR


if __name__ == '__main__':
    sys.exit(main())
