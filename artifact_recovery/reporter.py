"""
Report Generator Module for ArtifactRecovery

Writes carving sessions and analyzer results as JSON or CSV. The payloads are
plain ``as_dict()`` records so external report layers can consume them as-is.
"""

import csv
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from . import __version__
from .carver_engine import CarveSession
from .utils import format_size


logger = logging.getLogger(__name__)

TOOL_NAME = 'artifact-recovery'

SUPPORTED_FORMATS = ('json', 'csv')

CSV_COLUMNS = [
    'Filename', 'Type', 'Category', 'Extension', 'Size', 'Size (Human)',
    'Offset', 'Offset (Hex)', 'Confidence', 'MD5', 'SHA256', 'Path', 'Duplicate Of',
]


def _metadata() -> dict:
    return {
        'tool': TOOL_NAME,
        'version': __version__,
        'generated_at': datetime.now().isoformat(),
    }


def write_record(record, path, indent: int = 2) -> str:
    """
    Write any analyzer result as JSON.

    Args:
        record: Object with ``as_dict()``, a dict, or a list of either
        path: Destination file

    Returns:
        Path written
    """
    if isinstance(record, list):
        payload = [item.as_dict() if hasattr(item, 'as_dict') else item for item in record]
    elif hasattr(record, 'as_dict'):
        payload = record.as_dict()
    else:
        payload = record

    filepath = Path(path)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump({'metadata': _metadata(), 'result': payload}, f,
                  indent=indent, ensure_ascii=False)
    return str(filepath)


class ReportGenerator:
    """Generates carving session reports (JSON, CSV)."""

    def __init__(self, output_dir: str):
        """
        Initialize report generator.

        Args:
            output_dir: Directory for report files
        """
        self.output_dir = str(output_dir)
        Path(self.output_dir).mkdir(parents=True, exist_ok=True)

    def generate_all(
        self,
        session: CarveSession,
        formats: Optional[List[str]] = None
    ) -> Dict[str, str]:
        """
        Generate reports in multiple formats.

        Args:
            session: Carve session data
            formats: List of formats ('json', 'csv'), default both

        Returns:
            Dictionary of format -> file path
        """
        if formats is None:
            formats = list(SUPPORTED_FORMATS)

        paths = {}
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        for fmt in formats:
            fmt = fmt.strip().lower()
            if fmt == 'json':
                paths['json'] = self.generate_json(session, f"report_{timestamp}.json")
            elif fmt == 'csv':
                paths['csv'] = self.generate_csv(session, f"report_{timestamp}.csv")
            else:
                raise ValueError(f"Unsupported report format: {fmt!r}")
        return paths

    def generate_json(self, session: CarveSession, filename: str = "report.json") -> str:
        """Generate JSON report."""
        filepath = Path(self.output_dir) / filename
        report = {
            'metadata': _metadata(),
            'source': {
                'path': session.source_path,
                'size': session.source_size,
                'size_human': format_size(session.source_size),
            },
            'settings': {
                'categories': session.categories,
                'start_offset': session.start_offset,
            },
            'results': {
                'total_files': len(session.files_recovered),
                'unique_files': session.unique_files,
                'duplicates': session.duplicates_skipped,
                'bytes_carved': session.total_bytes_carved,
                'bytes_carved_human': format_size(session.total_bytes_carved),
                'duration_seconds': round(session.duration, 3),
                'cancelled': session.cancelled,
                'last_offset': session.last_offset,
                'errors': len(session.errors),
            },
            'files': [rf.as_dict() for rf in session.saved_files],
            'errors': session.errors,
        }

        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2, ensure_ascii=False)
        logger.info("Wrote JSON report %s", filepath)
        return str(filepath)

    def generate_csv(self, session: CarveSession, filename: str = "report.csv") -> str:
        """Generate CSV report, one row per saved file."""
        filepath = Path(self.output_dir) / filename

        with open(filepath, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            writer.writerow(CSV_COLUMNS)
            for rf in session.saved_files:
                writer.writerow([
                    rf.filename,
                    rf.file_type,
                    rf.carved.category.value,
                    rf.carved.extension,
                    rf.size,
                    format_size(rf.size),
                    rf.carved.start_offset,
                    hex(rf.carved.start_offset),
                    rf.carved.confidence,
                    rf.file_hash.md5 or '',
                    rf.file_hash.sha256 or '',
                    rf.output_path,
                    rf.duplicate_of or '',
                ])
        logger.info("Wrote CSV report %s", filepath)
        return str(filepath)
