"""
Atomic file writer - ensures no partial writes or corrupted files.
Implements temp-write → fsync → rename pattern for durability.
"""

import os
import json
import logging
import tempfile
import time
from pathlib import Path
from typing import Dict, Any, Union


logger = logging.getLogger(__name__)


def write_text_atomic(content: str, output_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Write text atomically so readers never see a partial file.

    The temp file lives in the target directory so the final rename stays
    on one filesystem.

    Args:
        content: Text to write
        output_path: Final path

    Returns:
        Dictionary with write results ('status' is 'completed' or 'failed')
    """
    output_path = Path(output_path)
    start_time = time.time()
    temp_path = None

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)

        temp_fd, temp_path_str = tempfile.mkstemp(
            suffix='.tmp',
            prefix=f'{output_path.stem}_',
            dir=output_path.parent
        )
        temp_path = Path(temp_path_str)

        with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        # Replaces an existing target on every platform
        os.replace(temp_path, output_path)
        temp_path = None

        logger.info(f"Wrote {len(content)} bytes to {output_path}")

        return {
            'status': 'completed',
            'output_path': str(output_path),
            'bytes_written': len(content.encode('utf-8')),
            'duration_seconds': time.time() - start_time
        }

    except OSError as e:
        logger.error(f"Atomic write to {output_path} failed: {e}")

        if temp_path is not None and temp_path.exists():
            temp_path.unlink()

        return {
            'status': 'failed',
            'error': str(e),
            'output_path': str(output_path),
            'bytes_written': 0,
            'duration_seconds': time.time() - start_time
        }


def write_json_atomic(payload: Dict[str, Any], output_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Serialize a document to JSON and write it atomically.

    Dates and other non-JSON scalars are written with str(); NaN and
    infinity are rejected since strict JSON readers cannot load them.

    Returns:
        Dictionary with write results
    """
    try:
        content = json.dumps(payload, indent=2, default=str, allow_nan=False)
    except (TypeError, ValueError) as e:
        return {
            'status': 'failed',
            'error': f'JSON serialization failed: {e}',
            'output_path': str(output_path),
            'bytes_written': 0
        }

    return write_text_atomic(content + '\n', output_path)


def verify_file_integrity(file_path: Union[str, Path], expected_size: int = None) -> bool:
    """
    Check that a written file exists, has the expected size, and decodes.

    Returns:
        True if file appears intact, False otherwise
    """
    file_path = Path(file_path)

    if not file_path.exists():
        return False

    if expected_size is not None and file_path.stat().st_size != expected_size:
        return False

    try:
        file_path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError):
        return False

    return True
