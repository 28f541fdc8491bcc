"""Read and write the discovery manifest handed from discovery to export."""

import json
import logging
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from models import DiscoverResult
from schemas import DiscoverManifest

logger = logging.getLogger('feishu_md_exporter.exporters.manifest')


class ManifestError(ValueError):
    """The manifest file is missing, not JSON, or not a discovery result."""
    pass


def write_manifest(result: DiscoverResult, manifest_path: Union[str, Path]) -> Path:
    """
    Persist a discovery result as pretty-printed JSON.

    Args:
        result: Discovery result
        manifest_path: Target file; parent directories are created

    Returns:
        Path the manifest was written to
    """
    path = Path(manifest_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(result.to_dict(), ensure_ascii=False, indent=2) + '\n', encoding='utf-8')
    logger.info(f"Manifest written to {path} ({result.total} documents)")
    return path


def load_manifest(manifest_path: Union[str, Path]) -> DiscoverResult:
    """
    Load and shape-check a discovery manifest.

    Raises:
        ManifestError: If the file cannot be read, is not JSON, or has the wrong shape
    """
    path = Path(manifest_path)
    try:
        content = path.read_text(encoding='utf-8')
    except OSError as e:
        raise ManifestError(f"Cannot read manifest {path}: {e}") from e

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ManifestError(f"Invalid JSON in manifest: {path}") from e

    try:
        DiscoverManifest.model_validate(data)
    except ValidationError as e:
        raise ManifestError(f"Invalid discover manifest shape: {path}") from e

    return DiscoverResult.from_dict(data)


__all__ = ['ManifestError', 'write_manifest', 'load_manifest']
