"""
Export orchestrator for coordinating the discovery and export phases.

This module sequences the pipeline: Discover → Manifest → Export → Report.
Discovery can be skipped to re-export from an existing manifest.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from config_loader import ConfigLoader, get_nested
from exporters import export_markdown, write_manifest
from feishu_client import FeishuClient
from fetchers import discover_documents
from logger import log_section
from models import DiscoverProgressEvent, ExportProgressEvent

logger = logging.getLogger('feishu_md_exporter.orchestrator')


class ExportOrchestrator:
    """Central coordinator sequencing Discover → Manifest → Export."""

    def __init__(
        self,
        config: Dict[str, Any],
        client: Optional[FeishuClient] = None,
        on_discover_progress: Optional[Callable[[DiscoverProgressEvent], None]] = None,
        on_export_progress: Optional[Callable[[ExportProgressEvent], None]] = None
    ):
        """
        Initialize export orchestrator.

        Args:
            config: Validated configuration dictionary
            client: Optional preconfigured client shared by both phases
            on_discover_progress: Optional discovery progress callback
            on_export_progress: Optional export progress callback
        """
        self.config = config
        self.client = client or FeishuClient(**ConfigLoader.client_settings(config))
        self.on_discover_progress = on_discover_progress
        self.on_export_progress = on_export_progress
        self.skip_discover = bool(get_nested(config, 'discovery.skip_discover', False))

        logger.debug(f"ExportOrchestrator initialized (skip_discover={self.skip_discover})")

    def run(self) -> Dict[str, Any]:
        """
        Run every phase.

        Returns:
            Report dictionary with the discovery result (None when skipped),
            the export result, the manifest path and the total duration
        """
        start_time = time.time()
        manifest_path = ConfigLoader.manifest_path(self.config)
        discovery = None

        if self.skip_discover:
            logger.info(f"Skipping discovery, exporting from existing manifest {manifest_path}")
        else:
            log_section("Phase 1: Discovery")
            options = ConfigLoader.to_discover_options(self.config, self.on_discover_progress)
            discovery = discover_documents(options, self.client)
            write_manifest(discovery, manifest_path)

        log_section("Phase 2: Markdown Export")
        export_options = ConfigLoader.to_export_options(self.config, self.on_export_progress)
        export_result = export_markdown(export_options, self.client)

        duration = time.time() - start_time
        logger.info(f"Export orchestration complete in {duration:.2f}s: "
                    f"{export_result.written} written, {export_result.skipped} skipped")

        return {
            'discovery': discovery,
            'export': export_result,
            'manifest_path': manifest_path,
            'duration': duration,
        }


__all__ = ['ExportOrchestrator']
