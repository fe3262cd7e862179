"""Ingestion service adapters."""

from transcript_uploader.providers.ingestion.http_ingestion_provider import (
    HttpIngestionProvider,
    build_http_client,
)

__all__ = ["HttpIngestionProvider", "build_http_client"]
