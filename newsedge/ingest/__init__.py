"""News ingestion: providers, prefilter, classification and the gateway."""

from newsedge.ingest.gateway import IngestionGateway, IngestResult

__all__ = ["IngestionGateway", "IngestResult"]
