"""NewsEdge — news ingestion, explainable signal scoring, and outcome tracking."""

__version__ = "0.3.3"
