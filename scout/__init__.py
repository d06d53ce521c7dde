"""Store collection and keyword sourcing pipelines for NAVER and AUCTION."""

__version__ = "0.1.0"
