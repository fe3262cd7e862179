"""transcript-uploader: drive transcripts and media through a corpus service's ingestion API."""

__version__ = "0.1.0"
