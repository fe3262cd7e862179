"""Concrete adapters for the interfaces in ``transcript_uploader.interfaces``."""
