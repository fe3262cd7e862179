"""Command-line tools for transcript-uploader.

- ``python -m transcript_uploader.cli scan PATH...`` -- classify files and
  show which transcripts already exist on the service.
- ``python -m transcript_uploader.cli upload PATH...`` -- upload
  transcripts and media, interactively or as a batch.
- ``python -m transcript_uploader.cli delete PATH...`` -- delete the given
  transcripts from the service.
"""
