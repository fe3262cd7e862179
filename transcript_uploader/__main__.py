"""Allow ``python -m transcript_uploader`` to serve the local API."""

from transcript_uploader.main import main

main()
