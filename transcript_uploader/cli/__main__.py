"""Allow ``python -m transcript_uploader.cli`` execution."""

from transcript_uploader.cli.upload import main

main()
