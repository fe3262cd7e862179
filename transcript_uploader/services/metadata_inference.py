"""Default corpus / episode / transcript-type inference for new transcripts.

When a transcript arrives inside a dropped directory tree, the directory
names usually say where it belongs, e.g.::

    CorpusX/ep1/trs/file1.eaf   ->  corpus "CorpusX", episode "ep1"
    CorpusX/file2.eaf           ->  corpus "CorpusX", episode "file2"
    interviews/file3.eaf        ->  corpus <default>, episode "interviews"

The inference is best-effort; users can override every value before the
upload starts.
"""

from __future__ import annotations

from transcript_uploader.models.entry import Entry
from transcript_uploader.models.service import ServerVocabulary

# Conventional name of a folder that holds only transcript files.
TRANSCRIPT_FOLDER = "trs"


def infer_metadata(entry: Entry, path_prefix: str, vocabulary: ServerVocabulary) -> None:
    """Set *entry*'s corpus, episode and transcript type from defaults and *path_prefix*.

    Parameters
    ----------
    entry:
        The entry whose transcript was just classified.
    path_prefix:
        Slash-separated directories the file was found under (``""`` when the
        file was picked directly rather than found in a directory).
    vocabulary:
        Server-declared valid corpora and transcript types.
    """
    entry.corpus = vocabulary.default_corpus
    entry.transcript_type = vocabulary.default_transcript_type
    entry.episode = entry.id
    if not path_prefix:
        return

    segments = path_prefix.split("/")
    if segments and segments[-1] == "":
        segments.pop()
    if segments and segments[-1] == TRANSCRIPT_FOLDER:
        segments.pop()
    if not segments:
        return

    deepest = segments.pop()
    if deepest in vocabulary.corpora:
        entry.corpus = deepest
        return

    entry.episode = deepest
    if segments and segments[-1] in vocabulary.corpora:
        entry.corpus = segments[-1]
