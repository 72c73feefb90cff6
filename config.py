"""Environment-driven settings for the E-utilities client.

Values are read when the module is imported. ``main`` loads ``.env`` and then
calls :func:`load` so that file-based settings take effect too.
"""

from __future__ import annotations

import os

DOWNLOAD_CHUNK_BYTES = 1024 * 1024


def load() -> None:
    """(Re)read every setting from the process environment."""
    global NCBI_API_ROOT, NCBI_API_KEY, NCBI_FTP_ROOT
    global REQUEST_TIMEOUT_SECONDS, MAX_ATTEMPTS, RETRY_DELAY_SECONDS, DEFAULT_THROUGHPUT

    NCBI_API_ROOT = os.getenv("NCBI_API_ROOT", "https://eutils.ncbi.nlm.nih.gov/entrez/eutils/")
    # Optional; raises the upstream rate limit from 3 to 10 requests per second.
    NCBI_API_KEY = os.getenv("NCBI_API_KEY") or None
    NCBI_FTP_ROOT = os.getenv("NCBI_FTP_ROOT", "https://ftp.ncbi.nlm.nih.gov/")

    REQUEST_TIMEOUT_SECONDS = float(os.getenv("NCBI_REQUEST_TIMEOUT_SECONDS", "20"))
    MAX_ATTEMPTS = int(os.getenv("NCBI_MAX_ATTEMPTS", "9"))
    RETRY_DELAY_SECONDS = float(os.getenv("NCBI_RETRY_DELAY_SECONDS", "0"))
    DEFAULT_THROUGHPUT = int(os.getenv("NCBI_THROUGHPUT", "50"))


load()
