# SPDX-License-Identifier: Apache-2.0

"""
Local storage for sample form PDFs uploaded by organizations.
"""

import os
import logging
import secrets
import time
from typing import Optional

from opentelemetry import trace
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

UPLOAD_FIELD = "sampleForm"
UPLOAD_URL_PREFIX = "/uploads/"
MAX_UPLOAD_BYTES = 5 * 1024 * 1024
ALLOWED_MIMETYPE = "application/pdf"


class UploadRejected(ValueError):
    """Raised when an uploaded file is missing, too large or not a PDF."""
    pass


class UploadStore:
    """
    Stores uploads in a single directory and maps them to ``/uploads/<name>`` URLs.

    Args:
        uploads_dir: Directory receiving the files; created if missing
        max_bytes: Largest accepted file size
    """

    def __init__(self, uploads_dir: str, max_bytes: int = MAX_UPLOAD_BYTES):
        self.uploads_dir = os.path.abspath(uploads_dir)
        self.max_bytes = max_bytes
        os.makedirs(self.uploads_dir, exist_ok=True)

    def _generate_name(self, original_name: str) -> str:
        _, extension = os.path.splitext(secure_filename(original_name or ""))
        unique_suffix = f"{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}"
        return f"{UPLOAD_FIELD}-{unique_suffix}{extension.lower() or '.pdf'}"

    def save(self, upload: Optional[FileStorage]) -> str:
        """
        Validate and store an uploaded PDF.

        Returns:
            Public URL of the stored file

        Raises:
            UploadRejected: If the file is missing, not a PDF or too large
        """
        with tracer.start_as_current_span("uploads.save") as span:
            if upload is None or not upload.filename:
                raise UploadRejected("No file uploaded")

            if upload.mimetype != ALLOWED_MIMETYPE:
                span.set_attribute("upload.result", "wrong_type")
                raise UploadRejected("Only PDF files are allowed!")

            content = upload.stream.read(self.max_bytes + 1)
            if len(content) > self.max_bytes:
                span.set_attribute("upload.result", "too_large")
                raise UploadRejected("File too large")

            filename = self._generate_name(upload.filename)
            with open(os.path.join(self.uploads_dir, filename), "wb") as handle:
                handle.write(content)

            span.set_attributes({"upload.result": "stored", "upload.size": len(content)})
            logger.info("Sample form stored", extra={"filename": filename, "size": len(content)})
            return f"{UPLOAD_URL_PREFIX}{filename}"

    def resolve(self, file_url: Optional[str]) -> Optional[str]:
        """Local path for an ``/uploads/`` URL, or None for anything else."""
        if not file_url or not file_url.startswith(UPLOAD_URL_PREFIX):
            return None

        name = secure_filename(file_url[len(UPLOAD_URL_PREFIX):])
        if not name:
            return None
        return os.path.join(self.uploads_dir, name)

    def delete(self, file_url: Optional[str]) -> bool:
        """Remove a stored upload. Returns True if a file was deleted."""
        path = self.resolve(file_url)
        if path is None or not os.path.isfile(path):
            return False

        try:
            os.remove(path)
        except OSError as e:
            logger.error("Failed to delete upload", extra={"path": path, "error": str(e)})
            return False

        logger.info("Sample form deleted", extra={"path": path})
        return True
