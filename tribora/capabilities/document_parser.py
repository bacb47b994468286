"""
Document text extraction.

PDF pages are read with pdfplumber; DOCX text is read straight from
word/document.xml inside the OOXML zip, one line per paragraph.
"""
import io
import logging
import zipfile
from xml.etree import ElementTree as ET

import pdfplumber
from pdfplumber.utils.exceptions import PdfminerException
from pdfminer.pdfparser import PDFSyntaxError

from .base import DocumentParser
from tribora.utils.error_codes import CapabilityError, ErrorCode

logger = logging.getLogger(__name__)

_W_NS = '{http://schemas.openxmlformats.org/wordprocessingml/2006/main}'


class DocumentTextExtractor(DocumentParser):
    """pdfplumber / OOXML based extractor."""

    def extract_pdf(self, data: bytes) -> str:
        pages = []
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                for page in pdf.pages:
                    text = page.extract_text() or ""
                    if text.strip():
                        pages.append(text.strip())
        except (PDFSyntaxError, PdfminerException) as e:
            raise CapabilityError(f"Unreadable PDF: {e}", ErrorCode.CORRUPT_MEDIA)
        logger.debug(f"Extracted {len(pages)} non-empty PDF page(s)")
        return "\n\n".join(pages)

    def extract_docx(self, data: bytes) -> str:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                xml_payload = archive.read("word/document.xml")
            root = ET.fromstring(xml_payload)
        except (zipfile.BadZipFile, KeyError, ET.ParseError) as e:
            raise CapabilityError(f"Unreadable DOCX: {e}", ErrorCode.CORRUPT_MEDIA)

        paragraphs = []
        for paragraph in root.iter(f"{_W_NS}p"):
            text = "".join(node.text for node in paragraph.iter(f"{_W_NS}t") if node.text)
            if text.strip():
                paragraphs.append(text.strip())
        return "\n".join(paragraphs)
