"""
Tests for DocumentTextExtractor.
"""

import io
import zipfile

import pytest

from tribora.capabilities.document_parser import DocumentTextExtractor
from tribora.utils.error_codes import CapabilityError, ErrorCode

DOCUMENT_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main"><w:body>'
    '<w:p><w:r><w:t>Expense </w:t></w:r><w:r><w:t>policy</w:t></w:r></w:p>'
    '<w:p><w:r><w:t>   </w:t></w:r></w:p>'
    '<w:p><w:r><w:t>Receipts are due within 30 days.</w:t></w:r></w:p>'
    '</w:body></w:document>'
)


def make_docx(document_xml=DOCUMENT_XML):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as archive:
        archive.writestr('[Content_Types].xml', '<Types/>')
        archive.writestr('word/document.xml', document_xml)
    return buffer.getvalue()


class TestDocumentTextExtractor:
    def setup_method(self):
        self.extractor = DocumentTextExtractor()

    def test_docx_paragraphs(self):
        assert self.extractor.extract_docx(make_docx()) == "Expense policy\nReceipts are due within 30 days."

    def test_not_a_zip(self):
        with pytest.raises(CapabilityError) as exc:
            self.extractor.extract_docx(b'plain text, not a docx')
        assert exc.value.error_code == ErrorCode.CORRUPT_MEDIA

    def test_zip_without_document(self):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w') as archive:
            archive.writestr('readme.txt', 'hi')
        with pytest.raises(CapabilityError):
            self.extractor.extract_docx(buffer.getvalue())

    def test_corrupt_pdf(self):
        with pytest.raises(CapabilityError) as exc:
            self.extractor.extract_pdf(b'%PDF-1.7 this is not really a pdf')
        assert exc.value.error_code == ErrorCode.CORRUPT_MEDIA
