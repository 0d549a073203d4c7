from typing import List
from langchain_community.document_loaders.parsers.pdf import PyPDFParser
from langchain_core.document_loaders import Blob

PDF_CONTENT_TYPES = ("application/pdf", "application/x-pdf")


class IngestionService:
    def __init__(self):
        self.pdf_parser = PyPDFParser()

    @staticmethod
    def is_pdf(filename: str, content_type: str | None = None) -> bool:
        if content_type and content_type.lower() in PDF_CONTENT_TYPES:
            return True
        return filename.lower().endswith(".pdf")

    def extract_text(self, file_content: bytes, filename: str) -> str:
        """Extracts full text from an uploaded carrier estimate PDF."""
        pages = self.extract_pages(file_content, filename)
        text = "\n".join(p["content"] for p in pages)
        if not text.strip():
            raise ValueError("No text could be extracted from the PDF")
        return text

    def extract_pages(self, file_content: bytes, filename: str) -> List[dict]:
        """
        Extract text per page. Returns list of {page_number, content}.
        """
        if not self.is_pdf(filename):
            raise ValueError(f"Unsupported file format: {filename}")
        blob = Blob.from_data(file_content, mime_type="application/pdf")
        documents = list(self.pdf_parser.lazy_parse(blob))
        pages = []
        for doc in documents:
            text = doc.page_content or ""
            if text.strip():
                page_num = doc.metadata.get("page", 0) + 1  # PyPDFParser is 0-indexed
                pages.append({"page_number": page_num, "content": text})
        return pages
