import base64
import io
import logging

import fitz  # PyMuPDF
from pptx import Presentation

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
PPTX_MIME = "application/vnd.openxmlformats-officedocument.presentationml.presentation"

# Upper bound on document text forwarded to the model per attachment.
MAX_DOCUMENT_CHARS = 20_000


class AttachmentService:
    """Turn inline attachments into content parts a chat model accepts.

    Images become ``image_url`` parts (data URLs); PDF and PPTX documents are
    flattened to text.  Anything else is ignored with a warning.
    """

    @staticmethod
    def to_content_parts(files: list[dict]) -> list[dict]:
        """*files* are ``{"base64": str, "mimeType": str}`` dicts."""
        parts: list[dict] = []
        for index, f in enumerate(files, start=1):
            data_b64, mime_type = f.get("base64"), f.get("mimeType")
            if not data_b64 or not mime_type:
                continue
            if mime_type.startswith("image/"):
                parts.append({
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime_type};base64,{data_b64}"},
                })
                continue
            try:
                text = AttachmentService.extract_text(base64.b64decode(data_b64), mime_type)
            except Exception:
                logger.exception("Skipping unreadable attachment %d (%s)", index, mime_type)
                continue
            if text:
                parts.append({
                    "type": "text",
                    "text": f"Attached document {index}:\n{text[:MAX_DOCUMENT_CHARS]}",
                })
        return parts

    @staticmethod
    def extract_text(data: bytes, mime_type: str) -> str:
        if mime_type == PDF_MIME:
            return AttachmentService._pdf_text(data)
        if mime_type == PPTX_MIME:
            return AttachmentService._pptx_text(data)
        logger.warning("Skipping attachment with unsupported type %s", mime_type)
        return ""

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------
    @staticmethod
    def _pdf_text(data: bytes) -> str:
        doc = fitz.open(stream=data, filetype="pdf")
        try:
            pages = []
            for page_idx in range(len(doc)):
                text = doc[page_idx].get_text().strip()
                if text:
                    pages.append(f"[Page {page_idx + 1}]\n{text}")
            return "\n\n".join(pages)
        finally:
            doc.close()

    # ------------------------------------------------------------------
    # PPTX
    # ------------------------------------------------------------------
    @staticmethod
    def _pptx_text(data: bytes) -> str:
        prs = Presentation(io.BytesIO(data))
        slides = []
        for slide_idx, slide in enumerate(prs.slides):
            texts = [
                shape.text_frame.text.strip()
                for shape in slide.shapes
                if shape.has_text_frame and shape.text_frame.text.strip()
            ]
            if texts:
                slides.append(f"[Slide {slide_idx + 1}]\n" + "\n".join(texts))
        return "\n\n".join(slides)
