import base64
import io
import logging
import uuid

from PIL import Image

from lecture_capture.config import settings
from lecture_capture.models import UploadedFile

logger = logging.getLogger(__name__)


def target_size(width: int, height: int, max_side: int) -> tuple[int, int]:
    """Scale (width, height) so the longest side is at most *max_side*.

    Aspect ratio is preserved; images already within bounds are unchanged.
    """
    if width >= height:
        if width > max_side:
            return max_side, max(1, round(height * max_side / width))
    elif height > max_side:
        return max(1, round(width * max_side / height)), max_side
    return width, height


class MediaOptimizer:
    """Downscale and recompress attachments before they are sent to the model."""

    def __init__(self, max_side: int | None = None, quality: int | None = None) -> None:
        self.max_side = settings.max_image_side if max_side is None else max_side
        self.quality = settings.image_quality if quality is None else quality

    def optimize_image(self, data: bytes) -> tuple[bytes, str]:
        """Return ``(jpeg_bytes, preview_data_url)`` for an encoded image."""
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            size = target_size(image.width, image.height, self.max_side)
            if size != image.size:
                image = image.resize(size, Image.Resampling.LANCZOS)
            if image.mode != "RGB":
                image = image.convert("RGB")
            buf = io.BytesIO()
            image.save(buf, format="JPEG", quality=self.quality)
        jpeg = buf.getvalue()
        preview = "data:image/jpeg;base64," + base64.b64encode(jpeg).decode("ascii")
        return jpeg, preview

    def prepare(self, name: str, mime_type: str, data: bytes) -> UploadedFile:
        """Optimize images; pass every other file through as raw base64."""
        file_id = uuid.uuid4().hex[:9]
        if mime_type.startswith("image/"):
            jpeg, preview = self.optimize_image(data)
            return UploadedFile(
                id=file_id,
                name=name,
                mime_type="image/jpeg",
                base64=base64.b64encode(jpeg).decode("ascii"),
                preview_url=preview,
            )
        return UploadedFile(
            id=file_id,
            name=name,
            mime_type=mime_type,
            base64=base64.b64encode(data).decode("ascii"),
        )

    def prepare_batch(self, files: list[tuple[str, str, bytes]]) -> list[UploadedFile]:
        """Prepare ``(name, mime_type, data)`` triples, skipping files that fail."""
        prepared: list[UploadedFile] = []
        for name, mime_type, data in files:
            try:
                prepared.append(self.prepare(name, mime_type, data))
            except Exception:
                logger.exception("Error optimizing file %s; skipping it", name)
        return prepared
