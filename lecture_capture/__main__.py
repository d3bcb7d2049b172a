import uvicorn

from lecture_capture.config import settings
from lecture_capture.logging_utils import configure_logging


def main() -> None:
    configure_logging(settings.log_level)
    uvicorn.run("lecture_capture.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
