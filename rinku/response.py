"""JSON response shaping and exit codes."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, TextIO, Union

logger = logging.getLogger("rinku")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


@dataclass(frozen=True)
class Response:
    """Exactly one of: a rendered image path, an error, or metadata."""

    title: Optional[str] = None
    url: Optional[str] = None
    image: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def preview(cls, image: Union[str, Path]) -> "Response":
        return cls(image=str(image))

    @classmethod
    def failure(cls, error: str) -> "Response":
        return cls(error=error)

    @classmethod
    def metadata(
        cls,
        title: Optional[str],
        url: str,
        image: Optional[Union[str, Path]] = None,
    ) -> "Response":
        return cls(title=title, url=url, image=str(image) if image is not None else None)

    @property
    def exit_code(self) -> int:
        return EXIT_FAILURE if self.error is not None else EXIT_SUCCESS

    def to_dict(self) -> dict:
        return {key: value for key, value in asdict(self).items() if value is not None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))


def emit(response: Response, stream: Optional[TextIO] = None) -> int:
    """Write ``response`` as one JSON line and return the process exit code."""
    stream = stream or sys.stdout
    try:
        line = response.to_json()
    except (TypeError, ValueError) as exc:
        logger.critical("Failed to encode response as JSON: %s", exc)
        return EXIT_FAILURE
    stream.write(line + "\n")
    stream.flush()
    return response.exit_code
