"""Command-line entry point for rinku."""

from __future__ import annotations

import argparse
import asyncio
import logging
import re
import sys
from typing import List, NoReturn, Optional, Sequence
from urllib.parse import urlparse

from .cache import CacheStore
from .config import DEFAULT_HEIGHT, DEFAULT_TIMEOUT, DEFAULT_WIDTH, PreviewConfig
from .errors import RinkuError, ValidationError
from .images import HttpImageMaterializer, ImageMaterializer, ImageResolver
from .metadata import HttpMetadataProvider, MetadataProvider, MetadataResolver
from .render import CardRenderer, PlaywrightCardRenderer, PreviewRenderer
from .response import Response, emit

logger = logging.getLogger("rinku.cli")

USAGE = (
    "Usage: rinku [--no-cache] [--verbose] [--timeout S] "
    "[--preview [--width N] [--height N]] <URL>"
)
SIZE_REQUIRES_PREVIEW = "The --width and --height flags require --preview to be set."

_BOOLEAN_FLAGS = {"--no-cache", "--preview", "--verbose"}
_VALUE_FLAGS = {"--width", "--height", "--timeout"}
_SIZE_FLAGS = {"--width", "--height"}
_SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of printing and exiting."""

    def error(self, message: str) -> NoReturn:
        raise ValidationError(message)


def _build_parser() -> _ArgumentParser:
    parser = _ArgumentParser(
        prog="rinku",
        description="Fetch link preview metadata or render a preview card as JSON.",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("url", nargs="?", help="URL to preview")
    parser.add_argument(
        "--no-cache",
        dest="cache_enabled",
        action="store_false",
        help="Neither read from nor populate the cache",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Render a preview card image instead of returning metadata",
    )
    parser.add_argument(
        "--width",
        type=float,
        default=DEFAULT_WIDTH,
        help="Preview card width in pixels (requires --preview)",
    )
    parser.add_argument(
        "--height",
        type=float,
        default=DEFAULT_HEIGHT,
        help="Preview card height in pixels (requires --preview)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help="Seconds allowed per network connect/read and per rendering step (not a total deadline)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging on stderr",
    )
    return parser


def _flag_name(arg: str) -> str:
    return arg.split("=", 1)[0]


def _check_flags(argv: Sequence[str]) -> None:
    """Reject unknown ``--`` flags and size flags given without --preview."""
    seen = set()
    index = 0
    while index < len(argv):
        arg = argv[index]
        index += 1
        if arg == "--":
            break
        if not arg.startswith("--"):
            continue
        name = _flag_name(arg)
        if name not in _BOOLEAN_FLAGS and name not in _VALUE_FLAGS:
            raise ValidationError(f"Unknown flag '{arg}'.")
        seen.add(name)
        if name in _VALUE_FLAGS and "=" not in arg:
            # Skip the flag's value so negative numbers are not taken for flags.
            index += 1
    if seen & _SIZE_FLAGS and "--preview" not in seen:
        raise ValidationError(SIZE_REQUIRES_PREVIEW)


def normalize_url(raw: str) -> str:
    """Prepend ``https://`` when no scheme is given and validate the result."""
    candidate = raw.strip()
    if not _SCHEME_PATTERN.match(candidate):
        candidate = "https://" + candidate
    try:
        parsed = urlparse(candidate)
        parsed.port  # noqa: B018 - raises ValueError for malformed ports
    except ValueError as exc:
        raise ValidationError("Invalid URL") from exc
    if not parsed.scheme or not parsed.hostname:
        raise ValidationError("Invalid URL")
    return parsed.geturl()


def parse_args(argv: Optional[Sequence[str]] = None) -> PreviewConfig:
    """Validate command-line arguments into a :class:`PreviewConfig`."""
    args_list: List[str] = list(sys.argv[1:] if argv is None else argv)
    _check_flags(args_list)

    args, extras = _build_parser().parse_known_args(args_list)
    if not args.url:
        raise ValidationError(USAGE)
    for arg in [args.url, *extras]:
        if arg.startswith("-") and not arg.startswith("--"):
            raise ValidationError(f"Invalid flag '{arg}'. Did you mean '-{arg}'?")
    if extras:
        raise ValidationError(f"Unexpected argument '{extras[0]}'.")

    if args.width <= 0 or args.height <= 0:
        raise ValidationError("The --width and --height values must be positive.")
    if args.timeout <= 0:
        raise ValidationError("The --timeout value must be positive.")

    return PreviewConfig(
        url=normalize_url(args.url),
        cache_enabled=args.cache_enabled,
        preview=args.preview,
        width=args.width,
        height=args.height,
        timeout=args.timeout,
        verbose=args.verbose,
    )


def _configure_logging(verbose: bool) -> None:
    # stdout carries the JSON response; diagnostics go to stderr.
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


async def run_preview(
    config: PreviewConfig,
    provider: Optional[MetadataProvider] = None,
    materializer: Optional[ImageMaterializer] = None,
    card_renderer: Optional[CardRenderer] = None,
) -> Response:
    """Dispatch to the render path or the metadata path and build a response."""
    store = CacheStore(enabled=config.cache_enabled)
    cache_dir = config.resolved_cache_dir()
    provider = provider or HttpMetadataProvider(timeout=config.timeout)
    materializer = materializer or HttpImageMaterializer(timeout=config.timeout)
    metadata_resolver = MetadataResolver(
        provider,
        store,
        cache_dir=cache_dir,
        timeout=config.timeout,
        quiet=not config.verbose,
    )

    if config.preview:
        renderer = PreviewRenderer(
            metadata_resolver,
            card_renderer or PlaywrightCardRenderer(materializer, timeout=config.timeout),
            store,
            cache_dir=cache_dir,
        )
        path = await renderer.render(config.url, config.size)
        return Response.preview(path)

    metadata = await metadata_resolver.resolve(config.url)
    image_path = await ImageResolver(materializer, store, cache_dir=cache_dir).resolve(
        metadata, config.url
    )
    return Response.metadata(
        title=metadata.title,
        url=metadata.url or config.url,
        image=image_path,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        config = parse_args(argv)
    except ValidationError as exc:
        return emit(Response.failure(str(exc)))

    _configure_logging(config.verbose)
    logger.debug(
        "Resolving %s (cache=%s, preview=%s, size=%gx%g)",
        config.url,
        config.cache_enabled,
        config.preview,
        config.width,
        config.height,
    )
    try:
        response = asyncio.run(run_preview(config))
    except RinkuError as exc:
        logger.debug("Resolution failed: %s", exc)
        response = Response.failure(str(exc))
    return emit(response)


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
