import re
from pathlib import Path

import pytest

from rinku.errors import DirectoryCreationError, EncodingError
from rinku.keys import (
    IMAGE_PURPOSE,
    METADATA_EXTENSION,
    METADATA_PURPOSE,
    RENDER_PURPOSE,
    composite_key,
    derive_key,
)


def test_derive_key_is_deterministic(cache_dir: Path) -> None:
    first = derive_key(METADATA_PURPOSE, "https://example.com", cache_dir=cache_dir)
    second = derive_key(METADATA_PURPOSE, "https://example.com", cache_dir=cache_dir)

    assert first == second


def test_derive_key_layout(cache_dir: Path) -> None:
    path = derive_key(RENDER_PURPOSE, "https://example.com", (300, 150), cache_dir=cache_dir)

    assert path.parent == cache_dir
    assert re.fullmatch(r"render-[0-9a-f]{64}\.png", path.name)


def test_derive_key_creates_cache_dir(cache_dir: Path) -> None:
    assert not cache_dir.exists()

    derive_key(IMAGE_PURPOSE, "https://example.com", cache_dir=cache_dir)

    assert cache_dir.is_dir()


def test_distinct_urls_get_distinct_keys(cache_dir: Path) -> None:
    a = derive_key(IMAGE_PURPOSE, "https://example.com/a", cache_dir=cache_dir)
    b = derive_key(IMAGE_PURPOSE, "https://example.com/b", cache_dir=cache_dir)

    assert a != b


def test_purposes_never_collide_even_with_same_extension(cache_dir: Path) -> None:
    url = "https://example.com"
    image = derive_key(IMAGE_PURPOSE, url, cache_dir=cache_dir)
    render = derive_key(RENDER_PURPOSE, url, cache_dir=cache_dir)
    metadata = derive_key(METADATA_PURPOSE, url, extension="png", cache_dir=cache_dir)

    assert len({image, render, metadata}) == 3
    # The hashed part differs too, not just the filename prefix.
    digests = {p.name.split("-", 1)[1] for p in (image, render, metadata)}
    assert len(digests) == 3


def test_render_sizes_do_not_collide(cache_dir: Path) -> None:
    url = "https://example.com"
    small = derive_key(RENDER_PURPOSE, url, (300, 150), cache_dir=cache_dir)
    large = derive_key(RENDER_PURPOSE, url, (640, 360), cache_dir=cache_dir)

    assert small != large


def test_integral_float_dimensions_match_integers(cache_dir: Path) -> None:
    url = "https://example.com"

    assert derive_key(RENDER_PURPOSE, url, (640.0, 360.0), cache_dir=cache_dir) == derive_key(
        RENDER_PURPOSE, url, (640, 360), cache_dir=cache_dir
    )
    assert composite_key(RENDER_PURPOSE, url, (300.5, 150)) == "render-https://example.com-300.5x150"


def test_metadata_extension(cache_dir: Path) -> None:
    path = derive_key(
        METADATA_PURPOSE, "https://example.com", extension=METADATA_EXTENSION, cache_dir=cache_dir
    )

    assert path.suffix == ".json"
    assert path.name.startswith("metadata-")


def test_directory_creation_failure(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(DirectoryCreationError):
        derive_key(IMAGE_PURPOSE, "https://example.com", cache_dir=blocker / "link-previews")


def test_unencodable_url_raises_encoding_error(cache_dir: Path) -> None:
    with pytest.raises(EncodingError):
        derive_key(IMAGE_PURPOSE, "https://example.com/\ud800", cache_dir=cache_dir)


def test_default_cache_dir_honours_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RINKU_CACHE_DIR", str(tmp_path / "override"))

    path = derive_key(IMAGE_PURPOSE, "https://example.com")

    assert path.parent == tmp_path / "override" / "link-previews"


@pytest.mark.parametrize(
    "first, second",
    [
        ((300.0, 150.0), (300.0000001, 150.0)),
        ((1000000, 150), (1000001, 150)),
        ((300, 150.25), (300, 150.2500001)),
    ],
)
def test_nearby_sizes_get_distinct_render_keys(cache_dir: Path, first, second) -> None:
    url = "https://example.com"

    assert derive_key(RENDER_PURPOSE, url, first, cache_dir=cache_dir) != derive_key(
        RENDER_PURPOSE, url, second, cache_dir=cache_dir
    )


def test_large_integral_sizes_are_written_in_full() -> None:
    assert composite_key(RENDER_PURPOSE, "u", (1e6, 150.0)) == "render-u-1000000x150"
