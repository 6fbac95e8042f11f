"""Image reference validation."""

import pytest

from dockerexec.exceptions import InvalidImageError
from dockerexec.image import is_valid_image, strip_quotes, validate_image


@pytest.mark.parametrize(
    "image",
    [
        "ubuntu",
        "ubuntu:22.04",
        "myrepo/worker:1.2",
        "registry.example.com/worker",
        "registry.example.com:5000/worker:latest",
        "my-registry_1.local/sequenceiq_hadoop-docker:2.4.1",
    ],
)
def test_accepts_grammar(image):
    assert is_valid_image(image)
    assert validate_image(image) == image


@pytest.mark.parametrize(
    "image",
    [
        "bad image",
        "ubuntu;rm -rf /",
        "ubuntu`id`",
        "ubuntu|cat",
        "ubuntu$(id)",
        "ubuntu&&id",
        "ubuntu\n",
        "ubuntu\nid",
        "myrepo/worker:1.2 --privileged",
        "a/b/c",
        "ubuntü",
    ],
)
def test_rejects_metacharacters_and_extra_segments(image):
    assert not is_valid_image(image)
    with pytest.raises(InvalidImageError):
        validate_image(image)


def test_quotes_are_stripped_before_matching():
    assert strip_quotes("'\"myrepo/worker:1.2\"'") == "myrepo/worker:1.2"
    assert validate_image('"myrepo/worker:1.2"') == "myrepo/worker:1.2"


def test_quoted_space_still_rejected():
    with pytest.raises(InvalidImageError) as exc_info:
        validate_image('"bad image"')
    assert exc_info.value.image == "bad image"
    assert exc_info.value.code == "invalid_image"


@pytest.mark.parametrize("raw", [None, "", "''", '""'])
def test_missing_or_empty_rejected(raw):
    with pytest.raises(InvalidImageError):
        validate_image(raw)


def test_invalid_image_is_a_value_error():
    with pytest.raises(ValueError):
        validate_image("x;y")
