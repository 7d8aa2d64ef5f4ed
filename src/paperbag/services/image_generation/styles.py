"""Supported cartoon styles and the prompts sent to the generation model."""

from enum import Enum

from paperbag.services.exceptions import InvalidStyle


class CartoonStyle(str, Enum):
    """Cartoon styles a user may request."""

    SIMPSONS = "simpsons"
    STUDIO_GHIBLI = "studio-ghibli"
    FAMILY_GUY = "family-guy"
    DISNEY = "disney"
    ANIME = "anime"
    COMIC_BOOK = "comic-book"
    SOUTH_PARK = "south-park"


STYLE_PROMPTS: dict[CartoonStyle, str] = {
    CartoonStyle.SIMPSONS: (
        "Transform into Simpsons style: yellow skin, large eyes, overbite, spiky hair, "
        "simple shapes"
    ),
    CartoonStyle.STUDIO_GHIBLI: (
        "Transform into Studio Ghibli style: soft colors, detailed backgrounds, "
        "expressive eyes, flowing hair"
    ),
    CartoonStyle.FAMILY_GUY: (
        "Transform into Family Guy style: simple shapes, bold outlines, exaggerated "
        "features, flat colors"
    ),
    CartoonStyle.DISNEY: (
        "Transform into Disney style: clean lines, vibrant colors, expressive features, "
        "classic animation look"
    ),
    CartoonStyle.ANIME: (
        "Transform into anime style: large eyes, detailed hair, expressive features, "
        "clean lineart"
    ),
    CartoonStyle.COMIC_BOOK: (
        "Transform into comic book style: bold outlines, high contrast, dramatic shadows, "
        "graphic style"
    ),
    CartoonStyle.SOUTH_PARK: (
        "Transform into South Park style: simple geometric shapes, flat colors, "
        "minimal details"
    ),
}


def validate_style(style: object) -> CartoonStyle:
    """Resolve a requested style value.

    Args:
        style: Raw value from the request (may be None or a non-string)

    Returns:
        The matching CartoonStyle

    Raises:
        InvalidStyle: If the value is not one of the supported styles
    """
    if not isinstance(style, str):
        raise InvalidStyle()
    try:
        return CartoonStyle(style)
    except ValueError:
        raise InvalidStyle() from None


def prompt_for(style: CartoonStyle) -> str:
    """Generation prompt for a style."""
    return STYLE_PROMPTS[style]
