"""Prompts for describe-then-synthesize backends.

A vision model describes each garment (or the inspiration outfit), then a
text-to-image model renders a fashion photograph from those descriptions.
"""

GARMENT_DESCRIPTION_PROMPT = (
    "Describe this clothing item in detail for outfit generation. Focus on: type "
    "(shirt/pants/dress/etc), color, pattern, style, material appearance, and any "
    "distinctive features. Be concise but descriptive."
)

OUTFIT_DESCRIPTION_PROMPT = (
    "Describe the outfit in this image in detail, focusing on clothing items, colors, "
    "patterns, and style. Be specific and descriptive."
)

DEFAULT_GARMENT_DESCRIPTION = "clothing item"
DEFAULT_OUTFIT_DESCRIPTION = "stylish outfit"

PHOTO_STYLE = (
    "Studio lighting, high-resolution fashion photography, clean white background, "
    "full body shot, front view."
)

# How each garment role reads in the synthesized sentence
ROLE_PHRASES = {
    "top": "as a top",
    "bottom": "as bottoms",
    "shoes": "as shoes",
}


def get_outfit_synthesis_prompt(subject: str, descriptions: dict[str, str]) -> str:
    """Fashion-photo prompt from per-role garment descriptions.

    Args:
        subject: Description of the model wearing the outfit.
        descriptions: Role -> garment description, in attachment order.
    """
    garments = [
        f"{text} {ROLE_PHRASES.get(role, f'as {role}')}" for role, text in descriptions.items()
    ]
    if len(garments) > 1:
        wearing = ", ".join(garments[:-1]) + f" and {garments[-1]}"
    else:
        wearing = garments[0] if garments else "a stylish outfit"
    return (
        f"A professional fashion photograph of {subject} wearing {wearing}. "
        f"The outfit should look natural and stylish. {PHOTO_STYLE}"
    )


def get_occasion_synthesis_prompt(subject: str, occasion: str) -> str:
    return (
        f"A professional fashion photograph of {subject} wearing a stylish outfit "
        f"appropriate for {occasion}. The outfit should be trendy and well-coordinated. "
        f"{PHOTO_STYLE}"
    )


def get_transfer_synthesis_prompt(subject: str, outfit_description: str) -> str:
    return f"A professional fashion photograph of {subject} wearing {outfit_description}. {PHOTO_STYLE}"
