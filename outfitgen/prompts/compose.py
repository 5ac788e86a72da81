"""Instructions for direct multi-image compose backends.

Image numbering in each instruction matches the order in which images are
attached to the request.

Examples:
    >>> from outfitgen.prompts.compose import get_outfit_prompt
    >>> prompt = get_outfit_prompt(include_shoes=True)
"""

BACKGROUND_RULE = (
    "CRITICAL: The background must be completely white (#FFFFFF) - do not use black, "
    "transparent, or any other background color."
)

IDENTITY_RULE = "Do not change the person identity or add accessories."

FIT_RULES = (
    "Fit to body shape and pose, preserve garment proportions and textures, "
    "match lighting and shadows, handle occlusion by hair and arms."
)


def get_outfit_prompt(include_shoes: bool = False) -> str:
    """Instruction for composing selected garments onto the body image.

    Images are attached as: top, bottom, [shoes], body.
    """
    if include_shoes:
        garments = (
            "Take the top clothing item from image 1, the bottom clothing item from "
            "image 2, and the shoes from image 3, and place them naturally onto the body "
            "in image 4 so it looks like the person is wearing the complete outfit."
        )
    else:
        garments = (
            "Take the top clothing item from image 1 and the bottom clothing item from "
            "image 2, and place them naturally onto the body in image 3 so it looks like "
            "the person is wearing the selected outfit."
        )
    return (
        "Create a new image by combining the elements from the provided images. "
        f"{garments} {FIT_RULES} {BACKGROUND_RULE} "
        "Replace any existing background with solid white. "
        f"{IDENTITY_RULE}"
    )


def get_occasion_prompt(occasion: str) -> str:
    """Instruction for dressing the body image for an occasion."""
    return (
        "Using the provided image of a model, please add an outfit to the model that "
        f"would work in this occasion: {occasion}. Ensure the outfit integrates naturally "
        "with the model's body shape, pose, and lighting. Keep the background plain white "
        "so the focus stays on the model and the outfit."
    )


def get_transfer_prompt() -> str:
    """Instruction for moving the outfit of image 2 onto the person in image 1."""
    return (
        "Using the provided images, place the outfit from image 2 onto the person in "
        "image 1. Keep the face, body shape, and background of image 1 completely "
        "unchanged. Ensure the outfit integrates naturally with the model's body shape, "
        f"pose, and lighting. {BACKGROUND_RULE} {IDENTITY_RULE}"
    )
