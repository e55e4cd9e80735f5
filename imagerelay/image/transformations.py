"""Catalog of named transformations offered to clients.

Each transformation maps to a prompt template and a model reference. The
catalog is configuration data; the relay only looks entries up and builds the
prediction input from them.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from imagerelay.image.provider_config import GENERATION_PARAMS, IMAGE_MODEL_VERSION


@dataclass(frozen=True)
class Transformation:
    id: str
    label: str
    prompt: str
    model: str = IMAGE_MODEL_VERSION

    def build_input(self, image: str) -> dict:
        """Return the prediction input for `image` (data URL or remote URL)."""
        return {"image": image, "prompt": self.prompt, **GENERATION_PARAMS}


TRANSFORMATIONS: Dict[str, Transformation] = {
    t.id: t
    for t in (
        Transformation(
            id="sargent",
            label="John Singer Sargent",
            prompt=(
                "Transform this image into the style of John Singer Sargent, with his "
                "characteristic loose brushwork, dramatic lighting, and elegant portraiture style"
            ),
        ),
        Transformation(
            id="surrealist",
            label="Surrealist",
            prompt=(
                "Transform this image into a surrealist style, with dreamlike elements, "
                "unexpected juxtapositions, and a touch of Salvador Dali's influence"
            ),
        ),
        Transformation(
            id="color-palette",
            label="Color palette variations",
            prompt=(
                "Create variations of this image with different color palettes while "
                "maintaining the original composition and subject matter"
            ),
        ),
        Transformation(
            id="background",
            label="Background swap",
            prompt=(
                "Keep the main subject but change the background to create different "
                "moods and settings"
            ),
        ),
        Transformation(
            id="composition",
            label="Alternative compositions",
            prompt=(
                "Create alternative compositions of this image, exploring different angles, "
                "framing, and arrangements of elements"
            ),
        ),
    )
}


def get_transformation(transformation_id: str) -> Optional[Transformation]:
    return TRANSFORMATIONS.get(transformation_id)
