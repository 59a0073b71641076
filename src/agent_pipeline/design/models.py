"""Design asset models."""

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class ImageSpec:
    """One image to generate, parsed from an agent-written markdown file.

    Attributes:
        key: Section key (e.g. "direction-2"), or the asset name.
        name: Display name.
        prompt: Image-generation prompt.
        size: Aspect ratio (e.g. "16:9").
        output: Repository path the image is committed to.
        philosophy: One-line design rationale (design directions only).
    """

    key: str
    name: str
    prompt: str
    size: str
    output: str
    philosophy: str = ""


@dataclass(frozen=True)
class GeneratedImage:
    """A generated image ready to commit."""

    spec: ImageSpec
    source_url: str
    content: bytes


@dataclass(frozen=True)
class DesignVariant:
    """A mockup variant offered to the operator.

    Attributes:
        key: Direction key from the exploration document.
        name: Display name.
        philosophy: One-line design rationale.
        image_url: Where the operator can view the image.
        output: Repository path of the committed image.
    """

    key: str
    name: str
    philosophy: str
    image_url: str
    output: str


@dataclass
class AssetBatch:
    """Result of one image fan-out plus its commit.

    Attributes:
        images: Images that were generated, in document order.
        failed: Number of images that could not be generated.
        committed: True once the images are on the branch.
        commit_error: Why the commit failed, if it did.
    """

    images: List[GeneratedImage] = field(default_factory=list)
    failed: int = 0
    committed: bool = False
    commit_error: str = ""

    @property
    def count(self) -> int:
        return len(self.images)
