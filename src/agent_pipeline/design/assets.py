"""Image fan-out for the design phases.

The design agents describe images in markdown on their branch. This module
reads those documents, generates every image concurrently through a task
group (partial failure tolerated), and commits the successful images to
the branch in one atomic commit.

Outcomes are degraded, never fatal:
- no API key, no document, nothing parsed: nothing generated
- some images fail: the rest are kept
- commit fails: the images are reported uncommitted
"""

import logging
from typing import List, Sequence

from agent_pipeline.design.images import ImageClient
from agent_pipeline.design.models import AssetBatch, DesignVariant, GeneratedImage, ImageSpec
from agent_pipeline.design.parsing import parse_design_exploration, parse_visual_prompts
from agent_pipeline.github.client import GitHubClient
from agent_pipeline.github.models import FileChange
from agent_pipeline.jobs.fanout import run_task_group
from agent_pipeline.jobs.poller import IMAGE_VOCABULARY, JobPoller
from agent_pipeline.phases.catalog import DESIGN_EXPLORATION_PATH, VISUAL_PROMPTS_PATH
from agent_pipeline.transport.client import APIError
from agent_pipeline.transport.retry import TransientTransportError


logger = logging.getLogger(__name__)


class AssetGenerator:
    """Generates and commits the images the design agents ask for.

    Attributes:
        images: Image-generation client.
        github: Repository client used to read documents and commit images.
        poller: Poller configured for image tasks.
    """

    def __init__(self, images: ImageClient, github: GitHubClient, poller: JobPoller):
        self.images = images
        self.github = github
        self.poller = poller

    @property
    def enabled(self) -> bool:
        return self.images.enabled

    async def _generate_one(self, spec: ImageSpec) -> GeneratedImage:
        logger.info("Generating %s -> %s", spec.name, spec.output, extra={"size": spec.size})
        task_id = await self.images.submit(spec.prompt, spec.size)
        status = await self.poller.wait(task_id, self.images.status, IMAGE_VOCABULARY)
        source_url = status.payload["image_url"]
        content = await self.images.download(source_url)
        return GeneratedImage(spec=spec, source_url=source_url, content=content)

    async def generate(
        self,
        owner: str,
        repo: str,
        branch: str,
        specs: Sequence[ImageSpec],
        message: str,
    ) -> AssetBatch:
        """Generate ``specs`` in parallel and commit what succeeded."""
        group = await run_task_group(specs, self._generate_one, label="image")
        batch = AssetBatch(images=group.artifacts, failed=len(group.failed))
        if not batch.images:
            logger.warning("No images produced", extra={"requested": len(specs)})
            return batch

        files = [FileChange(path=image.spec.output, content=image.content) for image in batch.images]
        try:
            await self.github.commit_files(owner, repo, branch, files, message)
        except (APIError, TransientTransportError) as e:
            logger.error(
                "Committing generated images failed: %s",
                e,
                extra={"branch": branch, "count": batch.count},
            )
            batch.commit_error = str(e)
            return batch

        batch.committed = True
        logger.info("Committed %d image(s) to %s", batch.count, branch)
        return batch

    async def _read_specs(self, owner: str, repo: str, branch: str, path: str, parser) -> List[ImageSpec]:
        markdown = await self.github.read_file(owner, repo, branch, path)
        if markdown is None:
            logger.info("No %s on %s, skipping image generation", path, branch)
            return []
        specs = parser(markdown)
        if not specs:
            logger.warning(
                "No image sections parsed from %s",
                path,
                extra={"preview": markdown[:500]},
            )
        return specs

    async def generate_design_variants(self, owner: str, repo: str, branch: str) -> List[DesignVariant]:
        """Generate the mockup for each design direction on ``branch``.

        Returns:
            One variant per generated mockup, in document order. Image
            URLs point at the branch when the commit succeeded and at the
            service's result URL otherwise.
        """
        if not self.enabled:
            logger.info("Skipping variant generation (no PIPELINE_NANOBANANA_API_KEY)")
            return []

        specs = await self._read_specs(owner, repo, branch, DESIGN_EXPLORATION_PATH, parse_design_exploration)
        if not specs:
            return []

        batch = await self.generate(
            owner, repo, branch, specs, "chore: add design exploration variants [pipeline]"
        )
        return [
            DesignVariant(
                key=image.spec.key,
                name=image.spec.name,
                philosophy=image.spec.philosophy,
                image_url=(
                    self.github.raw_url(owner, repo, branch, image.spec.output)
                    if batch.committed
                    else image.source_url
                ),
                output=image.spec.output,
            )
            for image in batch.images
        ]

    async def generate_brand_assets(self, owner: str, repo: str, branch: str) -> AssetBatch:
        """Generate the brand assets listed in the visual prompts document."""
        if not self.enabled:
            logger.info("Skipping brand assets (no PIPELINE_NANOBANANA_API_KEY)")
            return AssetBatch()

        specs = await self._read_specs(owner, repo, branch, VISUAL_PROMPTS_PATH, parse_visual_prompts)
        if not specs:
            return AssetBatch()

        batch = await self.generate(
            owner, repo, branch, specs, "chore: add generated visual assets [pipeline]"
        )
        if batch.committed:
            logger.info("%d brand asset(s) added to %s", batch.count, branch)
        return batch
