"""Design phase support: mockup variants, brand assets and code scaffolds."""

from agent_pipeline.design.assets import AssetGenerator
from agent_pipeline.design.images import ImageClient
from agent_pipeline.design.models import AssetBatch, DesignVariant, GeneratedImage, ImageSpec
from agent_pipeline.design.parsing import parse_design_exploration, parse_visual_prompts
from agent_pipeline.design.scaffold import ScaffoldClient, render_scaffold_document
from agent_pipeline.design.selection import auto_selection_notice, render_approved_direction

__all__ = [
    "AssetBatch",
    "AssetGenerator",
    "DesignVariant",
    "GeneratedImage",
    "ImageClient",
    "ImageSpec",
    "ScaffoldClient",
    "auto_selection_notice",
    "parse_design_exploration",
    "parse_visual_prompts",
    "render_approved_direction",
    "render_scaffold_document",
]
