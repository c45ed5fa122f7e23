"""
Imaging Package

Image backend clients used by the scene illustration flow.
"""

from imaging.comfyui import ComfyUIImageService, build_txt2img_workflow, find_output_image

__all__ = [
    "ComfyUIImageService",
    "build_txt2img_workflow",
    "find_output_image",
]
