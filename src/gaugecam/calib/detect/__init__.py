"""Bowtie fiducial detection."""

from .matcher import TargetDetector
from .templates import TEMPLATE_COUNT, TemplateBank, build_bowtie_bank

__all__ = ["TEMPLATE_COUNT", "TargetDetector", "TemplateBank", "build_bowtie_bank"]
