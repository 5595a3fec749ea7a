"""
Composition graph extraction and cycle walking.

This package turns the model into a snapshot of blocks and part edges and
explores every part path of that snapshot looking for repeated blocks.
"""
from .extractor import CompositionGraph, GraphExtractor, GraphNode, PartEdge
from .path import InvalidPathEntry, PathState, PathStep, StepKind
from .walker import CycleWalker

__all__ = [
    "CompositionGraph", "GraphExtractor", "GraphNode", "PartEdge",
    "InvalidPathEntry", "PathState", "PathStep", "StepKind",
    "CycleWalker",
]
