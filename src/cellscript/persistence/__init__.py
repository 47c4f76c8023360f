"""Checkpoint save/restore."""

from .checkpoint import Checkpoint, load, save

__all__ = ['Checkpoint', 'load', 'save']
