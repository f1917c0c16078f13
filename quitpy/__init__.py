"""QUITpy public package.

Voxelwise quantitative MRI fitting: sequence protocols, tissue models,
fitting algorithms and the threaded engine that applies them across a volume.
"""

from __future__ import annotations

from ._version import __version__

__all__ = ["__version__"]
