from __future__ import annotations

import os
import sys
from datetime import datetime

# Add repo root so autodoc can find quitpy without installation.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

project = "QUITpy"
author = "The QUITpy Developers"
copyright = f"{datetime.now().year}, {author}"

# Mock heavy deps to keep doc builds light.
autodoc_mock_imports = [
    "nibabel",
    "numpy",
    "scipy",
    "joblib",
    "tqdm",
    "psutil",
]

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "sphinx.ext.mathjax",
]

templates_path = ["_templates"]
exclude_patterns = []

html_theme = "sphinx_rtd_theme"
html_static_path = ["_static"]
