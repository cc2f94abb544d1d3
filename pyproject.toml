[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "meshpath"
version = "0.1.0"
description = "Surface mesh segmentation, convex hulls, PLY conversion and tool path visualisation markers"
requires-python = ">=3.10"
keywords = [
    "mesh",
    "segmentation",
    "convex hull",
    "ply",
    "stl",
    "tool path",
    "markers",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering",
]
dependencies = [
    "numpy",
    "scipy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
meshpath-convex-hull = "meshpath.convex_hull:main"
meshpath-segment = "meshpath.segment_cli:main"

[tool.hatch.build.targets.wheel]
packages = ["meshpath"]

[tool.hatch.build.targets.sdist]
include = [
    "meshpath",
    "tests",
    "pyproject.toml",
]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
