[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "keyframe_ba"
version = "0.1.0"
description = "Landmark triangulation and landmark selection schemes for keyframe-based bundle adjustment"
requires-python = ">=3.10"
dependencies = ["numpy"]
keywords = ["bundle adjustment", "visual odometry", "triangulation", "landmarks", "keyframes", "voxel grid"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["keyframe_ba"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
