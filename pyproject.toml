[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lab"
version = "0.1.0"
description = "Keep a local SQLite record of GitLab merge requests for your repositories, using git and the glab command-line client."
requires-python = ">=3.10"
dependencies = []
keywords = ["gitlab", "merge-request", "glab", "code-review", "sqlite", "launchd"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: MacOS",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Version Control :: Git",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
lab = "lab.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["lab"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
