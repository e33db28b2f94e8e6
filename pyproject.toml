[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bisectservice"
version = "0.1.0"
description = "HTTP service that queues compiler regression bisections and stores their results in SQLite"
requires-python = ">=3.10"
keywords = ["bisect", "regression", "toolchain", "nightly", "service"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing",
]
dependencies = [
    "flask",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
bisectservice = "bisectservice.server:main"

[tool.hatch.build.targets.wheel]
packages = ["bisectservice"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
