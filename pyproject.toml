[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mosdns"
version = "0.1.0"
description = "Building blocks for a DNS forwarder: LRU and Redis caches, hosts lookup, EDNS0 helpers, file data providers and executable query sequences."
requires-python = ">=3.11"
keywords = [
    "dns",
    "dns-forwarder",
    "edns0",
    "ecs",
    "cache",
    "lru",
    "redis",
    "hosts",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Internet :: Name Service (DNS)",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Typing :: Typed",
]
dependencies = [
    "dnspython>=2.4",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
    "pyyaml>=6.0",
]

[tool.hatch.build.targets.wheel]
packages = ["mosdns"]

[tool.hatch.build.targets.sdist]
include = ["mosdns", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
ignore_missing_imports = true
