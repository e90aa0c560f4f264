[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rssdash"
version = "1.0.0"
description = "A small RSS news dashboard: polls feeds, keeps the latest items in memory and serves them over a JSON HTTP API."
requires-python = ">=3.10"
dependencies = []
keywords = ["rss", "news", "feeds", "dashboard", "aggregator", "wsgi"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content :: News/Diary",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
rssdash = "rssdash.server:main"

[tool.hatch.build.targets.wheel]
packages = ["rssdash"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
