[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "httplogr"
version = "3.0.0"
description = "Structured request logging middleware for WSGI applications with ECS, OTEL and GCP field schemas"
requires-python = ">=3.10"
dependencies = []
keywords = ["wsgi", "middleware", "logging", "structured-logging", "http", "access-log"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Middleware",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
httplogr-example = "httplogr.example:main"

[tool.hatch.build.targets.wheel]
packages = ["httplogr"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
