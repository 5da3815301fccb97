[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ckbkit"
version = "0.1.0"
description = "Transaction signing, unlocking and Omnilock configuration helpers for the CKB blockchain"
requires-python = ">=3.10"
dependencies = [
    "pycryptodome",
]
keywords = [
    "ckb",
    "nervos",
    "blockchain",
    "omnilock",
    "multisig",
    "anyone-can-pay",
    "cheque",
    "sparse-merkle-tree",
    "molecule",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Office/Business :: Financial",
    "Topic :: Security :: Cryptography",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["ckbkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
