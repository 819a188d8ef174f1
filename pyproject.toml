[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mdrn"
version = "0.1.0"
description = "Core protocol for a distributed radio network: identities, signed messages, stream encryption, audio stream records, payment commitments, backchannel messaging and a minimal relay node"
requires-python = ">=3.10"
keywords = [
    "radio",
    "audio",
    "streaming",
    "p2p",
    "cbor",
    "chacha20-poly1305",
    "ed25519",
    "secp256k1",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Sound/Audio",
    "Topic :: Security :: Cryptography",
    "Topic :: System :: Networking",
]
dependencies = [
    "cryptography>=41",
    "cbor2>=5.4",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

[project.scripts]
mdrn-relay = "mdrn.relay:main"

[tool.hatch.build.targets.wheel]
packages = ["mdrn"]

[tool.hatch.build.targets.sdist]
include = ["mdrn", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
