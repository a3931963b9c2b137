"""Configuration paths and analysis defaults for ArchGraph."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

BASE_DIR = Path(os.environ.get("ARCHGRAPH_HOME", str(Path.home() / ".archgraph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

# Per-workspace storage lives in a hidden directory under the analyzed root.
STORAGE_DIRNAME = ".archgraph"
ARCHITECTURE_DIRNAME = "architecture"

DEFAULT_EXTENSIONS: List[str] = [".ts", ".tsx", ".js", ".jsx"]

# Extensions the file analyzer knows how to parse.
SUPPORTED_EXTENSIONS = {".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".py"}

DEFAULT_EXCLUDE_PATTERNS: List[str] = [
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/out/**",
    "**/.git/**",
    "**/coverage/**",
    "**/.next/**",
    "**/.vscode/**",
    f"**/{STORAGE_DIRNAME}/**",
    "**/__pycache__/**",
    "**/.venv/**",
    "**/venv/**",
    "**/*.test.ts",
    "**/*.test.tsx",
    "**/*.test.js",
    "**/*.test.jsx",
    "**/*.spec.ts",
    "**/*.spec.tsx",
    "**/*.spec.js",
    "**/*.spec.jsx",
    "**/test_*.py",
    "**/*_test.py",
    "**/*.d.ts",
    "**/__tests__/**",
    "**/__mocks__/**",
    "**/*.config.ts",
    "**/*.config.js",
    "**/*.config.mjs",
    "**/*.config.cjs",
    "**/tsconfig.json",
    "**/jsconfig.json",
    "**/package.json",
    "**/package-lock.json",
    "**/.eslintrc.*",
    "**/.prettierrc.*",
    "**/vite.config.*",
    "**/webpack.config.*",
    "**/rollup.config.*",
    "**/jest.config.*",
    "**/vitest.config.*",
    "**/tailwind.config.*",
    "**/postcss.config.*",
    "**/conftest.py",
    "**/setup.py",
]

DEFAULT_BATCH_SIZE = 50
MAX_FILE_SIZE_BYTES = 5 * 1024 * 1024

MAX_CLUSTERING_ATTEMPTS = 3
MIN_CLUSTERS = 5
MAX_CLUSTERS = 12
MAX_PROMPT_FILES = 500
MAX_PROMPT_SYMBOLS = 5
MAX_PROMPT_EDGES = 1000

TRACE_EDGE_DURATION_MS = 1000
SCHEMA_VERSION = 2

DEFAULT_LLM_PROVIDER = "ollama"
DEFAULT_LLM_MODEL = "qwen2.5-coder:7b"
DEFAULT_LLM_ENDPOINT = "http://127.0.0.1:11434/api/generate"


@dataclass
class AnalysisSettings:
    """Tunable limits for scanning, analysis and clustering.

    Values come from the ``[analysis]`` section of ``config.toml`` and fall
    back to the module-level defaults above.
    """

    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    exclude_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    batch_size: int = DEFAULT_BATCH_SIZE
    max_file_size: int = MAX_FILE_SIZE_BYTES
    max_attempts: int = MAX_CLUSTERING_ATTEMPTS
    max_prompt_files: int = MAX_PROMPT_FILES
    max_prompt_symbols: int = MAX_PROMPT_SYMBOLS
    max_prompt_edges: int = MAX_PROMPT_EDGES
    respect_gitignore: bool = True
