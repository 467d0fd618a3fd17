"""Settings in .devforge/config.json plus the bootstrap of .devforge/ itself."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from devforge.ollama import DEFAULT_OLLAMA_URL, PacingPolicy
from devforge.storage import load_json, utc_now, write_json_atomic

DEFAULT_CHAT_MODEL = "gemma3:latest"
DEFAULT_EMBED_MODEL = "nomic-embed-text:latest"

DEFAULT_EXCLUDES = [
    # Development artifacts
    "node_modules/**", "dist/**", "build/**", "__pycache__/**", "venv/**",
    ".git/**", ".svn/**", ".hg/**",
    # Package manager files
    "*.lock", "package-lock.json", "yarn.lock", "pnpm-lock.yaml",
    # Binary and media files
    "*.bin", "*.exe", "*.dll", "*.so", "*.dylib", "*.pyc",
    "*.jpg", "*.jpeg", "*.png", "*.gif", "*.bmp", "*.ico", "*.pdf",
    "*.zip", "*.tar.gz", "*.rar", "*.7z",
    # Environment and secrets
    ".env", ".env.*", "**/*.key", "**/*.pem", "**/*.p12", "**/*.pfx", "/id_*", "*.crt", "*.csr",
    # IDE and editor files
    ".vscode/**", ".idea/**", "*.swp", "*.swo", "*~", ".DS_Store", "Thumbs.db",
    # Logs, temporary files and caches
    "*.log", "logs/**", "tmp/**", "temp/**", ".tmp/**",
    ".cache/**", ".next/**", ".nuxt/**", "coverage/**", ".nyc_output/**",
]

DEFAULT_IGNORE_LINES = [
    "node_modules/**", "dist/**", ".git/**", "*.lock", "*.bin", "*.jpg", "*.png", "*.pdf",
    ".env", "**/*.key", "**/*.pem", "/id_*",
]


def default_config_dict() -> Dict:
    return {
        "airgap": False,
        "max_file_kb": 256,
        "ollama_url": DEFAULT_OLLAMA_URL,
        "models": {"chat": DEFAULT_CHAT_MODEL, "embed": DEFAULT_EMBED_MODEL},
        "paths": {"include": ["**/*"], "exclude": list(DEFAULT_EXCLUDES)},
        "chunking": {"max_chars": 2000, "overlap_chars": 200},
        "embedding": {"batch_size": 10, "call_delay": 0.05, "batch_delay": 0.1, "retries": 0, "timeout": 120},
        "retrieval": {"top_k": 12},
        "created_at": utc_now(),
    }


def _patterns(value) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
        raise TypeError(f"glob patterns must be a list of strings, got {value!r}")
    return list(value)


@dataclass
class DevforgeConfig:
    max_file_kb: int = 256
    ollama_url: str = DEFAULT_OLLAMA_URL
    chat_model: str = DEFAULT_CHAT_MODEL
    embed_model: str = DEFAULT_EMBED_MODEL
    include: List[str] = field(default_factory=lambda: ["**/*"])
    exclude: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDES))
    max_chars: int = 2000
    overlap_chars: int = 200
    pacing: PacingPolicy = field(default_factory=PacingPolicy)
    timeout: int = 120
    top_k: int = 12
    raw: Dict = field(default_factory=dict)

    @property
    def models(self) -> Dict[str, str]:
        return {"chat": self.chat_model, "embed": self.embed_model}

    @staticmethod
    def from_dict(data: Optional[Dict]) -> "DevforgeConfig":
        merged = default_config_dict()
        for key, value in (data or {}).items():
            if isinstance(merged.get(key), dict) and isinstance(value, dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value

        models, paths = merged["models"], merged["paths"]
        chunking, emb = merged["chunking"], merged["embedding"]
        return DevforgeConfig(
            max_file_kb=int(merged["max_file_kb"]),
            ollama_url=str(merged["ollama_url"]),
            chat_model=str(models["chat"]),
            embed_model=str(models["embed"]),
            include=_patterns(paths["include"]) or ["**/*"],
            exclude=_patterns(paths["exclude"]),
            max_chars=int(chunking["max_chars"]),
            overlap_chars=int(chunking["overlap_chars"]),
            pacing=PacingPolicy(
                batch_size=int(emb["batch_size"]),
                call_delay=float(emb["call_delay"]),
                batch_delay=float(emb["batch_delay"]),
                retries=int(emb["retries"]),
            ),
            timeout=int(emb["timeout"]),
            top_k=int(merged["retrieval"]["top_k"]),
            raw=copy.deepcopy(data or {}),
        )


def load_config(path: Path) -> DevforgeConfig:
    """Read config.json; a missing, corrupt or ill-typed file gives the defaults."""
    data = load_json(path)
    try:
        return DevforgeConfig.from_dict(data)
    except (KeyError, TypeError, ValueError):
        return DevforgeConfig.from_dict(None)


def ensure_workspace(dot_dir: Path) -> Tuple[bool, bool]:
    """Create config.json and ignore under dot_dir when missing. Existing files are kept."""
    dot_dir.mkdir(parents=True, exist_ok=True)
    cfg_path = dot_dir / "config.json"
    ignore_path = dot_dir / "ignore"

    wrote_cfg = not cfg_path.exists()
    if wrote_cfg:
        write_json_atomic(cfg_path, default_config_dict())
    wrote_ignore = not ignore_path.exists()
    if wrote_ignore:
        ignore_path.write_text("\n".join(DEFAULT_IGNORE_LINES) + "\n", encoding="utf-8")
    return wrote_cfg, wrote_ignore
