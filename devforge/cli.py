"""Command line: `devforge read` and `devforge ask`."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from devforge import __version__
from devforge.config import load_config
from devforge.errors import DevforgeError
from devforge.scan import find_repo_root
from devforge.workflow import DevforgePaths, run_ask, run_read


def _load(args):
    root = Path(args.dir).resolve() if args.dir else find_repo_root()
    cfg = load_config(DevforgePaths.for_root(root).config)
    if args.ollama_url:
        cfg.ollama_url = args.ollama_url
    return root, cfg


def cmd_read(args) -> int:
    root, cfg = _load(args)
    try:
        run_read(root, config=cfg, force=args.force)
    except DevforgeError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    print("\nNext:\n  devforge ask \"where is JWT verified?\"\n"
          "  After editing files, run `devforge read` again (only changed files are re-embedded).")
    return 0


def cmd_ask(args) -> int:
    root, cfg = _load(args)
    question = " ".join(args.question)
    try:
        result = run_ask(
            root,
            question,
            config=cfg,
            k=args.top_k,
            max_tokens=args.max_tokens,
            model=args.model,
            refresh=args.refresh,
        )
    except DevforgeError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    print(f"[INFO] Retrieved {len(result.blocks)} chunk(s)")
    print("\n" + result.answer + "\n")
    if args.show_sources:
        print("Sources:")
        for b in result.blocks:
            print(f"  - {b.citation}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="devforge", description="Local-first repo Q&A powered by Ollama")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def add_shared(p):
        p.add_argument("--dir", default=None, help="Repo root (default: nearest parent with .git)")
        p.add_argument("--ollama-url", default=None, help="Ollama base URL (overrides config.json)")

    p_read = sub.add_parser("read", help="Preflight Ollama, then scan and embed added/changed files")
    p_read.add_argument("--force", action="store_true", help="Clear manifest and index before a full rescan")
    add_shared(p_read)
    p_read.set_defaults(func=cmd_read)

    p_ask = sub.add_parser("ask", help="Refresh the index, then answer a question about the repo")
    p_ask.add_argument("question", nargs="+", help="Your question")
    p_ask.add_argument("--no-refresh", dest="refresh", action="store_false",
                       help="Skip the refresh and use the existing index.json")
    p_ask.add_argument("-k", "--topk", dest="top_k", type=int, default=None, help="Number of chunks to retrieve")
    p_ask.add_argument("--max-tokens", type=int, default=512, help="Max tokens for the answer")
    p_ask.add_argument("--model", default=None, help="Chat model override")
    p_ask.add_argument("--show-sources", action="store_true", help="Print sources after the answer")
    add_shared(p_ask)
    p_ask.set_defaults(func=cmd_ask)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
